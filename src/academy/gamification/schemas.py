"""Pydantic models: inbound learning events and gamification responses."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


# --- Inbound events ---


class LessonCompletedEvent(BaseModel):
    """Sent by the progress subsystem once a lesson is watched (>= 90%) or marked complete."""

    user_id: str = Field(min_length=1, max_length=64)
    lesson_id: str = Field(min_length=1, max_length=128)
    course_id: str | None = Field(default=None, max_length=128)
    watch_time_seconds: int = Field(default=0, ge=0)


class QuizCompletedEvent(BaseModel):
    """Sent by the quiz subsystem for a submission that passed the quiz's threshold."""

    user_id: str = Field(min_length=1, max_length=64)
    quiz_id: str = Field(min_length=1, max_length=128)
    lesson_id: str | None = Field(default=None, max_length=128)
    score: float = Field(ge=0)
    max_score: float = Field(gt=0)
    percentage: float = Field(ge=0, le=100)


class CourseCompletedEvent(BaseModel):
    """Sent by the progress subsystem when the last lesson of a course is completed."""

    user_id: str = Field(min_length=1, max_length=64)
    course_id: str = Field(min_length=1, max_length=128)
    started_at: datetime | None = None


# --- Levels ---


class LevelResponse(BaseModel):
    level: int
    name: str
    icon: str
    min_xp: int
    next_level: int | None = None
    next_level_min_xp: int | None = None
    xp_to_next: int
    progress_percent: int


class LevelEntry(BaseModel):
    level: int
    name: str
    icon: str
    min_xp: int


# --- Badges ---


class BadgeResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    kind: str
    threshold: int | None = None
    xp_reward: int


class EarnedBadgeResponse(BadgeResponse):
    earned_at: datetime


class BadgeSummary(BaseModel):
    earned: list[EarnedBadgeResponse]
    available: list[BadgeResponse]


# --- Rewards ---


class RewardEntry(BaseModel):
    type: Literal["xp", "level_up", "streak", "badge"]
    value: int | str
    reason: str | None = None
    details: dict[str, Any] = {}


class ProfileSummary(BaseModel):
    total_xp: int
    level: LevelResponse
    current_streak: int
    longest_streak: int
    streak_shields: int
    last_activity_date: date | None = None
    total_lessons_completed: int
    total_quizzes_completed: int
    total_perfect_quizzes: int
    total_courses_completed: int
    total_study_minutes: int


class RewardResponse(BaseModel):
    rewards: list[RewardEntry]
    new_stats: ProfileSummary
    already_processed: bool = False


# --- XP history ---


class XPHistoryEntry(BaseModel):
    id: int
    amount: int
    reason: str
    reference_type: str
    reference_id: str
    description: str | None = None
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Stats (dashboard) ---


class StreakResponse(BaseModel):
    current: int
    longest: int
    shields: int
    last_activity_date: date | None = None
    active_today: bool = False


class DailyChallengeResponse(BaseModel):
    id: str
    name: str
    description: str
    type: str
    target: int
    progress: int
    completed: bool


class StatsResponse(BaseModel):
    user_id: str
    total_xp: int
    level: LevelResponse
    next_level: LevelEntry | None = None
    streak: StreakResponse
    badges: BadgeSummary
    counters: dict[str, int]
    daily_challenges: list[DailyChallengeResponse]
    recent_transactions: list[XPHistoryEntry]


# --- Leaderboard ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    xp: int
    level: int
    streak: int


class LeaderboardResponse(BaseModel):
    period: str
    entries: list[LeaderboardEntry]


# --- Config ---


class ConfigResponse(BaseModel):
    levels: list[LevelEntry]
    badges: list[BadgeResponse]
    xp_rewards: dict[str, int]


# --- Streak shields ---


class ShieldGrantRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=10)


class ShieldGrantResponse(BaseModel):
    user_id: str
    streak_shields: int
