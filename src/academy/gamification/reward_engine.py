"""Reward engine: turns learning events into one idempotent batch of rewards.

Per accepted event: ledger row, atomic profile delta, daily activity, streak,
badges (to a fixed point, since badge bonuses can raise the level), then a
single commit. Duplicate events are answered with the current state and no
rewards. Any failure rolls the whole event back.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from academy.config import Settings, get_settings
from academy.db.models import UserGamification
from academy.gamification import badge_service
from academy.gamification.badges import (
    BADGE_CATALOG,
    BADGES_BY_SLUG,
    TRIGGER_COURSE,
    TRIGGER_LESSON,
    TRIGGER_QUIZ,
    BadgeContext,
)
from academy.gamification.daily_challenges import challenge_progress
from academy.gamification.level_thresholds import LEVEL_THRESHOLDS, level_for_xp
from academy.gamification.schemas import (
    BadgeResponse,
    BadgeSummary,
    CourseCompletedEvent,
    DailyChallengeResponse,
    EarnedBadgeResponse,
    LessonCompletedEvent,
    LevelEntry,
    LevelResponse,
    ProfileSummary,
    QuizCompletedEvent,
    RewardEntry,
    RewardResponse,
    StatsResponse,
    StreakResponse,
    XPHistoryEntry,
)
from academy.gamification.streak_service import (
    STREAK_BONUS_XP,
    StreakTransition,
    advance_streak,
    get_daily_activity,
    local_day,
    record_daily_activity,
    to_local,
)
from academy.gamification.xp_service import (
    XPReason,
    apply_delta,
    get_or_create_gamification,
    get_profile_snapshot,
    get_xp_history,
    has_other_award,
    record_transaction,
    reload_gamification,
)

logger = logging.getLogger(__name__)

XP_REWARDS: dict[str, int] = {
    XPReason.LESSON_COMPLETE.value: 25,
    XPReason.QUIZ_PASS.value: 50,
    XPReason.QUIZ_PERFECT.value: 100,
    XPReason.COURSE_COMPLETE.value: 500,
    XPReason.STREAK_BONUS.value: STREAK_BONUS_XP,
}

PERFECT_PERCENTAGE = 100.0
# Callers round the percentage they report.
PERCENTAGE_TOLERANCE = 0.5
REWARDS_CHANNEL = "pubsub:rewards"
# Counted once per quiz however many awards its attempts earn.
QUIZ_ATTEMPT_COUNTERS = frozenset({"total_quizzes_completed", "quizzes"})


class InvalidEventError(ValueError):
    """Event data failed validation; nothing was written."""


def level_response(total_xp: int) -> LevelResponse:
    return LevelResponse(**level_for_xp(total_xp).to_dict())


def profile_summary(gam: UserGamification) -> ProfileSummary:
    return ProfileSummary(
        total_xp=gam.total_xp,
        level=level_response(gam.total_xp),
        current_streak=gam.current_streak,
        longest_streak=gam.longest_streak,
        streak_shields=gam.streak_shields,
        last_activity_date=gam.last_activity_date,
        total_lessons_completed=gam.total_lessons_completed,
        total_quizzes_completed=gam.total_quizzes_completed,
        total_perfect_quizzes=gam.total_perfect_quizzes,
        total_courses_completed=gam.total_courses_completed,
        total_study_minutes=gam.total_study_minutes,
    )


class RewardEngine:
    """Processes lesson, quiz and course completions for the gamification ledger."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.settings = settings or get_settings()

    # --- Public events ---

    async def process_lesson_completed(
        self, event: LessonCompletedEvent, now: datetime | None = None
    ) -> RewardResponse:
        if event.watch_time_seconds < 0:
            raise InvalidEventError("watch_time_seconds must not be negative")

        minutes = round(event.watch_time_seconds / 60)
        return await self._process(
            user_id=event.user_id,
            trigger=TRIGGER_LESSON,
            reason=XPReason.LESSON_COMPLETE,
            reference_type="lesson",
            reference_id=event.lesson_id,
            description=f"Completed lesson {event.lesson_id}",
            counters={"total_lessons_completed": 1, "total_study_minutes": minutes},
            daily={"lessons": 1, "study_minutes": minutes},
            now=now,
        )

    async def process_quiz_completed(
        self, event: QuizCompletedEvent, now: datetime | None = None
    ) -> RewardResponse:
        if not 0 <= event.percentage <= 100:
            raise InvalidEventError("percentage must be between 0 and 100")
        if event.max_score <= 0:
            raise InvalidEventError("max_score must be positive")
        if not 0 <= event.score <= event.max_score:
            raise InvalidEventError("score must be between 0 and max_score")
        expected = 100 * event.score / event.max_score
        if abs(event.percentage - expected) > PERCENTAGE_TOLERANCE:
            raise InvalidEventError(
                f"percentage {event.percentage:g} does not match score {event.score:g}/{event.max_score:g}"
            )

        perfect = event.percentage >= PERFECT_PERCENTAGE
        reason = XPReason.QUIZ_PERFECT if perfect else XPReason.QUIZ_PASS
        return await self._process(
            user_id=event.user_id,
            trigger=TRIGGER_QUIZ,
            reason=reason,
            reference_type="quiz",
            reference_id=event.quiz_id,
            description=f"Quiz {event.quiz_id}: {event.percentage:g}%",
            counters={
                "total_quizzes_completed": 1,
                "total_perfect_quizzes": 1 if perfect else 0,
            },
            daily={"quizzes": 1, "perfect_quizzes": 1 if perfect else 0},
            now=now,
            count_once=QUIZ_ATTEMPT_COUNTERS,
        )

    async def process_course_completed(
        self, event: CourseCompletedEvent, now: datetime | None = None
    ) -> RewardResponse:
        if now is None:
            now = datetime.now(timezone.utc)

        days_taken = None
        if event.started_at is not None:
            started = event.started_at
            if started.tzinfo is None:
                started = started.replace(tzinfo=timezone.utc)
            elapsed = (now - started).total_seconds()
            if elapsed < 0:
                raise InvalidEventError("started_at is in the future")
            days_taken = max(1, math.ceil(elapsed / 86400))

        return await self._process(
            user_id=event.user_id,
            trigger=TRIGGER_COURSE,
            reason=XPReason.COURSE_COMPLETE,
            reference_type="course",
            reference_id=event.course_id,
            description=f"Completed course {event.course_id}",
            counters={"total_courses_completed": 1},
            daily={},
            now=now,
            course_days_taken=days_taken,
        )

    # --- Read side ---

    async def get_stats(self, user_id: str, now: datetime | None = None) -> StatsResponse:
        """Dashboard stats. Pure read: unknown users get zeroed defaults, nothing is created."""
        if now is None:
            now = datetime.now(timezone.utc)
        today = local_day(now, self.settings.streak_timezone)

        gam = await get_profile_snapshot(self.db, user_id)
        level = level_for_xp(gam.total_xp)
        next_level = None
        if level.next_level is not None:
            next_level = LevelEntry(**LEVEL_THRESHOLDS[level.next_level - 1])

        earned_rows = await badge_service.get_user_badges(self.db, user_id)
        earned_slugs = {row.badge_id for row in earned_rows}
        earned = [
            EarnedBadgeResponse(**BADGES_BY_SLUG[row.badge_id].to_dict(), earned_at=row.earned_at)
            for row in earned_rows
            if row.badge_id in BADGES_BY_SLUG
        ]
        available = [BadgeResponse(**b.to_dict()) for b in BADGE_CATALOG if b.slug not in earned_slugs]

        activity = await get_daily_activity(self.db, user_id, today)
        history, _ = await get_xp_history(
            self.db, user_id, page=1, per_page=self.settings.recent_transactions_limit
        )

        return StatsResponse(
            user_id=user_id,
            total_xp=gam.total_xp,
            level=LevelResponse(**level.to_dict()),
            next_level=next_level,
            streak=StreakResponse(
                current=gam.current_streak,
                longest=gam.longest_streak,
                shields=gam.streak_shields,
                last_activity_date=gam.last_activity_date,
                active_today=gam.last_activity_date == today,
            ),
            badges=BadgeSummary(earned=earned, available=available),
            counters={
                "lessons_completed": gam.total_lessons_completed,
                "quizzes_completed": gam.total_quizzes_completed,
                "perfect_quizzes": gam.total_perfect_quizzes,
                "courses_completed": gam.total_courses_completed,
                "study_minutes": gam.total_study_minutes,
            },
            daily_challenges=[DailyChallengeResponse(**c) for c in challenge_progress(today, activity)],
            recent_transactions=[XPHistoryEntry.model_validate(tx, from_attributes=True) for tx in history],
        )

    # --- Internals ---

    async def _process(
        self,
        *,
        user_id: str,
        trigger: str,
        reason: XPReason,
        reference_type: str,
        reference_id: str,
        description: str,
        counters: dict[str, int],
        daily: dict[str, int],
        now: datetime | None,
        course_days_taken: int | None = None,
        count_once: frozenset[str] = frozenset(),
    ) -> RewardResponse:
        if now is None:
            now = datetime.now(timezone.utc)

        try:
            response = await self._apply(
                user_id=user_id,
                trigger=trigger,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
                counters=counters,
                daily=daily,
                now=now,
                course_days_taken=course_days_taken,
                count_once=count_once,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error(
                "Reward processing failed for %s (%s %s:%s)",
                user_id, trigger, reference_type, reference_id, exc_info=True,
            )
            raise

        if response.rewards:
            await self._publish(user_id, trigger, response)
        return response

    async def _apply(
        self,
        *,
        user_id: str,
        trigger: str,
        reason: XPReason,
        reference_type: str,
        reference_id: str,
        description: str,
        counters: dict[str, int],
        daily: dict[str, int],
        now: datetime,
        course_days_taken: int | None,
        count_once: frozenset[str],
    ) -> RewardResponse:
        amount = XP_REWARDS[reason.value]

        ledger = await record_transaction(
            self.db, user_id, amount, reason, reference_type, reference_id, description, now=now,
        )
        if not ledger.accepted:
            gam = await get_profile_snapshot(self.db, user_id)
            return RewardResponse(rewards=[], new_stats=profile_summary(gam), already_processed=True)

        if count_once and await has_other_award(
            self.db, user_id, reference_type, reference_id, ledger.transaction.id
        ):
            counters = {k: v for k, v in counters.items() if k not in count_once}
            daily = {k: v for k, v in daily.items() if k not in count_once}

        before = await get_or_create_gamification(self.db, user_id)
        level_before = level_for_xp(before.total_xp).level

        await apply_delta(self.db, user_id, xp_delta=amount, **counters)

        local_now = to_local(now, self.settings.streak_timezone)
        today = local_now.date()
        activity = await record_daily_activity(self.db, user_id, today, **daily) if daily else None

        streak = await advance_streak(self.db, user_id, today)
        streak_bonus = await self._grant_streak_bonus(user_id, streak, today, now)

        badges = await self._evaluate_badges(
            user_id,
            trigger=trigger,
            local_now=local_now,
            lessons_today=activity.lessons_completed if activity is not None else 0,
            course_days_taken=course_days_taken,
            now=now,
        )

        gam = await reload_gamification(self.db, user_id)
        level_after = level_for_xp(gam.total_xp)

        rewards = [
            RewardEntry(
                type="xp",
                value=amount,
                reason=reason.value,
                details={"reference_type": reference_type, "reference_id": reference_id},
            )
        ]
        if level_after.level > level_before:
            rewards.append(RewardEntry(
                type="level_up",
                value=level_after.level,
                details={
                    "previous_level": level_before,
                    "name": level_after.name,
                    "icon": level_after.icon,
                },
            ))
        if streak.updated:
            rewards.append(RewardEntry(
                type="streak",
                value=streak.current_streak,
                details={
                    "longest_streak": streak.longest_streak,
                    "shield_used": streak.shield_used,
                    "shields_remaining": streak.shields_remaining,
                    "bonus_xp": streak_bonus,
                },
            ))
        for slug in badges:
            rewards.append(RewardEntry(type="badge", value=slug, details=BADGES_BY_SLUG[slug].to_dict()))

        logger.info(
            "Processed %s %s:%s for %s: +%d XP, level %d->%d, badges=%s",
            trigger, reference_type, reference_id, user_id, amount,
            level_before, level_after.level, badges,
        )
        return RewardResponse(rewards=rewards, new_stats=profile_summary(gam))

    async def _grant_streak_bonus(
        self, user_id: str, streak: StreakTransition, today: date, now: datetime
    ) -> int:
        """Bonus XP the first time each day a streak continues past day one."""
        if not streak.updated or streak.current_streak <= 1:
            return 0
        ledger = await record_transaction(
            self.db,
            user_id,
            STREAK_BONUS_XP,
            XPReason.STREAK_BONUS,
            "streak",
            today.isoformat(),
            f"Learning streak day {streak.current_streak}",
            now=now,
        )
        if not ledger.accepted:
            return 0
        await apply_delta(self.db, user_id, xp_delta=STREAK_BONUS_XP)
        return STREAK_BONUS_XP

    async def _evaluate_badges(
        self,
        user_id: str,
        *,
        trigger: str,
        local_now: datetime,
        lessons_today: int,
        course_days_taken: int | None,
        now: datetime,
    ) -> list[str]:
        """Evaluate until no new badge unlocks; badge XP can lift the level into level badges."""
        awarded: list[str] = []
        for _ in range(len(BADGE_CATALOG)):
            gam = await reload_gamification(self.db, user_id)
            ctx = BadgeContext(
                total_lessons_completed=gam.total_lessons_completed,
                total_quizzes_completed=gam.total_quizzes_completed,
                total_perfect_quizzes=gam.total_perfect_quizzes,
                total_courses_completed=gam.total_courses_completed,
                current_streak=gam.current_streak,
                level=level_for_xp(gam.total_xp).level,
                trigger=trigger,
                local_time=local_now,
                lessons_today=lessons_today,
                course_days_taken=course_days_taken,
            )
            new = await badge_service.evaluate(self.db, user_id, ctx, now=now)
            if not new:
                break
            awarded.extend(new)
        return awarded

    async def _publish(self, user_id: str, trigger: str, response: RewardResponse) -> None:
        """Broadcast the committed batch for live UIs. Best effort only."""
        if self.redis is None:
            return
        try:
            await self.redis.publish(  # type: ignore[union-attr]
                REWARDS_CHANNEL,
                json.dumps({
                    "user_id": user_id,
                    "trigger": trigger,
                    "rewards": [r.model_dump(mode="json") for r in response.rewards],
                    "total_xp": response.new_stats.total_xp,
                    "level": response.new_stats.level.level,
                }),
            )
        except Exception:
            logger.warning("Failed to publish reward batch", exc_info=True)
