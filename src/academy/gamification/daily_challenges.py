"""Daily challenges: derived each day from DailyActivity, never stored on their own."""

from __future__ import annotations

from datetime import date

from academy.db.models import DailyActivity

DAILY_CHALLENGES: list[dict] = [
    {"id": "watch_one", "name": "Watch a lesson", "description": "Complete one lesson today",
     "type": "lesson", "target": 1},
    {"id": "watch_three", "name": "Three in a row", "description": "Complete 3 lessons today",
     "type": "lesson", "target": 3},
    {"id": "take_quiz", "name": "Quiz time", "description": "Pass one quiz today",
     "type": "quiz", "target": 1},
    {"id": "perfect_quiz", "name": "Flawless", "description": "Score 100% on a quiz today",
     "type": "perfect_quiz", "target": 1},
    {"id": "study_15", "name": "15 minutes", "description": "Study for at least 15 minutes today",
     "type": "time", "target": 15},
]

CHALLENGES_PER_DAY = 3

_ACTIVITY_FIELD = {
    "lesson": "lessons_completed",
    "quiz": "quizzes_completed",
    "perfect_quiz": "perfect_quizzes",
    "time": "study_minutes",
}


def challenges_for_day(day: date) -> list[dict]:
    """Pick the day's challenges. Deterministic in the date, same for every user."""
    seed = int(day.strftime("%Y%m%d"))
    ranked = sorted(
        DAILY_CHALLENGES,
        key=lambda c: ((seed * sum(ord(ch) for ch in c["id"])) % 97, c["id"]),
    )
    return ranked[:CHALLENGES_PER_DAY]


def challenge_progress(day: date, activity: DailyActivity | None) -> list[dict]:
    """Today's challenges with progress taken from the day's activity counters."""
    out = []
    for challenge in challenges_for_day(day):
        done = getattr(activity, _ACTIVITY_FIELD[challenge["type"]]) if activity is not None else 0
        progress = min(done or 0, challenge["target"])
        out.append({
            **challenge,
            "progress": progress,
            "completed": progress >= challenge["target"],
        })
    return out
