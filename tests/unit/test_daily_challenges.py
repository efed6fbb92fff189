"""Daily challenge selection and progress tests."""

from datetime import date, timedelta

from academy.db.models import DailyActivity
from academy.gamification.daily_challenges import (
    CHALLENGES_PER_DAY,
    DAILY_CHALLENGES,
    challenge_progress,
    challenges_for_day,
)

DAY = date(2026, 3, 10)


def test_selection_is_deterministic():
    assert challenges_for_day(DAY) == challenges_for_day(DAY)


def test_selection_size_and_uniqueness():
    for offset in range(30):
        picked = challenges_for_day(DAY + timedelta(days=offset))
        ids = [c["id"] for c in picked]
        assert len(ids) == CHALLENGES_PER_DAY
        assert len(set(ids)) == CHALLENGES_PER_DAY
        assert set(ids) <= {c["id"] for c in DAILY_CHALLENGES}


def test_selection_varies_across_days():
    selections = {tuple(c["id"] for c in challenges_for_day(DAY + timedelta(days=d))) for d in range(30)}
    assert len(selections) > 1


def test_no_activity_means_no_progress():
    for challenge in challenge_progress(DAY, None):
        assert challenge["progress"] == 0
        assert challenge["completed"] is False


def test_progress_capped_at_target():
    activity = DailyActivity(
        user_id="u1",
        activity_date=DAY,
        lessons_completed=5,
        quizzes_completed=2,
        perfect_quizzes=1,
        study_minutes=40,
    )
    for challenge in challenge_progress(DAY, activity):
        assert challenge["progress"] == challenge["target"]
        assert challenge["completed"] is True


def test_partial_progress():
    activity = DailyActivity(
        user_id="u1",
        activity_date=DAY,
        lessons_completed=0,
        quizzes_completed=0,
        perfect_quizzes=0,
        study_minutes=5,
    )
    by_type = {c["type"]: c for c in challenge_progress(DAY, activity)}
    if "time" in by_type:
        assert by_type["time"]["progress"] == 5
        assert by_type["time"]["completed"] is False
    for kind in ("lesson", "quiz", "perfect_quiz"):
        if kind in by_type:
            assert by_type[kind]["progress"] == 0
