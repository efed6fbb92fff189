"""Streak tracking: daily streaks with shield grace, and per-day activity counters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import dialect_insert
from academy.db.models import DailyActivity, UserGamification
from academy.gamification.xp_service import get_or_create_gamification

logger = logging.getLogger(__name__)

STREAK_BONUS_XP = 25


@dataclass(frozen=True)
class StreakTransition:
    updated: bool
    current_streak: int
    longest_streak: int
    shields_remaining: int
    shield_used: bool
    last_activity_date: date | None


def to_local(moment: datetime, tz_name: str = "UTC") -> datetime:
    """Convert a moment to the configured streak timezone. Naive datetimes are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def local_day(moment: datetime, tz_name: str = "UTC") -> date:
    """The calendar day a moment belongs to under the streak day policy."""
    return to_local(moment, tz_name).date()


def compute_streak_transition(
    last_activity_date: date | None,
    current_streak: int,
    longest_streak: int,
    shields: int,
    today: date,
) -> StreakTransition:
    """Pure streak state machine for one activity event on ``today``.

    - same day (or a later recorded day): no change
    - yesterday: continue
    - older, with a shield: consume one shield and continue
    - otherwise (gap, or first ever activity): restart at 1
    """
    if last_activity_date is not None and last_activity_date >= today:
        return StreakTransition(
            updated=False,
            current_streak=current_streak,
            longest_streak=longest_streak,
            shields_remaining=shields,
            shield_used=False,
            last_activity_date=last_activity_date,
        )

    shield_used = False
    if last_activity_date == today - timedelta(days=1):
        new_streak = current_streak + 1
    elif last_activity_date is not None and shields > 0:
        new_streak = current_streak + 1
        shield_used = True
    else:
        new_streak = 1

    return StreakTransition(
        updated=True,
        current_streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        shields_remaining=shields - 1 if shield_used else shields,
        shield_used=shield_used,
        last_activity_date=today,
    )


async def advance_streak(db: AsyncSession, user_id: str, today: date) -> StreakTransition:
    """Apply today's activity to the user's streak.

    The write is a compare-and-set on (last_activity_date, current_streak), so
    two concurrent first-events of the day advance the streak exactly once;
    the loser sees updated=False.
    """
    gam = await get_or_create_gamification(db, user_id)
    transition = compute_streak_transition(
        gam.last_activity_date,
        gam.current_streak,
        gam.longest_streak,
        gam.streak_shields,
        today,
    )
    if not transition.updated:
        return transition

    guard = (
        UserGamification.last_activity_date.is_(None)
        if gam.last_activity_date is None
        else UserGamification.last_activity_date == gam.last_activity_date
    )
    values: dict = {
        "current_streak": transition.current_streak,
        "longest_streak": transition.longest_streak,
        "last_activity_date": today,
        "updated_at": datetime.now(timezone.utc),
    }
    conditions = [
        UserGamification.user_id == user_id,
        guard,
        UserGamification.current_streak == gam.current_streak,
    ]
    if transition.shield_used:
        values["streak_shields"] = UserGamification.streak_shields - 1
        conditions.append(UserGamification.streak_shields > 0)

    result = await db.execute(
        update(UserGamification)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    refreshed = await db.execute(
        select(UserGamification)
        .where(UserGamification.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    gam = refreshed.scalar_one()

    if result.rowcount == 0:
        logger.info("Streak for %s already advanced by a concurrent event", user_id)
        return StreakTransition(
            updated=False,
            current_streak=gam.current_streak,
            longest_streak=gam.longest_streak,
            shields_remaining=gam.streak_shields,
            shield_used=False,
            last_activity_date=gam.last_activity_date,
        )

    if transition.shield_used:
        logger.info("Streak shield consumed for %s (streak %d)", user_id, transition.current_streak)
    return transition


async def record_daily_activity(
    db: AsyncSession,
    user_id: str,
    day: date,
    lessons: int = 0,
    quizzes: int = 0,
    perfect_quizzes: int = 0,
    study_minutes: int = 0,
) -> DailyActivity:
    """Upsert the per-day activity counters and return the fresh row."""
    stmt = dialect_insert(db, DailyActivity).values(
        user_id=user_id,
        activity_date=day,
        lessons_completed=lessons,
        quizzes_completed=quizzes,
        perfect_quizzes=perfect_quizzes,
        study_minutes=study_minutes,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "activity_date"],
        set_={
            "lessons_completed": DailyActivity.lessons_completed + lessons,
            "quizzes_completed": DailyActivity.quizzes_completed + quizzes,
            "perfect_quizzes": DailyActivity.perfect_quizzes + perfect_quizzes,
            "study_minutes": DailyActivity.study_minutes + study_minutes,
        },
    )
    await db.execute(stmt)

    result = await db.execute(
        select(DailyActivity)
        .where(DailyActivity.user_id == user_id, DailyActivity.activity_date == day)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_daily_activity(db: AsyncSession, user_id: str, day: date) -> DailyActivity | None:
    """Read a day's activity row without creating it."""
    result = await db.execute(
        select(DailyActivity).where(DailyActivity.user_id == user_id, DailyActivity.activity_date == day)
    )
    return result.scalar_one_or_none()
