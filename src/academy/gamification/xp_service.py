"""XP ledger: idempotent award recording and atomic profile updates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import dialect_insert
from academy.db.models import UserGamification, XPTransaction
from academy.gamification.level_thresholds import level_number

logger = logging.getLogger(__name__)


class XPReason(str, Enum):
    LESSON_COMPLETE = "lesson_complete"
    QUIZ_PASS = "quiz_pass"
    QUIZ_PERFECT = "quiz_perfect"
    STREAK_BONUS = "streak_bonus"
    BADGE_BONUS = "badge_bonus"
    COURSE_COMPLETE = "course_complete"
    CORRECTION = "correction"


# Counters apply_delta may touch. Anything else is a programming error.
PROFILE_COUNTERS = frozenset({
    "total_lessons_completed",
    "total_quizzes_completed",
    "total_perfect_quizzes",
    "total_courses_completed",
    "total_study_minutes",
    "streak_shields",
})

LEADERBOARD_PERIODS: dict[str, timedelta | None] = {
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
    "all": None,
}


@dataclass(frozen=True)
class LedgerResult:
    accepted: bool
    transaction: XPTransaction | None


def make_idempotency_key(user_id: str, reference_type: str, reference_id: str, reason: str) -> str:
    return f"{user_id}:{reference_type}:{reference_id}:{reason}"


def default_profile(user_id: str) -> UserGamification:
    """Transient zeroed profile for users with no recorded activity."""
    return UserGamification(
        user_id=user_id,
        total_xp=0,
        level=1,
        current_streak=0,
        longest_streak=0,
        last_activity_date=None,
        streak_shields=0,
        total_lessons_completed=0,
        total_quizzes_completed=0,
        total_perfect_quizzes=0,
        total_courses_completed=0,
        total_study_minutes=0,
    )


async def get_or_create_gamification(db: AsyncSession, user_id: str) -> UserGamification:
    """Get or create the denormalized gamification row for a user.

    Uses INSERT .. ON CONFLICT DO NOTHING so two first events for the same
    user cannot both try to create the row.
    """
    gam = await _fetch(db, user_id)
    if gam is not None:
        return gam

    stmt = dialect_insert(db, UserGamification).values(user_id=user_id)
    stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
    await db.execute(stmt)

    return await reload_gamification(db, user_id)


async def get_profile_snapshot(db: AsyncSession, user_id: str) -> UserGamification:
    """Read-only profile lookup. Never writes; unknown users get zeroed defaults."""
    gam = await _fetch(db, user_id)
    return gam if gam is not None else default_profile(user_id)


async def record_transaction(
    db: AsyncSession,
    user_id: str,
    amount: int,
    reason: XPReason | str,
    reference_type: str,
    reference_id: str,
    description: str | None = None,
    now: datetime | None = None,
) -> LedgerResult:
    """Append an XP transaction. Returns accepted=False for a duplicate positive award.

    Deduplication is an atomic INSERT .. ON CONFLICT DO NOTHING on the unique
    idempotency key, never a SELECT-then-INSERT. A rejected insert has no side
    effect; the existing transaction is returned for reference.
    """
    reason_value = reason.value if isinstance(reason, XPReason) else reason
    if now is None:
        now = datetime.now(timezone.utc)

    key = make_idempotency_key(user_id, reference_type, reference_id, reason_value) if amount > 0 else None

    stmt = dialect_insert(db, XPTransaction).values(
        user_id=user_id,
        amount=amount,
        reason=reason_value,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        idempotency_key=key,
        created_at=now,
    )
    if key is not None:
        stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])
    stmt = stmt.returning(XPTransaction.id)

    inserted_id = (await db.execute(stmt)).scalar_one_or_none()

    if inserted_id is None:
        existing = await db.execute(
            select(XPTransaction).where(XPTransaction.idempotency_key == key)
        )
        logger.info("Duplicate XP award rejected: %s", key)
        return LedgerResult(accepted=False, transaction=existing.scalar_one_or_none())

    return LedgerResult(accepted=True, transaction=await db.get(XPTransaction, inserted_id))


async def has_other_award(
    db: AsyncSession,
    user_id: str,
    reference_type: str,
    reference_id: str,
    exclude_id: int,
) -> bool:
    """True if the reference already earned a positive award besides transaction ``exclude_id``."""
    result = await db.execute(
        select(XPTransaction.id)
        .where(
            XPTransaction.user_id == user_id,
            XPTransaction.reference_type == reference_type,
            XPTransaction.reference_id == reference_id,
            XPTransaction.amount > 0,
            XPTransaction.id != exclude_id,
        )
        .limit(1)
    )
    return result.first() is not None


async def apply_delta(
    db: AsyncSession,
    user_id: str,
    xp_delta: int = 0,
    **counters: int,
) -> UserGamification:
    """Atomically add XP and counter increments to a profile in one UPDATE.

    ``total_xp = total_xp + :delta`` keeps concurrent events for the same user
    from losing updates. The denormalized level is only ever raised here.
    """
    unknown = set(counters) - PROFILE_COUNTERS
    if unknown:
        raise ValueError(f"Unknown profile counters: {sorted(unknown)}")

    await get_or_create_gamification(db, user_id)

    values: dict = {}
    if xp_delta:
        values["total_xp"] = UserGamification.total_xp + xp_delta
    for name, increment in counters.items():
        if increment:
            values[name] = getattr(UserGamification, name) + increment

    if values:
        values["updated_at"] = datetime.now(timezone.utc)
        await db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    gam = await reload_gamification(db, user_id)

    new_level = level_number(gam.total_xp)
    if new_level > gam.level:
        await db.execute(
            update(UserGamification)
            .where(UserGamification.user_id == user_id, UserGamification.level < new_level)
            .values(level=new_level)
            .execution_options(synchronize_session=False)
        )
        gam = await reload_gamification(db, user_id)

    return gam


async def record_correction(
    db: AsyncSession,
    user_id: str,
    amount: int,
    reference_type: str,
    reference_id: str,
    description: str,
) -> UserGamification:
    """Write a correction row and adjust total XP. The only way total XP goes down.

    The stored level is left as is; levels are never taken away.
    """
    await record_transaction(
        db, user_id, amount, XPReason.CORRECTION, reference_type, reference_id, description
    )
    gam = await apply_delta(db, user_id, xp_delta=amount)
    logger.info("XP correction for %s: %+d (%s:%s)", user_id, amount, reference_type, reference_id)
    return gam


async def grant_streak_shields(db: AsyncSession, user_id: str, count: int) -> UserGamification:
    """Add streak shields to a profile."""
    if count <= 0:
        raise ValueError("Shield count must be positive")
    return await apply_delta(db, user_id, streak_shields=count)


async def get_xp_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[XPTransaction], int]:
    """Return one page of a user's ledger (newest first, insertion order breaks ties) and the total row count."""
    total = (await db.execute(
        select(func.count()).select_from(XPTransaction).where(XPTransaction.user_id == user_id)
    )).scalar() or 0

    result = await db.execute(
        select(XPTransaction)
        .where(XPTransaction.user_id == user_id)
        .order_by(XPTransaction.created_at.desc(), XPTransaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def sum_accepted_xp(db: AsyncSession, user_id: str) -> int:
    """Sum of every ledger amount for a user; equals total_xp when the ledger is consistent."""
    result = await db.execute(
        select(func.coalesce(func.sum(XPTransaction.amount), 0)).where(XPTransaction.user_id == user_id)
    )
    return int(result.scalar() or 0)


async def get_leaderboard(
    db: AsyncSession,
    period: str = "weekly",
    limit: int = 20,
    now: datetime | None = None,
) -> list[dict]:
    """Rank users by XP earned in the period (weekly / monthly / all)."""
    if period not in LEADERBOARD_PERIODS:
        raise ValueError(f"Unknown leaderboard period: {period}")
    if now is None:
        now = datetime.now(timezone.utc)

    period_xp = func.sum(XPTransaction.amount).label("period_xp")
    stmt = (
        select(
            XPTransaction.user_id,
            period_xp,
            UserGamification.level,
            UserGamification.current_streak,
        )
        .join(UserGamification, UserGamification.user_id == XPTransaction.user_id)
        .group_by(XPTransaction.user_id, UserGamification.level, UserGamification.current_streak)
        .order_by(period_xp.desc(), XPTransaction.user_id)
        .limit(limit)
    )
    window = LEADERBOARD_PERIODS[period]
    if window is not None:
        stmt = stmt.where(XPTransaction.created_at >= now - window)

    rows = (await db.execute(stmt)).all()
    return [
        {
            "rank": i + 1,
            "user_id": row.user_id,
            "xp": int(row.period_xp or 0),
            "level": row.level,
            "streak": row.current_streak,
        }
        for i, row in enumerate(rows)
    ]


async def _fetch(db: AsyncSession, user_id: str) -> UserGamification | None:
    result = await db.execute(
        select(UserGamification)
        .where(UserGamification.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def reload_gamification(db: AsyncSession, user_id: str) -> UserGamification:
    """Re-read the profile row, overwriting any stale copy in the identity map."""
    gam = await _fetch(db, user_id)
    if gam is None:
        raise LookupError(f"No gamification profile for {user_id}")
    return gam
