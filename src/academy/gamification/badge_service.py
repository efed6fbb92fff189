"""Badge evaluation and award with duplicate prevention."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import dialect_insert
from academy.db.models import UserBadge
from academy.gamification.badges import BADGE_CATALOG, BadgeContext, get_badge
from academy.gamification.xp_service import XPReason, apply_delta, record_transaction

logger = logging.getLogger(__name__)


async def get_user_badges(db: AsyncSession, user_id: str) -> list[UserBadge]:
    """All badges a user holds, oldest first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.asc(), UserBadge.badge_id)
    )
    return list(result.scalars().all())


async def get_earned_slugs(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
    return set(result.scalars().all())


async def has_badge(db: AsyncSession, user_id: str, badge_slug: str) -> bool:
    """Check if user already has a specific badge."""
    return badge_slug in await get_earned_slugs(db, user_id)


async def award_badge(
    db: AsyncSession,
    user_id: str,
    badge_slug: str,
    now: datetime | None = None,
) -> bool:
    """Award a badge to a user.

    Returns True only when this call inserted the UserBadge row. The insert is
    ON CONFLICT DO NOTHING against UNIQUE(user_id, badge_id), so concurrent
    evaluations cannot both win. The winner also grants the badge's XP bonus
    (itself idempotent via the ledger key).
    """
    badge = get_badge(badge_slug)
    if badge is None:
        logger.warning("Badge not found: %s", badge_slug)
        return False

    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        dialect_insert(db, UserBadge)
        .values(user_id=user_id, badge_id=badge_slug, earned_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        return False  # already earned, possibly by a concurrent request

    if badge.xp_reward > 0:
        ledger = await record_transaction(
            db,
            user_id=user_id,
            amount=badge.xp_reward,
            reason=XPReason.BADGE_BONUS,
            reference_type="badge",
            reference_id=badge_slug,
            description=f'Earned badge: "{badge.name}"',
            now=now,
        )
        if ledger.accepted:
            await apply_delta(db, user_id, xp_delta=badge.xp_reward)

    logger.info("Badge %s awarded to %s", badge_slug, user_id)
    return True


async def evaluate(
    db: AsyncSession,
    user_id: str,
    ctx: BadgeContext,
    now: datetime | None = None,
) -> list[str]:
    """Award every catalog badge whose rule holds for ``ctx`` and the user lacks.

    Returns the newly earned slugs in catalog order.
    """
    earned = await get_earned_slugs(db, user_id)
    awarded: list[str] = []

    for rule in BADGE_CATALOG:
        if rule.slug in earned or not rule.is_satisfied(ctx):
            continue
        if await award_badge(db, user_id, rule.slug, now=now):
            awarded.append(rule.slug)

    return awarded
