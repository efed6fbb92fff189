"""Integration tests for badge_service: unique awards and bonus XP."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import get_session_factory
from academy.gamification import badge_service
from academy.gamification.badges import TRIGGER_LESSON, BadgeContext
from academy.gamification.xp_service import get_profile_snapshot, sum_accepted_xp

NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _ctx(**overrides) -> BadgeContext:
    values = dict(
        total_lessons_completed=0,
        total_quizzes_completed=0,
        total_perfect_quizzes=0,
        total_courses_completed=0,
        current_streak=0,
        level=1,
        trigger=TRIGGER_LESSON,
        local_time=NOON,
    )
    values.update(overrides)
    return BadgeContext(**values)


class TestAwardBadge:

    @pytest.mark.asyncio
    async def test_award_once(self, db_session: AsyncSession):
        assert await badge_service.award_badge(db_session, "u1", "first_lesson", now=NOON) is True
        assert await badge_service.award_badge(db_session, "u1", "first_lesson", now=NOON) is False
        await db_session.commit()

        badges = await badge_service.get_user_badges(db_session, "u1")
        assert [b.badge_id for b in badges] == ["first_lesson"]
        assert await badge_service.has_badge(db_session, "u1", "first_lesson")

    @pytest.mark.asyncio
    async def test_unknown_badge(self, db_session: AsyncSession):
        assert await badge_service.award_badge(db_session, "u1", "does_not_exist") is False

    @pytest.mark.asyncio
    async def test_bonus_xp_credited_through_ledger(self, db_session: AsyncSession):
        await badge_service.award_badge(db_session, "u1", "streak_7", now=NOON)
        await db_session.commit()

        gam = await get_profile_snapshot(db_session, "u1")
        assert gam.total_xp == 100
        assert await sum_accepted_xp(db_session, "u1") == 100

    @pytest.mark.asyncio
    async def test_zero_reward_badge_writes_no_ledger_row(self, db_session: AsyncSession):
        await badge_service.award_badge(db_session, "u1", "first_lesson", now=NOON)
        await db_session.commit()
        assert await sum_accepted_xp(db_session, "u1") == 0

    @pytest.mark.asyncio
    async def test_second_session_cannot_award_again(self, db_session: AsyncSession):
        await badge_service.award_badge(db_session, "u1", "five_lessons", now=NOON)
        await db_session.commit()

        async with get_session_factory()() as other:
            again = await badge_service.award_badge(other, "u1", "five_lessons", now=NOON)
            await other.commit()

        assert again is False
        assert (await get_profile_snapshot(db_session, "u1")).total_xp == 50


class TestEvaluate:

    @pytest.mark.asyncio
    async def test_returns_new_badges_in_catalog_order(self, db_session: AsyncSession):
        ctx = _ctx(total_lessons_completed=5, current_streak=3)
        awarded = await badge_service.evaluate(db_session, "u1", ctx, now=NOON)
        assert awarded == ["first_lesson", "five_lessons", "streak_3"]

    @pytest.mark.asyncio
    async def test_repeat_evaluation_awards_nothing(self, db_session: AsyncSession):
        ctx = _ctx(total_lessons_completed=1)
        assert await badge_service.evaluate(db_session, "u1", ctx, now=NOON) == ["first_lesson"]
        assert await badge_service.evaluate(db_session, "u1", ctx, now=NOON) == []

    @pytest.mark.asyncio
    async def test_earned_slugs(self, db_session: AsyncSession):
        await badge_service.evaluate(db_session, "u1", _ctx(level=5), now=NOON)
        assert await badge_service.get_earned_slugs(db_session, "u1") == {"level_5"}
