"""Integration tests for xp_service: idempotent ledger writes and atomic profile deltas."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import get_session_factory
from academy.db.models import UserGamification, XPTransaction
from academy.gamification.xp_service import (
    XPReason,
    apply_delta,
    get_leaderboard,
    get_or_create_gamification,
    get_profile_snapshot,
    get_xp_history,
    grant_streak_shields,
    make_idempotency_key,
    record_correction,
    record_transaction,
    sum_accepted_xp,
)

NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _count(db: AsyncSession, model, user_id: str) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(model.user_id == user_id))
    return result.scalar() or 0


class TestRecordTransaction:

    @pytest.mark.asyncio
    async def test_first_award_accepted(self, db_session: AsyncSession):
        result = await record_transaction(
            db_session, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", "Completed lesson L1", now=NOON,
        )
        await db_session.commit()

        assert result.accepted is True
        assert result.transaction.amount == 25
        assert result.transaction.idempotency_key == "u1:lesson:L1:lesson_complete"

    @pytest.mark.asyncio
    async def test_duplicate_award_rejected(self, db_session: AsyncSession):
        await record_transaction(db_session, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON)
        again = await record_transaction(db_session, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON)
        await db_session.commit()

        assert again.accepted is False
        assert again.transaction is not None
        assert await _count(db_session, XPTransaction, "u1") == 1

    @pytest.mark.asyncio
    async def test_same_reference_different_reason_both_accepted(self, db_session: AsyncSession):
        first = await record_transaction(db_session, "u1", 50, XPReason.QUIZ_PASS, "quiz", "Q1", now=NOON)
        second = await record_transaction(db_session, "u1", 100, XPReason.QUIZ_PERFECT, "quiz", "Q1", now=NOON)
        await db_session.commit()

        assert first.accepted and second.accepted
        assert await _count(db_session, XPTransaction, "u1") == 2

    @pytest.mark.asyncio
    async def test_same_reference_different_users_both_accepted(self, db_session: AsyncSession):
        a = await record_transaction(db_session, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON)
        b = await record_transaction(db_session, "u2", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON)
        assert a.accepted and b.accepted

    @pytest.mark.asyncio
    async def test_duplicate_rejected_from_another_session(self, db_session: AsyncSession):
        """The unique key, not in-process state, decides: a second session sees the conflict."""
        await record_transaction(db_session, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON)
        await db_session.commit()

        async with get_session_factory()() as other:
            again = await record_transaction(
                other, "u1", 25, XPReason.LESSON_COMPLETE, "lesson", "L1", now=NOON,
            )
            await other.commit()

        assert again.accepted is False
        assert await _count(db_session, XPTransaction, "u1") == 1

    @pytest.mark.asyncio
    async def test_key_format(self):
        assert make_idempotency_key("u9", "badge", "streak_3", "badge_bonus") == "u9:badge:streak_3:badge_bonus"


class TestProfile:

    @pytest.mark.asyncio
    async def test_get_or_create_is_lazy_and_idempotent(self, db_session: AsyncSession):
        first = await get_or_create_gamification(db_session, "u1")
        second = await get_or_create_gamification(db_session, "u1")
        await db_session.commit()

        assert first.user_id == second.user_id == "u1"
        assert first.total_xp == 0
        assert first.level == 1
        assert await _count(db_session, UserGamification, "u1") == 1

    @pytest.mark.asyncio
    async def test_snapshot_never_creates_row(self, db_session: AsyncSession):
        gam = await get_profile_snapshot(db_session, "ghost")

        assert gam.total_xp == 0
        assert gam.current_streak == 0
        assert gam.last_activity_date is None
        assert await _count(db_session, UserGamification, "ghost") == 0

    @pytest.mark.asyncio
    async def test_apply_delta_accumulates(self, db_session: AsyncSession):
        await apply_delta(db_session, "u1", xp_delta=25, total_lessons_completed=1, total_study_minutes=12)
        gam = await apply_delta(db_session, "u1", xp_delta=100, total_quizzes_completed=1)
        await db_session.commit()

        assert gam.total_xp == 125
        assert gam.level == 2
        assert gam.total_lessons_completed == 1
        assert gam.total_quizzes_completed == 1
        assert gam.total_study_minutes == 12

    @pytest.mark.asyncio
    async def test_apply_delta_rejects_unknown_counter(self, db_session: AsyncSession):
        with pytest.raises(ValueError, match="Unknown profile counters"):
            await apply_delta(db_session, "u1", xp_delta=10, total_xp=5)

    @pytest.mark.asyncio
    async def test_correction_lowers_xp_but_not_level(self, db_session: AsyncSession):
        await record_transaction(db_session, "u1", 150, XPReason.COURSE_COMPLETE, "course", "C1", now=NOON)
        await apply_delta(db_session, "u1", xp_delta=150)

        gam = await record_correction(db_session, "u1", -100, "course", "C1", "Course reset by support")
        await db_session.commit()

        assert gam.total_xp == 50
        assert gam.level == 2
        assert await sum_accepted_xp(db_session, "u1") == 50

    @pytest.mark.asyncio
    async def test_corrections_carry_no_key(self, db_session: AsyncSession):
        await record_correction(db_session, "u1", -5, "manual", "ticket-1", "Typo")
        await record_correction(db_session, "u1", -5, "manual", "ticket-1", "Typo")
        await db_session.commit()

        rows = (await db_session.execute(
            select(XPTransaction).where(XPTransaction.user_id == "u1")
        )).scalars().all()
        assert len(rows) == 2
        assert all(row.idempotency_key is None for row in rows)

    @pytest.mark.asyncio
    async def test_grant_streak_shields(self, db_session: AsyncSession):
        await grant_streak_shields(db_session, "u1", 2)
        gam = await grant_streak_shields(db_session, "u1", 1)
        assert gam.streak_shields == 3

    @pytest.mark.asyncio
    async def test_grant_streak_shields_requires_positive(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            await grant_streak_shields(db_session, "u1", 0)


class TestHistoryAndLeaderboard:

    @pytest.mark.asyncio
    async def test_history_newest_first_and_paginated(self, db_session: AsyncSession):
        for i in range(5):
            await record_transaction(
                db_session, "u1", 10, XPReason.LESSON_COMPLETE, "lesson", f"L{i}",
                now=NOON + timedelta(minutes=i),
            )
        await db_session.commit()

        page1, total = await get_xp_history(db_session, "u1", page=1, per_page=2)
        page3, _ = await get_xp_history(db_session, "u1", page=3, per_page=2)

        assert total == 5
        assert [tx.reference_id for tx in page1] == ["L4", "L3"]
        assert [tx.reference_id for tx in page3] == ["L0"]

    @pytest.mark.asyncio
    async def test_history_same_timestamp_newest_insert_first(self, db_session: AsyncSession):
        for i in range(6):
            await record_transaction(
                db_session, "u1", 10, XPReason.LESSON_COMPLETE, "lesson", f"L{i}", now=NOON,
            )
        await db_session.commit()

        for _ in range(3):
            entries, _ = await get_xp_history(db_session, "u1")
            assert [tx.reference_id for tx in entries] == ["L5", "L4", "L3", "L2", "L1", "L0"]

    @pytest.mark.asyncio
    async def test_history_empty_for_unknown_user(self, db_session: AsyncSession):
        entries, total = await get_xp_history(db_session, "ghost")
        assert entries == []
        assert total == 0

    @pytest.mark.asyncio
    async def test_leaderboard_ranks_by_period_xp(self, db_session: AsyncSession):
        for user_id, amount in [("alice", 300), ("bob", 500), ("carol", 100)]:
            await record_transaction(db_session, user_id, amount, XPReason.COURSE_COMPLETE, "course", "C1", now=NOON)
            await apply_delta(db_session, user_id, xp_delta=amount)
        await db_session.commit()

        rows = await get_leaderboard(db_session, period="weekly", now=NOON + timedelta(days=1))

        assert [r["user_id"] for r in rows] == ["bob", "alice", "carol"]
        assert [r["rank"] for r in rows] == [1, 2, 3]
        assert rows[0]["xp"] == 500
        assert rows[0]["level"] == 3

    @pytest.mark.asyncio
    async def test_leaderboard_window_excludes_old_xp(self, db_session: AsyncSession):
        await record_transaction(db_session, "alice", 300, XPReason.COURSE_COMPLETE, "course", "C1", now=NOON)
        await apply_delta(db_session, "alice", xp_delta=300)
        await db_session.commit()

        later = NOON + timedelta(days=10)
        assert await get_leaderboard(db_session, period="weekly", now=later) == []
        assert len(await get_leaderboard(db_session, period="monthly", now=later)) == 1
        assert len(await get_leaderboard(db_session, period="all", now=later)) == 1

    @pytest.mark.asyncio
    async def test_leaderboard_unknown_period(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            await get_leaderboard(db_session, period="yearly")
