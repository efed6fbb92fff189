"""ORM models for the gamification schema.

The same tables are created in Postgres by alembic/versions/001_gamification_tables.py.
User ids are opaque strings owned by the auth service; there is no users table here.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from academy.db.base import Base


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class UserGamification(Base):
    """Denormalized gamification profile, single row per user, O(1) reads.

    Counters only move through atomic ``col = col + :n`` updates in xp_service.
    """

    __tablename__ = "user_gamification"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    streak_shields: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_quizzes_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_perfect_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_courses_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_study_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class XPTransaction(Base):
    """Append-only XP ledger.

    Positive awards carry ``idempotency_key`` = user:reference_type:reference_id:reason
    under a UNIQUE constraint; corrections leave it NULL.
    """

    __tablename__ = "xp_transactions"
    __table_args__ = (
        Index("idx_xp_transactions_user_created", "user_id", "created_at"),
    )

    # Monotonic: breaks created_at ties in insertion order. SQLite only autoincrements INTEGER keys.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserBadge(Base):
    """Badges earned by users. UNIQUE(user_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    badge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class DailyActivity(Base):
    """Per-user, per-local-day activity counters (daily challenges, rising star)."""

    __tablename__ = "daily_activity"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="daily_activity_user_id_activity_date_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    quizzes_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    perfect_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    study_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
