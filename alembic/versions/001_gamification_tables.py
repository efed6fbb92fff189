"""Gamification tables.

Creates user_gamification, xp_transactions, user_badges and daily_activity.
User ids are opaque strings from the auth service, so there are no foreign keys
to a users table. Badge definitions live in code (academy.gamification.badges).

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User Gamification (denormalized) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_gamification (
            user_id VARCHAR(64) PRIMARY KEY,
            total_xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            streak_shields INTEGER NOT NULL DEFAULT 0 CHECK (streak_shields >= 0),
            total_lessons_completed INTEGER NOT NULL DEFAULT 0,
            total_quizzes_completed INTEGER NOT NULL DEFAULT 0,
            total_perfect_quizzes INTEGER NOT NULL DEFAULT 0,
            total_courses_completed INTEGER NOT NULL DEFAULT 0,
            total_study_minutes INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_gamification_xp
        ON user_gamification(total_xp DESC)
    """)

    # --- XP Transactions (append-only ledger) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL,
            reason VARCHAR(32) NOT NULL,
            reference_type VARCHAR(32) NOT NULL,
            reference_id VARCHAR(128) NOT NULL,
            description VARCHAR(256),
            idempotency_key VARCHAR(320) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_transactions_user_created
        ON xp_transactions(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_transactions_created
        ON xp_transactions(created_at)
    """)

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge_id VARCHAR(64) NOT NULL,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_badges_user_id
        ON user_badges(user_id)
    """)

    # --- Daily Activity ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_activity (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            activity_date DATE NOT NULL,
            lessons_completed INTEGER NOT NULL DEFAULT 0,
            quizzes_completed INTEGER NOT NULL DEFAULT 0,
            perfect_quizzes INTEGER NOT NULL DEFAULT 0,
            study_minutes INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT daily_activity_user_id_activity_date_key UNIQUE (user_id, activity_date)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS daily_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_gamification CASCADE")
