"""Gamification baseline: users with counters and the XP ledger.

Revision ID: 001_gamification_baseline
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (owned by the account service; counters owned here) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            avatar_url TEXT,
            employee_number VARCHAR(64),
            role VARCHAR(32) NOT NULL DEFAULT 'STAFF',
            status VARCHAR(16) NOT NULL DEFAULT 'APPROVED',
            branch VARCHAR(128),
            area VARCHAR(128),
            region VARCHAR(128),
            timezone VARCHAR(64),
            xp BIGINT NOT NULL DEFAULT 0 CHECK (xp >= 0),
            diamonds BIGINT NOT NULL DEFAULT 0 CHECK (diamonds >= 0),
            streak_days INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_active_day DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_branch ON users(branch)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_area ON users(area)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_region ON users(region)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_xp ON users(xp DESC)")

    # --- XP ledger (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_events (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL CHECK (amount > 0),
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128) NOT NULL,
            description VARCHAR(256),
            occurred_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_xp_events_idempotency UNIQUE (user_id, source, source_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_xp_events_occurred_at ON xp_events(occurred_at)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_events_user_occurred
        ON xp_events(user_id, occurred_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS xp_events CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
