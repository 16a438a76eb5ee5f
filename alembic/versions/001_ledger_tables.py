"""Ledger tables: users, transactions, plays, round_results.

Revision ID: 001_ledger_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_ledger_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            key VARCHAR(32) PRIMARY KEY,
            role VARCHAR(16) NOT NULL DEFAULT 'user',
            name VARCHAR(128) NOT NULL DEFAULT '',
            phone VARCHAR(20) UNIQUE,
            external_subject VARCHAR(128) UNIQUE,
            points BIGINT NOT NULL DEFAULT 0,
            admin_wallet BIGINT NOT NULL DEFAULT 0,
            admin_used BIGINT NOT NULL DEFAULT 0,
            password_hash VARCHAR(256),
            is_blocked BOOLEAN NOT NULL DEFAULT false,
            created_by VARCHAR(32),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_users_points_non_negative CHECK (points >= 0),
            CONSTRAINT ck_users_admin_used_non_negative CHECK (admin_used >= 0),
            CONSTRAINT ck_users_admin_used_within_wallet CHECK (admin_used <= admin_wallet)
        )
    """)

    # --- Transactions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id BIGSERIAL PRIMARY KEY,
            user_key VARCHAR(32) NOT NULL REFERENCES users(key) ON DELETE CASCADE,
            type VARCHAR(8) NOT NULL,
            amount BIGINT NOT NULL,
            note TEXT NOT NULL DEFAULT '',
            acting_admin_key VARCHAR(32),
            kind VARCHAR(16) NOT NULL DEFAULT 'points',
            balance_after BIGINT NOT NULL,
            play_id BIGINT,
            reverses_id BIGINT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_transactions_amount_non_negative CHECK (amount >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_transactions_user_created
        ON transactions(user_key, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_transactions_acting_admin
        ON transactions(acting_admin_key, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_transactions_reverses_id
        ON transactions(reverses_id)
    """)

    # --- Plays ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS plays (
            id BIGSERIAL PRIMARY KEY,
            user_key VARCHAR(32) NOT NULL REFERENCES users(key) ON DELETE CASCADE,
            round_id VARCHAR(16) NOT NULL,
            selection VARCHAR(16) NOT NULL,
            stake BIGINT NOT NULL,
            outcome VARCHAR(8) NOT NULL DEFAULT 'pending',
            payout BIGINT NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            settled_at TIMESTAMPTZ,
            CONSTRAINT ck_plays_stake_positive CHECK (stake > 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_plays_user_created
        ON plays(user_key, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_plays_round_outcome
        ON plays(round_id, outcome)
    """)

    # --- Round results ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS round_results (
            round_id VARCHAR(16) PRIMARY KEY,
            number INTEGER NOT NULL,
            color VARCHAR(8) NOT NULL,
            size VARCHAR(8) NOT NULL,
            digest VARCHAR(64) NOT NULL,
            source VARCHAR(16) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS round_results")
    op.execute("DROP TABLE IF EXISTS plays")
    op.execute("DROP TABLE IF EXISTS transactions")
    op.execute("DROP TABLE IF EXISTS users")
