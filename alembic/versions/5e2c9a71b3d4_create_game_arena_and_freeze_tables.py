"""Create games, custom_games, arenas and streak-freeze tables

Revision ID: 5e2c9a71b3d4
Revises:
Create Date: 2026-10-19 10:12:31.418207

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5e2c9a71b3d4'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Initial schema."""

    # --- arenas (referenced by games) ---
    op.create_table(
        "arenas",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("identity_provider", sa.String(20), nullable=False),
        sa.Column("config", postgresql.JSONB, nullable=False),
        sa.Column("members", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )

    # --- games ---
    op.create_table(
        "games",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("identity_provider", sa.String(20), nullable=False),
        sa.Column("game_key", sa.String(100), nullable=False),
        sa.Column("is_daily", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("word", sa.String(5), nullable=False),
        sa.Column("guesses", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("guess_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_hard_mode", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "arena_id",
            sa.Integer,
            sa.ForeignKey("arenas.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("arena_word_index", sa.Integer, nullable=True),
        sa.Column("game_data", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("user_data", postgresql.JSONB, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "identity_provider", "game_key", "is_daily",
            name="uq_games_user_game_key",
        ),
    )
    op.create_index(
        "ix_games_daily_status", "games", ["identity_provider", "is_daily", "status"]
    )
    op.create_index("ix_games_arena", "games", ["arena_id", "arena_word_index"])

    # --- custom_games ---
    op.create_table(
        "custom_games",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("word", sa.String(5), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("identity_provider", sa.String(20), nullable=False),
        sa.Column("is_art", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )

    # --- streak_freeze_mints ---
    op.create_table(
        "streak_freeze_mints",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("identity_provider", sa.String(20), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("earned_at_streak_length", sa.Integer, nullable=True),
        sa.Column("earned_at_game_key", sa.String(100), nullable=True),
        sa.Column("claim_nonce", sa.String(66), nullable=True),
        sa.Column("claim_signature", sa.String(200), nullable=True),
        sa.Column("claim_tx_hash", sa.String(66), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column("purchase_tx_ref", sa.String(66), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "identity_provider", "earned_at_game_key",
            name="uq_freeze_mints_earned",
        ),
        sa.UniqueConstraint("purchase_tx_ref", name="uq_freeze_mints_purchase"),
    )

    # --- streak_freeze_applied ---
    op.create_table(
        "streak_freeze_applied",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("identity_provider", sa.String(20), nullable=False),
        sa.Column("applied_to_game_key", sa.String(10), nullable=False),
        sa.Column("burn_tx_hash", sa.String(66), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "identity_provider", "applied_to_game_key",
            name="uq_freeze_applied_day",
        ),
    )
    op.create_index(
        "ix_freeze_applied_burn_tx", "streak_freeze_applied", ["burn_tx_hash"]
    )


def downgrade() -> None:
    """Drop every table, dependents first."""
    op.drop_index("ix_freeze_applied_burn_tx", table_name="streak_freeze_applied")
    op.drop_table("streak_freeze_applied")
    op.drop_table("streak_freeze_mints")
    op.drop_table("custom_games")
    op.drop_index("ix_games_arena", table_name="games")
    op.drop_index("ix_games_daily_status", table_name="games")
    op.drop_table("games")
    op.drop_table("arenas")
