"""Add streak_freeze_ledgers (per-player freeze write gate)

Revision ID: 8d4f0b6e2a19
Revises: 5e2c9a71b3d4
Create Date: 2026-10-19 16:40:07.552913

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '8d4f0b6e2a19'
down_revision: str | Sequence[str] | None = '5e2c9a71b3d4'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create streak_freeze_ledgers."""
    op.create_table(
        "streak_freeze_ledgers",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column("identity_provider", sa.String(20), primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    """Drop streak_freeze_ledgers."""
    op.drop_table("streak_freeze_ledgers")
