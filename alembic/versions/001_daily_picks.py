"""Curated pool and daily-pick rotation tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. Curated pool ───────────────────────────────────────────
    op.create_table(
        "curated_books",
        sa.Column("item_ref", sa.String(255), primary_key=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("authors", sa.JSON, nullable=False),
        sa.Column("large_thumbnail", sa.Text, nullable=True),
        sa.Column("medium_thumbnail", sa.Text, nullable=True),
        sa.Column("thumbnail", sa.Text, nullable=True),
        sa.Column("small_thumbnail", sa.Text, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── 2. Daily picks (one row per UTC date) ─────────────────────
    op.create_table(
        "daily_picks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("date", sa.String(10), nullable=False, unique=True),
        sa.Column("item_ref", sa.String(255), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("author", sa.Text, nullable=False),
        sa.Column("thumbnail", sa.Text, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_daily_picks_date", "daily_picks", ["date"])


def downgrade() -> None:
    op.drop_index("ix_daily_picks_date", table_name="daily_picks")
    op.drop_table("daily_picks")
    op.drop_table("curated_books")
