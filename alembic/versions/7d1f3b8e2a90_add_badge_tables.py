"""Add badge catalog and per-user badge progress tables

Revision ID: 7d1f3b8e2a90
Revises: 4c2e9a7f1b3d
Create Date: 2026-10-19 14:03:52.604117

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '7d1f3b8e2a90'
down_revision: str | Sequence[str] | None = '4c2e9a7f1b3d'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create badges and user_badges."""
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("requirement", sa.Integer, nullable=False),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_badges_category_requirement", "badges", ["category", "requirement"],
    )

    op.create_table(
        "user_badges",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column(
            "badge_id",
            sa.Integer,
            sa.ForeignKey("badges.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_user_badges_user_earned", "user_badges", ["user_id", "earned_at"],
    )


def downgrade() -> None:
    """Drop badges and user_badges."""
    op.drop_index("ix_user_badges_user_earned", table_name="user_badges")
    op.drop_table("user_badges")
    op.drop_index("ix_badges_category_requirement", table_name="badges")
    op.drop_table("badges")
