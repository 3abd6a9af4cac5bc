"""Create points ledger, aggregate, achievement and notification tables

Revision ID: 4c2e9a7f1b3d
Revises:
Create Date: 2026-10-19 09:12:31.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c2e9a7f1b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the five gamification tables."""

    # --- point_transactions (append-only ledger) ---
    op.create_table(
        "point_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_point_transactions_user_time", "point_transactions",
        ["user_id", "created_at"],
    )
    op.create_index(
        "ix_point_transactions_resource", "point_transactions",
        ["user_id", "action", "resource_id"],
    )

    # --- user_points (aggregate projection) ---
    op.create_table(
        "user_points",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("total_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("feedback_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("voting_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("research_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("quality_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("weekly_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("monthly_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("next_level_threshold", sa.Integer, nullable=False),
        sa.Column("last_week_reset", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_month_reset", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_user_points_total", "user_points", ["total_points"])
    op.create_index("ix_user_points_weekly", "user_points", ["weekly_points"])
    op.create_index("ix_user_points_monthly", "user_points", ["monthly_points"])

    # --- achievements (catalog) ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("requirement", postgresql.JSONB, nullable=True),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("hidden", sa.Boolean, server_default=sa.false()),
    )

    # --- user_achievements (progress + earned stamp) ---
    op.create_table(
        "user_achievements",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column(
            "achievement_id",
            sa.Integer,
            sa.ForeignKey("achievements.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("progress", postgresql.JSONB, nullable=True),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_user_achievements_user_earned", "user_achievements",
        ["user_id", "earned_at"],
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("read", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_notifications_user_time", "notifications",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    """Drop the gamification tables."""
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_user_achievements_user_earned", table_name="user_achievements")
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_index("ix_user_points_monthly", table_name="user_points")
    op.drop_index("ix_user_points_weekly", table_name="user_points")
    op.drop_index("ix_user_points_total", table_name="user_points")
    op.drop_table("user_points")
    op.drop_index("ix_point_transactions_resource", table_name="point_transactions")
    op.drop_index("ix_point_transactions_user_time", table_name="point_transactions")
    op.drop_table("point_transactions")
