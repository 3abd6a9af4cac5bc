"""
kudos.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- point_transactions — Append-only points ledger (source of truth)
- user_points        — Per-user aggregate projection with level
- achievements       — Read-only achievement catalog
- user_achievements  — Per-(user, achievement) progress and earned stamp
- badges             — Tiered activity-count badge catalog
- user_badges        — Per-(user, badge) progress count and earned stamp
- notifications      — level_up / achievement_earned / badge_earned notices
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Kudos ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PointAction(enum.StrEnum):
    """Actions that can earn points."""
    SUBMIT_FEEDBACK = "submit_feedback"
    VOTE = "vote"
    QUESTIONNAIRE_RESPONSE = "questionnaire_response"
    SESSION_PARTICIPATION = "session_participation"
    QUALITY_BONUS = "quality_bonus"
    BADGE_EARNED = "badge_earned"


class PointCategory(enum.StrEnum):
    """Bucket a ledger entry is counted toward."""
    FEEDBACK = "feedback"
    VOTING = "voting"
    RESEARCH = "research"
    QUALITY = "quality"
    BONUS = "bonus"


class AchievementCategory(enum.StrEnum):
    STREAK = "streak"
    MILESTONE = "milestone"
    SPECIAL = "special"


class BadgeTier(enum.StrEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class BadgeCategory(enum.StrEnum):
    """Activity family a badge counts."""
    FEEDBACK = "feedback"
    VOTING = "voting"
    RESEARCH = "research"
    ENGAGEMENT = "engagement"


class RequirementKind(enum.StrEnum):
    """The single statistic an achievement requirement tests."""
    CONSECUTIVE_DAYS = "consecutive_days"
    LEVEL = "level"
    TOTAL_POINTS = "total_points"
    FEEDBACK_COUNT = "feedback_count"
    VOTE_COUNT = "vote_count"
    QUESTIONNAIRE_COUNT = "questionnaire_count"
    EARLY_USER = "early_user"
    ALL_BADGES = "all_badges"


class EventType(enum.StrEnum):
    """Events handed to the event sink."""
    LEVEL_UP = "level_up"
    ACHIEVEMENT_EARNED = "achievement_earned"
    BADGE_EARNED = "badge_earned"


# ---------------------------------------------------------------------------
# PointTransaction — append-only ledger
# ---------------------------------------------------------------------------
class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resource_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_point_transactions_user_time", "user_id", "created_at"),
        Index("ix_point_transactions_resource", "user_id", "action", "resource_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointTransaction id={self.id} user={self.user_id!r} "
            f"action={self.action} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# UserPoints — per-user aggregate projection
# ---------------------------------------------------------------------------
class UserPoints(Base):
    __tablename__ = "user_points"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    feedback_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    voting_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    research_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quality_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    next_level_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    last_week_reset: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_month_reset: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_user_points_total", "total_points"),
        Index("ix_user_points_weekly", "weekly_points"),
        Index("ix_user_points_monthly", "monthly_points"),
    )

    def __repr__(self) -> str:
        return f"<UserPoints user={self.user_id!r} total={self.total_points} lvl={self.level}>"


# Aggregate column credited for each category.  Bonus points only count
# toward total_points.
CATEGORY_COLUMNS: dict[PointCategory, str | None] = {
    PointCategory.FEEDBACK: "feedback_points",
    PointCategory.VOTING: "voting_points",
    PointCategory.RESEARCH: "research_points",
    PointCategory.QUALITY: "quality_points",
    PointCategory.BONUS: None,
}


# ---------------------------------------------------------------------------
# Achievement — read-only catalog entry
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    # e.g. {"consecutive_days": 7}; parsed by kudos.engine.achievements
    requirement: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    earned_by: Mapped[list[UserAchievement]] = relationship(back_populates="achievement")

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} key={self.key!r}>"


# ---------------------------------------------------------------------------
# UserAchievement — per-(user, achievement) progress
# ---------------------------------------------------------------------------
class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    progress: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    # Set exactly once; NULL means not yet earned
    earned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    achievement: Mapped[Achievement] = relationship(back_populates="earned_by")

    __table_args__ = (
        Index("ix_user_achievements_user_earned", "user_id", "earned_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserAchievement user={self.user_id!r} achievement={self.achievement_id} "
            f"earned={self.earned_at is not None}>"
        )


# ---------------------------------------------------------------------------
# Badge — tiered activity-count catalog entry
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    tier: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    # Activity count needed in ``category``
    requirement: Mapped[int] = mapped_column(Integer, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    earned_by: Mapped[list[UserBadge]] = relationship(back_populates="badge")

    __table_args__ = (
        Index("ix_badges_category_requirement", "category", "requirement"),
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id} key={self.key!r} tier={self.tier}>"


# ---------------------------------------------------------------------------
# UserBadge — per-(user, badge) progress
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    earned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    __table_args__ = (
        Index("ix_user_badges_user_earned", "user_id", "earned_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserBadge user={self.user_id!r} badge={self.badge_id} "
            f"earned={self.earned_at is not None}>"
        )


# ---------------------------------------------------------------------------
# Notification — written by the default event sink
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id!r} type={self.type}>"
