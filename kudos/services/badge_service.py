"""
kudos.services.badge_service — Tiered Badge Evaluation
=======================================================

Badges follow the same earn protocol as achievements: read-or-create the
progress row, refresh progress while the threshold is unmet, and cross the
threshold with a conditional ``earned_at`` stamp that carries the
``badge_earned`` ledger row in the same transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session, contains_eager

from kudos.constants import LEVEL_THRESHOLDS
from kudos.database.models import Badge, BadgeCategory, EventType, UserBadge
from kudos.database.store import PointsStore
from kudos.engine.badges import activity_count
from kudos.engine.events import EventSink, GamificationEvent, emit_safely
from kudos.errors import StoreError
from kudos.services.points_service import bonus_ledger_entry, credit_bonus

logger = logging.getLogger(__name__)


def check_and_award_badges(
    store: PointsStore,
    user_id: str,
    category: BadgeCategory | str,
    counts,
    *,
    sink: EventSink | None = None,
    now: datetime | None = None,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> list[str]:
    """Earn every badge in *category* that *counts* now reaches.

    Returns the keys earned by this call, lowest requirement first.
    """
    now = now or datetime.now(UTC)
    count = activity_count(category, counts)
    newly_earned: list[str] = []

    for badge in store.list_badges(category):
        state = store.read_or_create_badge_progress(user_id, badge.id)
        if state.earned_at is not None:
            continue

        if count < badge.requirement:
            store.update_badge_progress(user_id, badge.id, count)
            continue

        bonus = None
        if badge.points > 0:
            bonus = bonus_ledger_entry(
                badge.points,
                resource_id=str(badge.id),
                resource_type="badge",
                metadata={"badge_key": badge.key},
            )
        try:
            won = store.conditional_set_badge_earned(user_id, badge.id, now, count, bonus=bonus)
        except StoreError:
            logger.error(
                "Could not record badge %s for %s; left unearned for the next check",
                badge.key, user_id,
            )
            continue
        if not won:
            continue

        logger.info("Badge earned: %s by %s", badge.key, user_id)
        if bonus is not None:
            credit_bonus(store, user_id, bonus, sink=sink, thresholds=thresholds)

        newly_earned.append(badge.key)
        emit_safely(sink, GamificationEvent(
            user_id=user_id,
            type=EventType.BADGE_EARNED,
            payload={
                "badge_id": badge.id,
                "key": badge.key,
                "name": badge.name,
                "description": badge.description,
                "tier": badge.tier,
                "points": badge.points,
            },
        ))

    return newly_earned


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_all_badges(engine: Engine, category: str | None = None) -> list[Badge]:
    stmt = select(Badge)
    if category is not None:
        stmt = stmt.where(Badge.category == str(category))
    stmt = stmt.order_by(Badge.category, Badge.requirement, Badge.id)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())


def _user_badges_query(user_id: str):
    return (
        select(UserBadge)
        .join(UserBadge.badge)
        .options(contains_eager(UserBadge.badge))
        .where(UserBadge.user_id == user_id)
    )


def get_user_badges(engine: Engine, user_id: str) -> list[UserBadge]:
    """Earned badges, newest first."""
    stmt = (
        _user_badges_query(user_id)
        .where(UserBadge.earned_at.is_not(None))
        .order_by(UserBadge.earned_at.desc(), Badge.requirement)
    )
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).unique().all())


def get_user_badge_progress(
    engine: Engine, user_id: str, category: str | None = None,
) -> list[UserBadge]:
    """Every tracked badge; earned first, then by requirement."""
    stmt = _user_badges_query(user_id)
    if category is not None:
        stmt = stmt.where(Badge.category == str(category))
    stmt = stmt.order_by(
        UserBadge.earned_at.is_(None),
        UserBadge.earned_at.desc(),
        Badge.requirement,
    )
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).unique().all())


def get_badge_stats(engine: Engine) -> dict:
    """Catalog size, total earned count and the five most earned badges."""
    earned = UserBadge.earned_at.is_not(None)
    holders = func.count(UserBadge.user_id)
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(Badge)) or 0
        earned_count = session.scalar(
            select(func.count()).select_from(UserBadge).where(earned)
        ) or 0
        most = session.execute(
            select(Badge.key, Badge.name, holders.label("count"))
            .join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(earned)
            .group_by(Badge.id, Badge.key, Badge.name)
            .order_by(holders.desc(), Badge.key)
            .limit(5)
        ).all()
    return {
        "total_badges": total,
        "earned_badges": earned_count,
        "most_earned_badges": [
            {"key": row.key, "name": row.name, "count": row.count} for row in most
        ],
    }
