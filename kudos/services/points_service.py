"""
kudos.services.points_service — Point Awards & Read Models
===========================================================

Shared service module callable by request handlers, jobs and the API.

``award_points`` is the only write path into the ledger and the aggregate
projection.  It is ledger-first: the ledger row is committed before the
aggregate is touched, and a failed aggregate update is *not* rolled back;
:mod:`kudos.services.reconciliation_service` rebuilds projections from the
ledger.

Caller contract: the engine does not de-duplicate retries.  A caller that
may retry an award after a timeout must pass a ``resource_id`` and make sure
the same ``(user_id, action, resource_id)`` is not awarded twice.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from kudos.constants import (
    LEVEL_THRESHOLDS,
    level_for_total,
    next_level_threshold,
    points_to_next_level,
)
from kudos.database.engine import get_session
from kudos.database.models import (
    EventType,
    PointAction,
    PointCategory,
    PointTransaction,
    UserPoints,
)
from kudos.database.store import PointsStore
from kudos.engine.actions import AwardResult, resolve_award
from kudos.engine.events import EventSink, GamificationEvent, emit_safely
from kudos.errors import StoreError

logger = logging.getLogger(__name__)

Period = Literal["weekly", "monthly", "all_time"]
LeaderboardCategory = Literal["overall", "feedback", "voting", "research"]

_PERIOD_COLUMNS: dict[str, str] = {
    "weekly": "weekly_points",
    "monthly": "monthly_points",
    "all_time": "total_points",
}

_CATEGORY_COLUMNS: dict[str, str] = {
    "feedback": "feedback_points",
    "voting": "voting_points",
    "research": "research_points",
}


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def award_points(
    store: PointsStore,
    user_id: str,
    action: PointAction | str,
    *,
    resource_id: str | None = None,
    resource_type: str | None = None,
    bonus_override: int | None = None,
    metadata: dict | None = None,
    sink: EventSink | None = None,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> AwardResult:
    """Award points to *user_id* for *action*.

    1. Validate the action (nothing is written for an unknown action)
    2. Append the ledger entry
    3. Atomically increment the aggregate projection
    4. Recompute the level from the new total and raise it if higher
    5. Emit ``level_up`` to *sink* when this call performed the raise

    *bonus_override* is accepted only for ``badge_earned``.

    Raises
    ------
    UnknownActionError / InvalidAwardError
        The request was rejected before any write.
    StoreError
        A storage call failed.  If the ledger append succeeded the entry
        stays; the projection is repaired by reconciliation.
    """
    action, points, category = resolve_award(action, bonus_override)

    store.append_ledger_entry(
        user_id=user_id,
        points=points,
        category=category,
        action=action,
        resource_id=resource_id,
        resource_type=resource_type,
        metadata=metadata,
    )
    return apply_to_aggregate(
        store, user_id, action, points, category, sink=sink, thresholds=thresholds,
    )


def apply_to_aggregate(
    store: PointsStore,
    user_id: str,
    action: PointAction,
    points: int,
    category: PointCategory,
    *,
    sink: EventSink | None = None,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> AwardResult:
    """Project an already-committed ledger entry onto the aggregate row.

    Steps 3-5 of :func:`award_points`.
    """
    try:
        total, prior_level = store.upsert_aggregate_with_increment(
            user_id, category, points, initial_threshold=thresholds[0],
        )
    except StoreError:
        logger.error(
            "Ledger entry written but aggregate update failed (user=%s action=%s points=%d); "
            "reconciliation required",
            user_id, action, points,
        )
        raise

    new_level = level_for_total(total, thresholds)
    leveled_up = False
    if new_level > prior_level:
        leveled_up = store.raise_level(
            user_id, new_level, next_level_threshold(new_level, thresholds),
        )

    logger.info(
        "Awarded %d points to %s for %s (total=%d, level=%d)",
        points, user_id, action, total, max(new_level, prior_level),
    )

    if leveled_up:
        logger.info("User %s leveled up: %d → %d", user_id, prior_level, new_level)
        emit_safely(sink, GamificationEvent(
            user_id=user_id,
            type=EventType.LEVEL_UP,
            payload={
                "level": new_level,
                "previous_level": prior_level,
                "total_points": total,
            },
        ))

    return AwardResult(
        points_awarded=points,
        total_points=total,
        level=max(new_level, prior_level),
        leveled_up=leveled_up,
    )


# ---------------------------------------------------------------------------
# Achievement & badge bonuses
# ---------------------------------------------------------------------------
def bonus_ledger_entry(
    points: int,
    *,
    resource_id: str,
    resource_type: str,
    metadata: dict | None = None,
) -> dict:
    """Ledger fields for a ``badge_earned`` bonus, validated like any award.

    The result is handed to the store's conditional earned stamp so the stamp
    and the ledger row commit together.
    """
    action, points, category = resolve_award(PointAction.BADGE_EARNED, points)
    return {
        "points": points,
        "category": category,
        "action": action,
        "resource_id": resource_id,
        "resource_type": resource_type,
        "metadata": metadata,
    }


def credit_bonus(
    store: PointsStore,
    user_id: str,
    bonus: dict,
    *,
    sink: EventSink | None = None,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> AwardResult | None:
    """Apply a committed bonus ledger row to the aggregate.

    Returns None when the aggregate update failed; the ledger row is already
    durable, so reconciliation restores the total.
    """
    try:
        return apply_to_aggregate(
            store, user_id, bonus["action"], bonus["points"], bonus["category"],
            sink=sink, thresholds=thresholds,
        )
    except StoreError:
        logger.error(
            "Bonus for %s %s recorded in the ledger but not in the aggregate of %s",
            bonus["resource_type"], bonus["resource_id"], user_id,
        )
        return None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_user_points(
    engine: Engine, user_id: str, thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> dict:
    """Points summary for display, with defaults for users who have none."""
    with Session(engine) as session:
        row = session.get(UserPoints, user_id)
        if row is None:
            return {
                "user_id": user_id,
                "total_points": 0,
                "feedback_points": 0,
                "voting_points": 0,
                "research_points": 0,
                "quality_points": 0,
                "weekly_points": 0,
                "monthly_points": 0,
                "level": 1,
                "next_level_threshold": thresholds[0],
                "points_to_next_level": thresholds[0],
            }
        return {
            "user_id": row.user_id,
            "total_points": row.total_points,
            "feedback_points": row.feedback_points,
            "voting_points": row.voting_points,
            "research_points": row.research_points,
            "quality_points": row.quality_points,
            "weekly_points": row.weekly_points,
            "monthly_points": row.monthly_points,
            "level": row.level,
            "next_level_threshold": row.next_level_threshold,
            "points_to_next_level": points_to_next_level(row.total_points, thresholds),
        }


def get_point_history(engine: Engine, user_id: str, limit: int = 50) -> list[PointTransaction]:
    """Most recent ledger entries for *user_id*, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .limit(limit)
        ).all()
        return list(rows)


def _score_column(period: str, category: str = "overall"):
    if category != "overall":
        return getattr(UserPoints, _CATEGORY_COLUMNS[category])
    return getattr(UserPoints, _PERIOD_COLUMNS[period])


def get_top_point_earners(
    engine: Engine,
    period: Period = "all_time",
    category: LeaderboardCategory = "overall",
    limit: int = 10,
) -> list[dict]:
    """Ranked top earners.  A specific category ranks by lifetime category points."""
    column = _score_column(period, category)
    with Session(engine) as session:
        rows = session.scalars(
            select(UserPoints)
            .order_by(column.desc(), UserPoints.user_id)
            .limit(limit)
        ).all()
        return [
            {
                "rank": index + 1,
                "user_id": row.user_id,
                "points": getattr(row, column.key),
                "level": row.level,
            }
            for index, row in enumerate(rows)
        ]


def get_user_rank(engine: Engine, user_id: str, period: Period = "all_time") -> int | None:
    """1-based rank of *user_id* for *period*, or None without an aggregate."""
    column = _score_column(period)
    with Session(engine) as session:
        score = session.scalar(select(column).where(UserPoints.user_id == user_id))
        if score is None:
            return None
        ahead = session.scalar(
            select(func.count()).select_from(UserPoints).where(column > score)
        ) or 0
        return ahead + 1


def get_nearby_leaderboard(
    engine: Engine,
    user_id: str,
    period: Period = "all_time",
    category: LeaderboardCategory = "overall",
    range_: int = 5,
) -> list[dict]:
    """Up to *range_* entries either side of *user_id* in the top 1000.

    Empty when the user is not on that leaderboard.
    """
    board = get_top_point_earners(engine, period, category, limit=1000)
    for index, entry in enumerate(board):
        if entry["user_id"] == user_id:
            return board[max(0, index - range_): index + range_ + 1]
    return []


def get_leaderboard_stats(engine: Engine) -> dict:
    """Participant count and the leader of each period."""
    with Session(engine) as session:
        participants = session.scalar(select(func.count()).select_from(UserPoints)) or 0

        def leader(column) -> dict | None:
            row = session.execute(
                select(UserPoints.user_id, column)
                .order_by(column.desc(), UserPoints.user_id)
                .limit(1)
            ).first()
            if row is None:
                return None
            return {"user_id": row[0], "points": row[1]}

        return {
            "total_participants": participants,
            "top_weekly": leader(UserPoints.weekly_points),
            "top_monthly": leader(UserPoints.monthly_points),
            "top_all_time": leader(UserPoints.total_points),
        }


# ---------------------------------------------------------------------------
# Periodic resets — scheduled externally
# ---------------------------------------------------------------------------
def reset_weekly_points(engine: Engine) -> int:
    """Zero every user's weekly window.  Returns the number of rows reset."""
    with get_session(engine) as session:
        result = session.execute(
            update(UserPoints).values(weekly_points=0, last_week_reset=datetime.now(UTC))
        )
        count = result.rowcount
    logger.info("Weekly points reset for %d users", count)
    return count


def reset_monthly_points(engine: Engine) -> int:
    """Zero every user's monthly window.  Returns the number of rows reset."""
    with get_session(engine) as session:
        result = session.execute(
            update(UserPoints).values(monthly_points=0, last_month_reset=datetime.now(UTC))
        )
        count = result.rowcount
    logger.info("Monthly points reset for %d users", count)
    return count
