"""
kudos.services.streak_service — Streaks over the Points Ledger
===============================================================

Reads the bounded ledger window and hands the timestamps to the pure
calculator in :mod:`kudos.engine.streak`.  Read-only; no locking needed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, tzinfo

from kudos.constants import STREAK_WINDOW_DAYS
from kudos.database.store import PointsStore
from kudos.engine.streak import StreakResult, calculate_streak, window_start

logger = logging.getLogger(__name__)


def get_streak(
    store: PointsStore,
    user_id: str,
    as_of: datetime | None = None,
    *,
    tz: tzinfo = UTC,
    window_days: int = STREAK_WINDOW_DAYS,
) -> StreakResult:
    """Streak for *user_id* as of *as_of* (default: now), with truncation flag."""
    as_of = as_of or datetime.now(UTC)
    since = window_start(as_of, tz, window_days)
    entries = store.read_ledger_since(user_id, since)

    result = calculate_streak(
        (entry.created_at for entry in entries),
        as_of,
        tz=tz,
        window_days=window_days,
    )
    if result.truncated:
        logger.info(
            "Streak for %s reached the %d-day scan window; reporting %d as a lower bound",
            user_id, window_days, result.days,
        )
    return result


def consecutive_days(
    store: PointsStore,
    user_id: str,
    as_of: datetime | None = None,
    *,
    tz: tzinfo = UTC,
    window_days: int = STREAK_WINDOW_DAYS,
) -> int:
    """Number of consecutive active days (see :mod:`kudos.engine.streak`)."""
    return get_streak(store, user_id, as_of, tz=tz, window_days=window_days).days
