"""
kudos.services.activity_service — Best-Effort Entry Point
==========================================================

Points are secondary to the action that earned them: submitting feedback
must succeed even if awarding points fails.  Request handlers call
:func:`record_action` after their primary work is committed; it never
raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from kudos.config import KudosConfig
from kudos.database.models import PointAction
from kudos.database.store import PointsStore
from kudos.engine.actions import AwardResult
from kudos.engine.badges import categories_for_action
from kudos.engine.events import EventSink
from kudos.services.achievement_service import (
    ActivityCounts,
    build_stats_snapshot,
    evaluate_achievements,
)
from kudos.services.badge_service import check_and_award_badges
from kudos.services.points_service import award_points

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    award: AwardResult | None = None
    badges: list[str] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)
    failed: bool = False


def record_action(
    store: PointsStore,
    user_id: str,
    action: PointAction | str,
    *,
    counts_provider: Callable[[str], ActivityCounts] | None = None,
    sink: EventSink | None = None,
    config: KudosConfig | None = None,
    resource_id: str | None = None,
    resource_type: str | None = None,
    metadata: dict | None = None,
) -> ActionOutcome:
    """Award points for *action*, then re-check badges and achievements.

    Badges in the categories *action* feeds are checked first, so an
    achievement that needs the full badge collection sees the new badge.
    Both are only evaluated when *counts_provider* is given; it receives
    the user id and returns the counts the wider application tracks.
    Failures are logged and reported through ``failed``.
    """
    config = config or KudosConfig()
    outcome = ActionOutcome()

    try:
        outcome.award = award_points(
            store,
            user_id,
            action,
            resource_id=resource_id,
            resource_type=resource_type,
            metadata=metadata,
            sink=sink,
            thresholds=config.level_thresholds,
        )
    except Exception:
        logger.exception("Point award failed for %s (action=%s)", user_id, action)
        outcome.failed = True
        return outcome

    if counts_provider is None:
        return outcome

    try:
        counts = counts_provider(user_id)
        for category in categories_for_action(action):
            outcome.badges.extend(check_and_award_badges(
                store, user_id, category, counts,
                sink=sink, thresholds=config.level_thresholds,
            ))
        stats = build_stats_snapshot(
            store,
            user_id,
            counts,
            tz=config.tzinfo,
            window_days=config.streak_window_days,
        )
        outcome.achievements = evaluate_achievements(
            store, user_id, stats, sink=sink, thresholds=config.level_thresholds,
        )
    except Exception:
        logger.exception("Badge or achievement evaluation failed for %s", user_id)
        outcome.failed = True
    return outcome
