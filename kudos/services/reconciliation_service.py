"""
kudos.services.reconciliation_service — Aggregate Reconciliation
=================================================================

Maintenance job that rebuilds ``user_points`` totals from the
``point_transactions`` ledger and corrects drift, e.g. after an award whose
ledger append succeeded but whose aggregate update failed.

How it works:
    1. Lock every ``user_points`` row (``SELECT … FOR UPDATE``), then
       ``SUM(points)`` from the ledger grouped by (user_id, category).
    2. Compare ``total_points`` and the category columns of each aggregate.
    3. Overwrite drifted columns with the ledger values; create missing rows.
    4. Raise ``level`` if the corrected total warrants it.  Levels are never
       lowered.
    5. Log all corrections for audit.

Weekly and monthly windows are NOT reconciled: the ledger does not record
when the windows were last reset relative to each entry.

Run it while awards are paused.  The row locks hold back increments to
existing aggregates until the job commits, so their ledger rows cannot land
between the sum and the overwrite.  They do not cover users without an
aggregate row: a first award racing the job can fail the insert of a
missing row, and the job must then be re-run.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from kudos.constants import LEVEL_THRESHOLDS, level_for_total, next_level_threshold
from kudos.database.engine import get_session
from kudos.database.models import CATEGORY_COLUMNS, PointCategory, PointTransaction, UserPoints

logger = logging.getLogger(__name__)

_RECONCILED_COLUMNS = (
    "total_points",
    "feedback_points",
    "voting_points",
    "research_points",
    "quality_points",
)


def _ledger_totals(session) -> dict[str, dict[str, int]]:
    rows = session.execute(
        select(
            PointTransaction.user_id,
            PointTransaction.category,
            func.sum(PointTransaction.points).label("points"),
        )
        .group_by(PointTransaction.user_id, PointTransaction.category)
    ).all()

    truth: dict[str, dict[str, int]] = {}
    for row in rows:
        totals = truth.setdefault(row.user_id, dict.fromkeys(_RECONCILED_COLUMNS, 0))
        totals["total_points"] += row.points
        try:
            column = CATEGORY_COLUMNS[PointCategory(row.category)]
        except ValueError:
            logger.warning("Ledger has unknown category %r for %s", row.category, row.user_id)
            continue
        if column is not None:
            totals[column] += row.points
    return truth


def reconcile_points(engine: Engine, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> dict:
    """Validate aggregates against the ledger and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        aggregates: dict[str, UserPoints] = {
            row.user_id: row
            for row in session.scalars(select(UserPoints).with_for_update()).all()
        }
        truth = _ledger_totals(session)

        checked = 0
        for user_id, totals in truth.items():
            checked += 1
            aggregate = aggregates.get(user_id)

            if aggregate is None:
                level = level_for_total(totals["total_points"], thresholds)
                session.add(UserPoints(
                    user_id=user_id,
                    **totals,
                    weekly_points=0,
                    monthly_points=0,
                    level=level,
                    next_level_threshold=next_level_threshold(level, thresholds),
                ))
                corrections.append({"user_id": user_id, "stored": None, "actual": totals})
                continue

            stored = {column: getattr(aggregate, column) for column in _RECONCILED_COLUMNS}
            if stored == totals:
                continue

            corrections.append({"user_id": user_id, "stored": stored, "actual": totals})
            for column, value in totals.items():
                setattr(aggregate, column, value)
            level = level_for_total(totals["total_points"], thresholds)
            if level > aggregate.level:
                aggregate.level = level
                aggregate.next_level_threshold = next_level_threshold(level, thresholds)

        # Aggregates whose user has no ledger rows at all
        zero = dict.fromkeys(_RECONCILED_COLUMNS, 0)
        for user_id, aggregate in aggregates.items():
            if user_id in truth:
                continue
            checked += 1
            stored = {column: getattr(aggregate, column) for column in _RECONCILED_COLUMNS}
            if stored != zero:
                corrections.append({"user_id": user_id, "stored": stored, "actual": zero})
                for column in _RECONCILED_COLUMNS:
                    setattr(aggregate, column, 0)

    if corrections:
        logger.warning(
            "Points reconciliation: corrected %d/%d aggregates: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Points reconciliation: all %d aggregates match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
