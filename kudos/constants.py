"""
kudos.constants — Shared Constants & Leveling Functions
=========================================================

Single source of truth for the level threshold table and the leveling
formula.  Import from here instead of duplicating in services and the API.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence

# ---------------------------------------------------------------------------
# Level thresholds — cumulative points.  Index i is the total required to
# reach level i + 2; level 1 needs nothing.
# ---------------------------------------------------------------------------
LEVEL_THRESHOLDS: tuple[int, ...] = (
    100,    # Level 1 -> 2
    250,    # Level 2 -> 3
    500,    # Level 3 -> 4
    1000,   # Level 4 -> 5
    2000,   # Level 5 -> 6
    3500,   # Level 6 -> 7
    5500,   # Level 7 -> 8
    8000,   # Level 8 -> 9
    11000,  # Level 9 -> 10
    15000,  # Level 10 -> 11 (terminal tier)
)

# Bounded look-back for streak scans.
STREAK_WINDOW_DAYS: int = 365


def validate_thresholds(thresholds: Sequence[int]) -> tuple[int, ...]:
    """Return *thresholds* as a tuple, or raise ``ValueError`` if unusable.

    A usable table is non-empty, made of positive integers, and strictly
    increasing.
    """
    table = tuple(thresholds)
    if not table:
        raise ValueError("Level threshold table must not be empty.")
    for value in table:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Level thresholds must be positive integers, got {value!r}.")
    for lower, upper in zip(table, table[1:]):
        if upper <= lower:
            raise ValueError(
                f"Level thresholds must be strictly increasing ({lower} >= {upper})."
            )
    return table


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
def level_for_total(total: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> int:
    """Level reached with *total* cumulative points.

    ``1 + count(t <= total)``.  Once the last threshold is passed the level
    stays at ``len(thresholds) + 1`` forever.  Negative totals are level 1.
    """
    return 1 + bisect_right(thresholds, total)


def next_level_threshold(level: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> int:
    """Cumulative points needed to leave *level*.

    At the terminal tier there is no further threshold, so the last one is
    returned as an already-reached ceiling.
    """
    if level < 1:
        level = 1
    if level <= len(thresholds):
        return thresholds[level - 1]
    return thresholds[-1]


def points_to_next_level(total: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> int:
    """Points still missing for the next level (0 at the terminal tier)."""
    level = level_for_total(total, thresholds)
    return max(next_level_threshold(level, thresholds) - total, 0)
