"""
kudos.engine.actions — Point Table and Award Resolution
========================================================

Maps each :class:`PointAction` to its static point value and category.
``badge_earned`` has no static value: its amount is the bonus of the
achievement being awarded and must be passed explicitly.

Pure lookups — no database I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from kudos.database.models import PointAction, PointCategory
from kudos.errors import InvalidAwardError, UnknownActionError

__all__ = ["POINT_VALUES", "AwardResult", "resolve_award"]

# ---------------------------------------------------------------------------
# Static action → (points, category) table
# ---------------------------------------------------------------------------
POINT_VALUES: dict[PointAction, tuple[int | None, PointCategory]] = {
    PointAction.SUBMIT_FEEDBACK: (10, PointCategory.FEEDBACK),
    PointAction.VOTE: (2, PointCategory.VOTING),
    PointAction.QUESTIONNAIRE_RESPONSE: (15, PointCategory.RESEARCH),
    PointAction.SESSION_PARTICIPATION: (30, PointCategory.RESEARCH),
    PointAction.QUALITY_BONUS: (5, PointCategory.QUALITY),
    PointAction.BADGE_EARNED: (None, PointCategory.BONUS),  # varies
}


# ---------------------------------------------------------------------------
# AwardResult — output of award_points
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AwardResult:
    """What a single award did to the user's projection."""

    points_awarded: int
    total_points: int
    level: int
    leveled_up: bool


def resolve_award(
    action: PointAction | str, bonus_override: int | None = None,
) -> tuple[PointAction, int, PointCategory]:
    """Validate an award request and return ``(action, points, category)``.

    Raises
    ------
    UnknownActionError
        *action* is not in :data:`POINT_VALUES`.
    InvalidAwardError
        ``badge_earned`` without a bonus, a bonus on any other action, or a
        negative bonus.
    """
    try:
        action = PointAction(action)
    except ValueError:
        raise UnknownActionError(action) from None

    static_points, category = POINT_VALUES[action]

    if bonus_override is not None:
        if static_points is not None:
            raise InvalidAwardError(
                f"Action {action.value!r} has a fixed value of {static_points}; "
                "bonus_override is only accepted for badge_earned"
            )
        if isinstance(bonus_override, bool) or not isinstance(bonus_override, int):
            raise InvalidAwardError(f"bonus_override must be an int, got {bonus_override!r}")
        if bonus_override < 0:
            raise InvalidAwardError(f"bonus_override must not be negative, got {bonus_override}")
        return action, bonus_override, category

    if static_points is None:
        raise InvalidAwardError(f"Action {action.value!r} requires an explicit bonus_override")
    return action, static_points, category
