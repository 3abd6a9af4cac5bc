"""
kudos.engine.badges — Tiered Badge Rules
=========================================

Badges are count thresholds per category (bronze 10, silver 50, gold 100,
platinum 500).  Each category reads a different activity count:

* ``feedback``: feedback submitted
* ``voting``: votes cast
* ``research``: questionnaire responses plus research sessions
* ``engagement``: feedback, votes and questionnaire responses together

Pure lookups; no database I/O.
"""

from __future__ import annotations

from kudos.database.models import BadgeCategory, PointAction

__all__ = ["ACTION_BADGE_CATEGORIES", "activity_count", "categories_for_action"]

# Badge categories whose count can move when an action is recorded.
ACTION_BADGE_CATEGORIES: dict[PointAction, tuple[BadgeCategory, ...]] = {
    PointAction.SUBMIT_FEEDBACK: (BadgeCategory.FEEDBACK, BadgeCategory.ENGAGEMENT),
    PointAction.VOTE: (BadgeCategory.VOTING, BadgeCategory.ENGAGEMENT),
    PointAction.QUESTIONNAIRE_RESPONSE: (BadgeCategory.RESEARCH, BadgeCategory.ENGAGEMENT),
    PointAction.SESSION_PARTICIPATION: (BadgeCategory.RESEARCH,),
}


def categories_for_action(action: PointAction | str) -> tuple[BadgeCategory, ...]:
    try:
        return ACTION_BADGE_CATEGORIES.get(PointAction(action), ())
    except ValueError:
        return ()


def activity_count(category: BadgeCategory | str, counts) -> int:
    """The count a badge of *category* is measured against.

    *counts* is any object exposing ``feedback_count``, ``vote_count``,
    ``questionnaire_count`` and ``session_count`` (normally
    :class:`~kudos.services.achievement_service.ActivityCounts`).
    """
    category = BadgeCategory(category)
    if category is BadgeCategory.FEEDBACK:
        return counts.feedback_count
    if category is BadgeCategory.VOTING:
        return counts.vote_count
    if category is BadgeCategory.RESEARCH:
        return counts.questionnaire_count + counts.session_count
    return counts.feedback_count + counts.vote_count + counts.questionnaire_count
