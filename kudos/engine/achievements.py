"""
kudos.engine.achievements — Requirement Parsing & Checking
===========================================================

Catalog requirements are stored as one-field JSON objects such as
``{"consecutive_days": 7}`` or ``{"early_user": true}``.  They are parsed
into a tagged :class:`Requirement` (kind + value) and checked against a
:class:`UserStatsSnapshot` through a registry keyed by
:class:`RequirementKind`.

Anything that does not parse — empty objects, several fields, unknown
fields, wrong value types — is *never satisfied*.  It is logged, not
raised, so one bad catalog entry cannot block the others.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass

from kudos.database.models import RequirementKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# UserStatsSnapshot — assembled by the caller before every evaluation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserStatsSnapshot:
    """Point-in-time view of a user's activity.

    Parameters
    ----------
    level : Current level from the aggregate projection.
    total_points : Cumulative points from the aggregate projection.
    feedback_count / vote_count / questionnaire_count : Counts gathered
        from the wider application.
    consecutive_days : Output of the streak calculator.
    early_user : Cohort flag (one of the platform's first users).
    all_badges : Whether the user holds every badge in the catalog.
    """

    level: int = 1
    total_points: int = 0
    feedback_count: int = 0
    vote_count: int = 0
    questionnaire_count: int = 0
    consecutive_days: int = 0
    early_user: bool = False
    all_badges: bool = False

    def as_progress(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Requirement — tagged variant
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Requirement:
    kind: RequirementKind
    value: int | bool


# Snapshot attribute each kind reads, split by comparison style.
THRESHOLD_FIELDS: dict[RequirementKind, str] = {
    RequirementKind.CONSECUTIVE_DAYS: "consecutive_days",
    RequirementKind.LEVEL: "level",
    RequirementKind.TOTAL_POINTS: "total_points",
    RequirementKind.FEEDBACK_COUNT: "feedback_count",
    RequirementKind.VOTE_COUNT: "vote_count",
    RequirementKind.QUESTIONNAIRE_COUNT: "questionnaire_count",
}

FLAG_FIELDS: dict[RequirementKind, str] = {
    RequirementKind.EARLY_USER: "early_user",
    RequirementKind.ALL_BADGES: "all_badges",
}

# camelCase spellings used by catalogs exported from the web app
_ALIASES: dict[str, RequirementKind] = {
    "consecutiveDays": RequirementKind.CONSECUTIVE_DAYS,
    "totalPoints": RequirementKind.TOTAL_POINTS,
    "feedbackCount": RequirementKind.FEEDBACK_COUNT,
    "voteCount": RequirementKind.VOTE_COUNT,
    "questionnaireCount": RequirementKind.QUESTIONNAIRE_COUNT,
    "earlyUser": RequirementKind.EARLY_USER,
    "allBadges": RequirementKind.ALL_BADGES,
}


def _kind_for(field_name: str) -> RequirementKind | None:
    if field_name in _ALIASES:
        return _ALIASES[field_name]
    try:
        return RequirementKind(field_name)
    except ValueError:
        return None


def parse_requirement(raw: dict | str | None) -> Requirement | None:
    """Parse a stored requirement, returning None when it is malformed."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, dict) or len(raw) != 1:
        return None

    (field_name, value), = raw.items()
    kind = _kind_for(field_name)
    if kind is None:
        return None

    if kind in FLAG_FIELDS:
        if not isinstance(value, bool):
            return None
        return Requirement(kind, value)

    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return None
    return Requirement(kind, value)


# ---------------------------------------------------------------------------
# Handlers — pure functions (requirement, stats) → bool
# ---------------------------------------------------------------------------
def _check_threshold(requirement: Requirement, stats: UserStatsSnapshot) -> bool:
    return getattr(stats, THRESHOLD_FIELDS[requirement.kind]) >= requirement.value


def _check_flag(requirement: Requirement, stats: UserStatsSnapshot) -> bool:
    return bool(getattr(stats, FLAG_FIELDS[requirement.kind])) == requirement.value


REQUIREMENT_HANDLERS = {
    **{kind: _check_threshold for kind in THRESHOLD_FIELDS},
    **{kind: _check_flag for kind in FLAG_FIELDS},
}


def check_requirement(
    raw: dict | str | None,
    stats: UserStatsSnapshot,
    *,
    achievement_key: str | None = None,
) -> bool:
    """True when *raw* parses and *stats* satisfies it."""
    requirement = parse_requirement(raw)
    if requirement is None:
        logger.warning(
            "Malformed achievement requirement %r (achievement=%s); treated as unmet",
            raw, achievement_key,
        )
        return False
    return REQUIREMENT_HANDLERS[requirement.kind](requirement, stats)
