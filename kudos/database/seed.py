"""
kudos.database.seed — Default Achievement & Badge Catalog Seeder
=================================================================

The achievement and badge catalogs are read-only at runtime; they are
written once here.

Idempotent — only inserts keys that don't already exist.  Definitions that
were edited in the database after seeding are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from kudos.database.models import (
    Achievement,
    AchievementCategory,
    Badge,
    BadgeCategory,
    BadgeTier,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default achievement catalogue
# ---------------------------------------------------------------------------
DEFAULT_ACHIEVEMENTS: list[dict] = [
    # Streaks
    {
        "key": "streak_7day",
        "name": "7-Day Streak",
        "description": "Engaged with the platform for 7 consecutive days",
        "category": AchievementCategory.STREAK,
        "requirement": {"consecutive_days": 7},
        "points": 100,
        "hidden": False,
    },
    {
        "key": "streak_30day",
        "name": "30-Day Streak",
        "description": "Engaged with the platform for 30 consecutive days",
        "category": AchievementCategory.STREAK,
        "requirement": {"consecutive_days": 30},
        "points": 500,
        "hidden": False,
    },
    {
        "key": "streak_100day",
        "name": "100-Day Streak",
        "description": "Engaged with the platform for 100 consecutive days",
        "category": AchievementCategory.STREAK,
        "requirement": {"consecutive_days": 100},
        "points": 2000,
        "hidden": False,
    },
    # Milestones
    {
        "key": "milestone_level5",
        "name": "Level 5 Reached",
        "description": "Reached Level 5",
        "category": AchievementCategory.MILESTONE,
        "requirement": {"level": 5},
        "points": 200,
        "hidden": False,
    },
    {
        "key": "milestone_level10",
        "name": "Level 10 Reached",
        "description": "Reached Level 10",
        "category": AchievementCategory.MILESTONE,
        "requirement": {"level": 10},
        "points": 500,
        "hidden": False,
    },
    {
        "key": "milestone_1000points",
        "name": "Point Master",
        "description": "Earned 1,000 total points",
        "category": AchievementCategory.MILESTONE,
        "requirement": {"total_points": 1000},
        "points": 250,
        "hidden": False,
    },
    {
        "key": "milestone_10000points",
        "name": "Point Legend",
        "description": "Earned 10,000 total points",
        "category": AchievementCategory.MILESTONE,
        "requirement": {"total_points": 10000},
        "points": 1000,
        "hidden": False,
    },
    # Special
    {
        "key": "special_first_feedback",
        "name": "First Steps",
        "description": "Submitted your first feedback",
        "category": AchievementCategory.SPECIAL,
        "requirement": {"feedback_count": 1},
        "points": 25,
        "hidden": False,
    },
    {
        "key": "special_first_vote",
        "name": "Voice Heard",
        "description": "Cast your first vote",
        "category": AchievementCategory.SPECIAL,
        "requirement": {"vote_count": 1},
        "points": 10,
        "hidden": False,
    },
    {
        "key": "special_first_questionnaire",
        "name": "Research Pioneer",
        "description": "Completed your first questionnaire",
        "category": AchievementCategory.SPECIAL,
        "requirement": {"questionnaire_count": 1},
        "points": 50,
        "hidden": False,
    },
    {
        "key": "special_early_adopter",
        "name": "Early Adopter",
        "description": "One of the first 100 users on the platform",
        "category": AchievementCategory.SPECIAL,
        "requirement": {"early_user": True},
        "points": 100,
        "hidden": True,
    },
    {
        "key": "special_all_badges",
        "name": "Badge Collector",
        "description": "Earned all available badges",
        "category": AchievementCategory.SPECIAL,
        "requirement": {"all_badges": True},
        "points": 1000,
        "hidden": True,
    },
]


# ---------------------------------------------------------------------------
# Default badge catalogue — four tiers per activity family
# ---------------------------------------------------------------------------
_TIER_REQUIREMENTS: dict[BadgeTier, int] = {
    BadgeTier.BRONZE: 10,
    BadgeTier.SILVER: 50,
    BadgeTier.GOLD: 100,
    BadgeTier.PLATINUM: 500,
}


def _tiers(category: BadgeCategory, noun: str, tiers: list[tuple[str, int]]) -> list[dict]:
    """Expand ``[(name, points), ...]`` in bronze → platinum order."""
    return [
        {
            "key": f"{category.value}_{tier.value}",
            "name": name,
            "description": noun.format(n=_TIER_REQUIREMENTS[tier]),
            "tier": tier,
            "category": category,
            "requirement": _TIER_REQUIREMENTS[tier],
            "points": points,
        }
        for tier, (name, points) in zip(_TIER_REQUIREMENTS, tiers)
    ]


DEFAULT_BADGES: list[dict] = [
    *_tiers(BadgeCategory.FEEDBACK, "Submitted {n} feedback items", [
        ("Feedback Contributor", 50),
        ("Feedback Champion", 200),
        ("Feedback Expert", 500),
        ("Feedback Legend", 2000),
    ]),
    *_tiers(BadgeCategory.VOTING, "Voted on {n} feedback items", [
        ("Active Voter", 30),
        ("Community Voice", 150),
        ("Voting Expert", 300),
        ("Voting Legend", 1000),
    ]),
    *_tiers(BadgeCategory.RESEARCH, "Participated in {n} research activities", [
        ("Research Participant", 100),
        ("Research Contributor", 400),
        ("Research Expert", 800),
        ("Research Legend", 3000),
    ]),
    *_tiers(BadgeCategory.ENGAGEMENT, "Engaged with the platform {n} times", [
        ("Community Member", 25),
        ("Active Community Member", 100),
        ("Community Leader", 250),
        ("Community Champion", 1500),
    ]),
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def _seed_missing_keys(engine: Engine, model, catalog: list[dict], build) -> int:
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(model.key)).all())
        for item in catalog:
            if item["key"] in existing:
                continue
            session.add(build(item))
            existing.add(item["key"])
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d %s.", inserted, model.__tablename__)
    return inserted


def seed_default_achievements(
    engine: Engine, catalog: list[dict] | None = None,
) -> int:
    """Insert catalog entries whose ``key`` is not present yet.

    Returns the number of rows inserted.
    """
    return _seed_missing_keys(
        engine,
        Achievement,
        DEFAULT_ACHIEVEMENTS if catalog is None else catalog,
        lambda item: Achievement(
            key=item["key"],
            name=item["name"],
            description=item.get("description"),
            category=str(item["category"]),
            requirement=item.get("requirement"),
            points=item.get("points", 0),
            hidden=item.get("hidden", False),
        ),
    )


def seed_default_badges(engine: Engine, catalog: list[dict] | None = None) -> int:
    """Insert badges whose ``key`` is not present yet.  Returns the count."""
    return _seed_missing_keys(
        engine,
        Badge,
        DEFAULT_BADGES if catalog is None else catalog,
        lambda item: Badge(
            key=item["key"],
            name=item["name"],
            description=item.get("description"),
            tier=str(item["tier"]),
            category=str(item["category"]),
            requirement=item["requirement"],
            points=item.get("points", 0),
        ),
    )
