"""
Kudos — Points, Levels & Achievements for Feedback Communities
================================================================
Rewards contributors of a feedback / research platform: every qualifying
action (submitting feedback, voting, answering a questionnaire) is written
to an append-only points ledger, rolled up into a per-user projection with
levels, and checked against tiered badges and a catalog of one-time
achievements.

Package layout::

    kudos/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level threshold table + leveling functions
    ├── errors.py          # Exception taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # ORM models (ledger, aggregate, catalog, progress)
    │   ├── seed.py        # Default achievement & badge catalog seeder
    │   └── store.py       # Atomic storage primitives used by the services
    ├── engine/
    │   ├── actions.py     # Action → (points, category) table
    │   ├── achievements.py # Requirement parsing + handler registry
    │   ├── badges.py      # Badge category counts + action mapping
    │   ├── streak.py      # Consecutive-day streak calculation
    │   └── events.py      # level_up / achievement / badge events + sinks
    ├── services/
    │   ├── points_service.py       # award_points + read models
    │   ├── achievement_service.py  # evaluate_achievements
    │   ├── badge_service.py        # check_and_award_badges
    │   ├── streak_service.py       # consecutive_days over the ledger
    │   ├── activity_service.py     # Best-effort record_action entry point
    │   ├── notification_service.py # Notification rows for events
    │   └── reconciliation_service.py # Rebuild aggregates from the ledger
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Read-only public endpoints
"""

__version__ = "0.1.0"
