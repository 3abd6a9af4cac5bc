"""
tests/test_badge_service.py — Badge Evaluation Integration Tests
=================================================================
Covers check_and_award_badges (tier thresholds, at-most-once earning,
atomic bonus rows, events), the badge seeder and the badge read models.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from kudos.database.models import (
    Badge,
    BadgeCategory,
    EventType,
    PointAction,
    PointTransaction,
    UserBadge,
    UserPoints,
)
from kudos.database.seed import DEFAULT_BADGES, seed_default_badges
from kudos.database.store import PointsStore
from kudos.engine.events import CollectingSink
from kudos.services import badge_service
from kudos.services.achievement_service import ActivityCounts
from kudos.services.badge_service import check_and_award_badges


def _total_points(engine, user_id: str) -> int:
    with Session(engine) as session:
        row = session.get(UserPoints, user_id)
        return row.total_points if row else 0


def _badge_bonus_rows(engine, user_id: str) -> list[PointTransaction]:
    with Session(engine) as session:
        return list(session.scalars(
            select(PointTransaction).where(
                PointTransaction.user_id == user_id,
                PointTransaction.action == PointAction.BADGE_EARNED.value,
                PointTransaction.resource_type == "badge",
            ).order_by(PointTransaction.id)
        ).all())


# ===========================================================================
# Seeder
# ===========================================================================
class TestBadgeSeeder:
    def test_default_catalog(self, db_engine):
        assert seed_default_badges(db_engine) == 16
        assert seed_default_badges(db_engine) == 0
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Badge)) == len(DEFAULT_BADGES)
            bronze = session.scalars(select(Badge).where(Badge.key == "voting_bronze")).one()
        assert bronze.name == "Active Voter"
        assert bronze.requirement == 10
        assert bronze.points == 30


# ===========================================================================
# check_and_award_badges
# ===========================================================================
class TestCheckAndAwardBadges:
    def test_bronze_at_ten_votes(self, store, db_engine):
        seed_default_badges(db_engine)

        earned = check_and_award_badges(
            store, "u1", BadgeCategory.VOTING, ActivityCounts(vote_count=10),
        )

        assert earned == ["voting_bronze"]
        assert _total_points(db_engine, "u1") == 30
        rows = _badge_bonus_rows(db_engine, "u1")
        assert len(rows) == 1
        assert rows[0].metadata_ == {"badge_key": "voting_bronze"}

    def test_below_threshold_tracks_progress(self, store, db_engine):
        seed_default_badges(db_engine)

        assert check_and_award_badges(
            store, "u1", BadgeCategory.FEEDBACK, ActivityCounts(feedback_count=4),
        ) == []

        progress = badge_service.get_user_badge_progress(db_engine, "u1", "feedback")
        assert [ub.progress for ub in progress] == [4, 4, 4, 4]
        assert all(ub.earned_at is None for ub in progress)

    def test_several_tiers_at_once(self, store, db_engine):
        seed_default_badges(db_engine)
        earned = check_and_award_badges(
            store, "u1", BadgeCategory.FEEDBACK, ActivityCounts(feedback_count=60),
        )
        assert earned == ["feedback_bronze", "feedback_silver"]
        assert _total_points(db_engine, "u1") == 250

    def test_research_counts_sessions(self, store, db_engine):
        seed_default_badges(db_engine)
        earned = check_and_award_badges(
            store, "u1", BadgeCategory.RESEARCH,
            ActivityCounts(questionnaire_count=6, session_count=4),
        )
        assert earned == ["research_bronze"]

    def test_earned_once(self, store, db_engine):
        seed_default_badges(db_engine)
        counts = ActivityCounts(vote_count=12)
        check_and_award_badges(store, "u1", BadgeCategory.VOTING, counts)

        assert check_and_award_badges(store, "u1", BadgeCategory.VOTING, counts) == []
        assert len(_badge_bonus_rows(db_engine, "u1")) == 1

    def test_events(self, store, db_engine):
        seed_default_badges(db_engine)
        sink = CollectingSink()

        check_and_award_badges(
            store, "u1", BadgeCategory.RESEARCH,
            ActivityCounts(session_count=10), sink=sink,
        )

        badges = sink.of_type(EventType.BADGE_EARNED)
        assert [e.payload["key"] for e in badges] == ["research_bronze"]
        assert badges[0].payload["tier"] == "bronze"
        # The 100-point bonus crosses the first level threshold
        assert len(sink.of_type(EventType.LEVEL_UP)) == 1

    def test_failed_bonus_write_leaves_badge_unearned(self, store, db_engine):
        seed_default_badges(db_engine)
        counts = ActivityCounts(vote_count=10)
        disk_error = OperationalError(
            "INSERT INTO point_transactions", {}, Exception("disk I/O error"),
        )

        with patch.object(PointsStore, "_new_ledger_row", side_effect=disk_error):
            assert check_and_award_badges(store, "u1", BadgeCategory.VOTING, counts) == []

        with Session(db_engine) as session:
            assert session.scalar(
                select(func.count()).select_from(UserBadge).where(UserBadge.earned_at.is_not(None))
            ) == 0

        assert check_and_award_badges(store, "u1", BadgeCategory.VOTING, counts) == [
            "voting_bronze",
        ]
        assert _total_points(db_engine, "u1") == 30

    def test_parallel_checks_earn_once(self, file_engine):
        seed_default_badges(file_engine)
        store = PointsStore(file_engine)
        counts = ActivityCounts(vote_count=10)

        def _run(_):
            return check_and_award_badges(store, "u1", BadgeCategory.VOTING, counts)

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(_run, range(6)))

        assert [key for keys in results for key in keys] == ["voting_bronze"]
        assert len(_badge_bonus_rows(file_engine, "u1")) == 1
        assert _total_points(file_engine, "u1") == 30


# ===========================================================================
# Read models
# ===========================================================================
class TestBadgeReadModels:
    def test_all_badges_by_category(self, db_engine):
        seed_default_badges(db_engine)
        voting = badge_service.get_all_badges(db_engine, "voting")
        assert [b.key for b in voting] == [
            "voting_bronze", "voting_silver", "voting_gold", "voting_platinum",
        ]
        assert len(badge_service.get_all_badges(db_engine)) == 16

    def test_user_badges_only_earned(self, store, db_engine):
        seed_default_badges(db_engine)
        check_and_award_badges(store, "u1", BadgeCategory.VOTING, ActivityCounts(vote_count=10))

        earned = badge_service.get_user_badges(db_engine, "u1")
        assert [ub.badge.key for ub in earned] == ["voting_bronze"]

        progress = badge_service.get_user_badge_progress(db_engine, "u1")
        assert [ub.badge.key for ub in progress][0] == "voting_bronze"
        assert len(progress) == 4

    def test_badge_stats(self, store, db_engine):
        seed_default_badges(db_engine)
        for user_id in ("u1", "u2"):
            check_and_award_badges(
                store, user_id, BadgeCategory.VOTING, ActivityCounts(vote_count=10),
            )
        check_and_award_badges(
            store, "u1", BadgeCategory.FEEDBACK, ActivityCounts(feedback_count=10),
        )

        stats = badge_service.get_badge_stats(db_engine)
        assert stats["total_badges"] == 16
        assert stats["earned_badges"] == 3
        assert [(r["key"], r["count"]) for r in stats["most_earned_badges"]] == [
            ("voting_bronze", 2),
            ("feedback_bronze", 1),
        ]
