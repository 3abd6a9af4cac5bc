"""
tests/test_points_service.py — Point Award Integration Tests
=============================================================
Covers award_points (ledger-first write, atomic aggregate increment, level
raise), the read models, leaderboards and periodic resets.

Uses an in-memory SQLite database via the shared conftest fixtures; the
concurrency test uses a file-backed database so threads really contend.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kudos.database.models import EventType, PointAction, PointTransaction, UserPoints
from kudos.database.store import PointsStore
from kudos.engine.events import CollectingSink
from kudos.errors import InvalidAwardError, StoreError, UnknownActionError
from kudos.services import points_service
from kudos.services.points_service import award_points


def _ledger(engine, user_id: str) -> list[PointTransaction]:
    with Session(engine) as session:
        return list(session.scalars(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.id)
        ).all())


def _aggregate(engine, user_id: str) -> UserPoints | None:
    with Session(engine, expire_on_commit=False) as session:
        return session.get(UserPoints, user_id)


# ===========================================================================
# award_points
# ===========================================================================
class TestAwardPoints:
    def test_static_point_value(self, store, db_engine):
        result = award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)

        assert result.points_awarded == 10
        assert result.total_points == 10
        assert result.level == 1
        assert result.leveled_up is False

        rows = _ledger(db_engine, "u1")
        assert len(rows) == 1
        assert rows[0].action == "submit_feedback"
        assert rows[0].category == "feedback"

    def test_string_action_accepted(self, store):
        result = award_points(store, "u1", "questionnaire_response")
        assert result.points_awarded == 15

    def test_aggregate_created_on_first_award(self, store, db_engine):
        award_points(store, "u1", PointAction.VOTE)
        row = _aggregate(db_engine, "u1")
        assert row is not None
        assert row.total_points == 2
        assert row.voting_points == 2
        assert row.weekly_points == 2
        assert row.monthly_points == 2
        assert row.level == 1
        assert row.next_level_threshold == 100

    def test_level_up_only_on_crossing_call(self, store):
        thresholds = (100, 250)
        results = [
            award_points(
                store, "u1", PointAction.BADGE_EARNED, bonus_override=40, thresholds=thresholds,
            )
            for _ in range(3)
        ]

        assert [r.total_points for r in results] == [40, 80, 120]
        assert [r.level for r in results] == [1, 1, 2]
        assert [r.leveled_up for r in results] == [False, False, True]

    def test_level_up_event_emitted_once(self, store, db_engine):
        sink = CollectingSink()
        for _ in range(3):
            award_points(
                store, "u1", PointAction.BADGE_EARNED,
                bonus_override=40, thresholds=(100, 250), sink=sink,
            )

        events = sink.of_type(EventType.LEVEL_UP)
        assert len(events) == 1
        assert events[0].payload == {"level": 2, "previous_level": 1, "total_points": 120}
        assert _aggregate(db_engine, "u1").next_level_threshold == 250

    def test_jump_several_levels(self, store):
        result = award_points(
            store, "u1", PointAction.BADGE_EARNED, bonus_override=600,
        )
        assert result.level == 4
        assert result.leveled_up is True

    def test_terminal_level(self, store, db_engine):
        result = award_points(
            store, "u1", PointAction.BADGE_EARNED, bonus_override=20000,
        )
        assert result.level == 11
        assert _aggregate(db_engine, "u1").next_level_threshold == 15000

        again = award_points(store, "u1", PointAction.VOTE)
        assert again.level == 11
        assert again.leveled_up is False

    def test_category_columns_sum_to_total_without_bonus(self, store, db_engine):
        award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)
        award_points(store, "u1", PointAction.VOTE)
        award_points(store, "u1", PointAction.SESSION_PARTICIPATION)
        award_points(store, "u1", PointAction.QUALITY_BONUS)

        row = _aggregate(db_engine, "u1")
        categories = (
            row.feedback_points + row.voting_points
            + row.research_points + row.quality_points
        )
        assert categories == row.total_points == 47

    def test_bonus_counts_towards_total_only(self, store, db_engine):
        award_points(store, "u1", PointAction.BADGE_EARNED, bonus_override=25)
        row = _aggregate(db_engine, "u1")
        assert row.total_points == 25
        assert row.feedback_points == row.voting_points == 0
        assert row.research_points == row.quality_points == 0

    def test_resource_and_metadata_recorded(self, store, db_engine):
        award_points(
            store, "u1", PointAction.SUBMIT_FEEDBACK,
            resource_id="fb-42", resource_type="feedback", metadata={"length": 120},
        )
        row = _ledger(db_engine, "u1")[0]
        assert row.resource_id == "fb-42"
        assert row.resource_type == "feedback"
        assert row.metadata_ == {"length": 120}

    def test_zero_bonus_override_is_allowed(self, store):
        result = award_points(store, "u1", PointAction.BADGE_EARNED, bonus_override=0)
        assert result.points_awarded == 0
        assert result.total_points == 0


# ===========================================================================
# Validation — nothing is written
# ===========================================================================
class TestAwardValidation:
    def test_unknown_action_rejected(self, store, db_engine):
        with pytest.raises(UnknownActionError):
            award_points(store, "u1", "teleport")
        assert _ledger(db_engine, "u1") == []
        assert _aggregate(db_engine, "u1") is None

    def test_unknown_action_is_a_value_error(self, store):
        with pytest.raises(ValueError):
            award_points(store, "u1", "teleport")

    def test_badge_earned_requires_override(self, store, db_engine):
        with pytest.raises(InvalidAwardError):
            award_points(store, "u1", PointAction.BADGE_EARNED)
        assert _ledger(db_engine, "u1") == []

    @pytest.mark.parametrize("override", [-1, 2.5, "10", True])
    def test_bad_override_rejected(self, store, db_engine, override):
        with pytest.raises(InvalidAwardError):
            award_points(store, "u1", PointAction.BADGE_EARNED, bonus_override=override)
        assert _ledger(db_engine, "u1") == []

    @pytest.mark.parametrize("action", [
        PointAction.VOTE, PointAction.SUBMIT_FEEDBACK, PointAction.QUALITY_BONUS,
    ])
    def test_override_rejected_for_fixed_value_actions(self, store, db_engine, action):
        with pytest.raises(InvalidAwardError, match="badge_earned"):
            award_points(store, "u1", action, bonus_override=500)
        assert _ledger(db_engine, "u1") == []
        assert _aggregate(db_engine, "u1") is None


# ===========================================================================
# Ledger-first failure handling
# ===========================================================================
class TestAggregateFailure:
    def test_ledger_kept_when_aggregate_fails(self, store, db_engine):
        with patch.object(
            PointsStore, "upsert_aggregate_with_increment",
            side_effect=StoreError("upsert_aggregate_with_increment failed"),
        ):
            with pytest.raises(StoreError) as excinfo:
                award_points(store, "u1", PointAction.VOTE)

        assert excinfo.value.retryable is True
        assert len(_ledger(db_engine, "u1")) == 1
        assert _aggregate(db_engine, "u1") is None

    def test_failing_sink_does_not_fail_award(self, store):
        class BrokenSink:
            def emit(self, event):
                raise RuntimeError("smtp down")

        result = award_points(
            store, "u1", PointAction.BADGE_EARNED,
            bonus_override=150, sink=BrokenSink(),
        )
        assert result.leveled_up is True


# ===========================================================================
# Concurrency — no lost updates
# ===========================================================================
class TestConcurrentAwards:
    def test_parallel_awards_sum_exactly(self, file_engine):
        store = PointsStore(file_engine)
        workers, per_worker = 8, 5

        def _run(_):
            for _ in range(per_worker):
                award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(_run, range(workers)))

        expected = workers * per_worker * 10
        row = _aggregate(file_engine, "u1")
        assert row.total_points == expected
        assert row.feedback_points == expected
        assert row.level == 3  # 400 points

        with Session(file_engine) as session:
            count = session.scalar(select(func.count()).select_from(PointTransaction))
        assert count == workers * per_worker


# ===========================================================================
# Read models
# ===========================================================================
class TestReadModels:
    def test_user_points_defaults(self, db_engine):
        summary = points_service.get_user_points(db_engine, "ghost")
        assert summary["total_points"] == 0
        assert summary["level"] == 1
        assert summary["points_to_next_level"] == 100

    def test_user_points_summary(self, store, db_engine):
        award_points(store, "u1", PointAction.SESSION_PARTICIPATION)
        summary = points_service.get_user_points(db_engine, "u1")
        assert summary["total_points"] == 30
        assert summary["research_points"] == 30
        assert summary["points_to_next_level"] == 70

    def test_history_newest_first(self, store, db_engine):
        award_points(store, "u1", PointAction.VOTE)
        award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)
        award_points(store, "u1", PointAction.QUALITY_BONUS)

        history = points_service.get_point_history(db_engine, "u1", limit=2)
        assert [t.action for t in history] == ["quality_bonus", "submit_feedback"]

    def test_leaderboard_and_rank(self, store, db_engine):
        award_points(store, "alice", PointAction.SESSION_PARTICIPATION)
        award_points(store, "bob", PointAction.SUBMIT_FEEDBACK)
        award_points(store, "carol", PointAction.VOTE)
        award_points(store, "carol", PointAction.VOTE)

        board = points_service.get_top_point_earners(db_engine)
        assert [e["user_id"] for e in board] == ["alice", "bob", "carol"]
        assert board[0] == {"rank": 1, "user_id": "alice", "points": 30, "level": 1}

        assert points_service.get_user_rank(db_engine, "bob") == 2
        assert points_service.get_user_rank(db_engine, "nobody") is None

    def test_category_leaderboard(self, store, db_engine):
        award_points(store, "alice", PointAction.SESSION_PARTICIPATION)
        award_points(store, "carol", PointAction.VOTE)

        board = points_service.get_top_point_earners(db_engine, category="voting")
        assert board[0]["user_id"] == "carol"
        assert board[0]["points"] == 2

    def test_weekly_reset(self, store, db_engine):
        award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)
        award_points(store, "u2", PointAction.VOTE)

        assert points_service.reset_weekly_points(db_engine) == 2

        row = _aggregate(db_engine, "u1")
        assert row.weekly_points == 0
        assert row.monthly_points == 10
        assert row.total_points == 10
        assert row.last_week_reset is not None

    def test_monthly_reset(self, store, db_engine):
        award_points(store, "u1", PointAction.SUBMIT_FEEDBACK)
        points_service.reset_monthly_points(db_engine)
        row = _aggregate(db_engine, "u1")
        assert row.monthly_points == 0
        assert row.weekly_points == 10

    def test_nearby_leaderboard_window(self, store, db_engine):
        for index in range(8):
            award_points(store, f"u{index}", PointAction.BADGE_EARNED, bonus_override=100 - index)

        nearby = points_service.get_nearby_leaderboard(db_engine, "u4", range_=2)
        assert [e["user_id"] for e in nearby] == ["u2", "u3", "u4", "u5", "u6"]
        assert nearby[2]["rank"] == 5

        top = points_service.get_nearby_leaderboard(db_engine, "u0", range_=2)
        assert [e["user_id"] for e in top] == ["u0", "u1", "u2"]

    def test_nearby_leaderboard_unknown_user(self, store, db_engine):
        award_points(store, "u1", PointAction.VOTE)
        assert points_service.get_nearby_leaderboard(db_engine, "ghost") == []

    def test_leaderboard_stats(self, store, db_engine):
        award_points(store, "alice", PointAction.SESSION_PARTICIPATION)
        award_points(store, "bob", PointAction.SUBMIT_FEEDBACK)
        points_service.reset_weekly_points(db_engine)
        award_points(store, "bob", PointAction.VOTE)

        stats = points_service.get_leaderboard_stats(db_engine)
        assert stats["total_participants"] == 2
        assert stats["top_weekly"] == {"user_id": "bob", "points": 2}
        assert stats["top_monthly"] == {"user_id": "alice", "points": 30}
        assert stats["top_all_time"] == {"user_id": "alice", "points": 30}

    def test_leaderboard_stats_empty(self, db_engine):
        stats = points_service.get_leaderboard_stats(db_engine)
        assert stats == {
            "total_participants": 0,
            "top_weekly": None,
            "top_monthly": None,
            "top_all_time": None,
        }


# ===========================================================================
# Bonus helpers
# ===========================================================================
class TestBonusHelpers:
    def test_bonus_ledger_entry_fields(self):
        bonus = points_service.bonus_ledger_entry(
            25, resource_id="3", resource_type="badge", metadata={"badge_key": "voting_bronze"},
        )
        assert bonus["points"] == 25
        assert bonus["action"] == PointAction.BADGE_EARNED
        assert bonus["category"] == "bonus"

    def test_bonus_ledger_entry_rejects_negative(self):
        with pytest.raises(InvalidAwardError):
            points_service.bonus_ledger_entry(-5, resource_id="3", resource_type="badge")

    def test_credit_bonus_updates_aggregate_only(self, store, db_engine):
        bonus = points_service.bonus_ledger_entry(150, resource_id="1", resource_type="achievement")
        sink = CollectingSink()

        result = points_service.credit_bonus(store, "u1", bonus, sink=sink)

        assert result.total_points == 150
        assert result.leveled_up is True
        assert _ledger(db_engine, "u1") == []
        assert len(sink.of_type(EventType.LEVEL_UP)) == 1

    def test_credit_bonus_swallows_store_error(self, store, db_engine, caplog):
        bonus = points_service.bonus_ledger_entry(10, resource_id="1", resource_type="achievement")
        with patch.object(
            PointsStore, "upsert_aggregate_with_increment",
            side_effect=StoreError("upsert_aggregate_with_increment failed"),
        ):
            assert points_service.credit_bonus(store, "u1", bonus) is None
        assert "not in the aggregate" in caplog.text
