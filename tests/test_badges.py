"""
tests/test_badges.py — Badge Category Rules
============================================
Pure tests for kudos.engine.badges.  No database.
"""

from __future__ import annotations

import pytest

from kudos.database.models import BadgeCategory, PointAction
from kudos.engine.badges import activity_count, categories_for_action
from kudos.services.achievement_service import ActivityCounts

COUNTS = ActivityCounts(feedback_count=3, vote_count=5, questionnaire_count=7, session_count=11)


class TestActivityCount:
    @pytest.mark.parametrize(
        ("category", "expected"),
        [
            (BadgeCategory.FEEDBACK, 3),
            (BadgeCategory.VOTING, 5),
            (BadgeCategory.RESEARCH, 18),
            (BadgeCategory.ENGAGEMENT, 15),
        ],
    )
    def test_category_counts(self, category, expected):
        assert activity_count(category, COUNTS) == expected

    def test_string_category(self):
        assert activity_count("voting", COUNTS) == 5

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            activity_count("karma", COUNTS)


class TestCategoriesForAction:
    def test_feedback_feeds_engagement(self):
        assert categories_for_action(PointAction.SUBMIT_FEEDBACK) == (
            BadgeCategory.FEEDBACK,
            BadgeCategory.ENGAGEMENT,
        )

    def test_session_is_research_only(self):
        assert categories_for_action("session_participation") == (BadgeCategory.RESEARCH,)

    @pytest.mark.parametrize("action", ["quality_bonus", "badge_earned", "teleport"])
    def test_actions_without_badges(self, action):
        assert categories_for_action(action) == ()
