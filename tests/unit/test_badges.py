"""
Unit Tests for Badge Rules
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))

from levely_companion.badges import BADGE_CATALOG, badge_for, evaluate_badges, qualifying_badges
from levely_companion.models import BadgeId, LevelyProgress, TopicProgress


def progress_with(**changes):
    return LevelyProgress.empty().clone_with(**changes)


class TestBadgeRules:
    """Unlock conditions and one-way semantics."""

    def test_catalog_covers_every_badge(self):
        assert {badge.id for badge in BADGE_CATALOG} == set(BadgeId)
        assert badge_for(BadgeId.QUIZ_MASTER).title == "Quiz Master"

    def test_nothing_for_empty_progress(self):
        assert qualifying_badges(LevelyProgress.empty()) == []

    def test_consistency_after_three_days(self):
        assert BadgeId.CONSISTENCY_3_DAYS in qualifying_badges(progress_with(daily_streak=3))
        assert BadgeId.CONSISTENCY_3_DAYS not in qualifying_badges(progress_with(daily_streak=2))

    def test_quiz_master_at_twenty_correct(self):
        assert BadgeId.QUIZ_MASTER in qualifying_badges(progress_with(correct_total=20, attempted_total=30))
        assert BadgeId.QUIZ_MASTER not in qualifying_badges(progress_with(correct_total=19, attempted_total=30))

    def test_topic_explorer_at_three_topics(self):
        topics = {name: TopicProgress(topic=name, attempted=1) for name in ("A", "B", "C")}
        assert BadgeId.TOPIC_EXPLORER in qualifying_badges(progress_with(topics=topics))

    def test_fast_learner_window(self):
        assert BadgeId.FAST_LEARNER in qualifying_badges(progress_with(correct_total=5, attempted_total=7))
        assert BadgeId.FAST_LEARNER not in qualifying_badges(progress_with(correct_total=5, attempted_total=8))

    def test_comeback_only_with_trigger(self):
        assert BadgeId.COMEBACK not in qualifying_badges(LevelyProgress.empty())
        assert qualifying_badges(LevelyProgress.empty(), comeback_trigger=True) == [BadgeId.COMEBACK]

    def test_evaluate_awards_new_badges_in_check_order(self):
        progress = progress_with(daily_streak=3, correct_total=20, attempted_total=25)
        updated, unlocked = evaluate_badges(progress)

        assert [badge.id for badge in unlocked] == [BadgeId.CONSISTENCY_3_DAYS, BadgeId.QUIZ_MASTER]
        assert updated.badges == frozenset({BadgeId.CONSISTENCY_3_DAYS, BadgeId.QUIZ_MASTER})

    def test_owned_badges_are_not_reported_again(self):
        progress = progress_with(correct_total=25, attempted_total=30, badges={BadgeId.QUIZ_MASTER})
        updated, unlocked = evaluate_badges(progress)

        assert unlocked == []
        assert updated is progress

    def test_badges_are_never_removed(self):
        progress = progress_with(daily_streak=1, badges={BadgeId.CONSISTENCY_3_DAYS})
        updated, _ = evaluate_badges(progress)

        assert BadgeId.CONSISTENCY_3_DAYS in updated.badges


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
