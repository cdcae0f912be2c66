"""
Unit Tests for the Data Model

Immutability, derived values and the persisted JSON shape.
"""

import dataclasses
import pytest
import sys
import os
from datetime import date, datetime, timezone

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))

from levely_companion.models import (
    BadgeId,
    ChatMessage,
    Difficulty,
    LearningEvent,
    LearningEventType,
    LevelyProgress,
    TopicProgress,
    TrendPoint,
    parse_datetime,
)

AT = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def progress():
    return LevelyProgress(
        points=42,
        correct_total=3,
        attempted_total=4,
        daily_streak=2,
        last_active_date=date(2024, 5, 1),
        topics={
            "Usability": TopicProgress(
                topic="Usability", attempted=4, correct=3, correct_streak=2,
                current_difficulty=Difficulty.MEDIUM,
            ),
        },
        badges=frozenset({BadgeId.TOPIC_EXPLORER, BadgeId.COMEBACK}),
        history=(
            LearningEvent(type=LearningEventType.QUIZ, topic="Usability", correct=1, attempted=1, at=AT),
            LearningEvent(type=LearningEventType.ASSESSMENT, correct=8, attempted=10, score=80,
                          reference_id="as-1", at=AT),
        ),
        trend=(TrendPoint(type=LearningEventType.ASSESSMENT, value=80.0, at=AT),),
        last_feedback="Benar.",
        last_feedback_at=AT,
    )


class TestLevelyProgress:
    """Aggregate record."""

    def test_empty_defaults(self):
        empty = LevelyProgress.empty()

        assert empty.points == 0
        assert empty.accuracy == 0.0
        assert empty.has_submission() is False
        assert empty.last_active_date is None

    def test_records_are_frozen(self, progress):
        with pytest.raises(dataclasses.FrozenInstanceError):
            progress.points = 1

    def test_clone_with_returns_new_record(self, progress):
        clone = progress.clone_with(points=50, badges=[BadgeId.QUIZ_MASTER])

        assert clone.points == 50
        assert clone.badges == frozenset({BadgeId.QUIZ_MASTER})
        assert progress.points == 42

    def test_topic_or_default(self, progress):
        assert progress.topic_or_default("Usability").current_difficulty == Difficulty.MEDIUM
        fresh = progress.topic_or_default("Heuristics")
        assert fresh.attempted == 0
        assert fresh.current_difficulty == Difficulty.EASY

    def test_derived_values(self, progress):
        assert progress.accuracy == 0.75
        assert progress.topics_attempted == ["Usability"]
        assert progress.has_submission() is True

    def test_to_dict_shape(self, progress):
        data = progress.to_dict()

        assert data["correctTotal"] == 3
        assert data["lastActiveDate"] == "2024-05-01"
        assert data["badges"] == ["comeback", "topicExplorer"]
        assert data["topics"]["Usability"]["currentDifficulty"] == "medium"
        assert data["history"][1]["referenceId"] == "as-1"
        assert data["trend"][0] == {"type": "assessment", "value": 80.0, "at": AT.isoformat()}

    def test_json_round_trip(self, progress):
        assert LevelyProgress.from_dict(progress.to_dict()) == progress

    def test_from_dict_handles_missing_and_unknown_values(self):
        restored = LevelyProgress.from_dict({
            "points": 5,
            "badges": ["quizMaster", "retiredBadge"],
            "lastFeedbackAt": "2024-05-01T10:30:00Z",
        })

        assert restored.points == 5
        assert restored.badges == frozenset({BadgeId.QUIZ_MASTER})
        assert restored.last_feedback_at == AT
        assert restored.history == ()

    def test_from_dict_of_nothing_is_empty(self):
        assert LevelyProgress.from_dict(None) == LevelyProgress.empty()
        assert LevelyProgress.from_dict({}) == LevelyProgress.empty()


class TestSmallRecords:
    """Topic, event and chat records."""

    def test_topic_accuracy(self):
        assert TopicProgress(topic="x").accuracy == 0.0
        assert TopicProgress(topic="x", attempted=4, correct=1).accuracy == 0.25

    def test_event_accuracy(self):
        assert LearningEvent(type=LearningEventType.ASSIGNMENT, score=90).accuracy is None
        assert LearningEvent(type=LearningEventType.ASSESSMENT, correct=3, attempted=4).accuracy == 0.75

    def test_parse_datetime_z_suffix(self):
        assert parse_datetime("2024-05-01T10:30:00Z") == AT
        assert parse_datetime(None) is None

    def test_chat_message_coerce_shapes(self):
        assert ChatMessage.coerce({"role": "assistant", "content": "hai"}) == ChatMessage.assistant("hai")
        assert ChatMessage.coerce({"role": "system", "content": "x"}).role == "user"
        assert ChatMessage.coerce({"fromUser": True, "text": "halo"}) == ChatMessage.user("halo")
        assert ChatMessage.coerce({"fromUser": False, "text": "balas"}).role == "assistant"
        assert ChatMessage.coerce({"role": "user", "content": "   "}) is None
        assert ChatMessage.coerce("plain string") is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
