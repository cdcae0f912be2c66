"""
Unit Tests for the Quiz Bank
"""

import json
import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))

from levely_companion.errors import QuestionNotFoundError, QuizBankValidationError
from levely_companion.models import Difficulty
from levely_companion.quiz_bank import DEFAULT_TOPICS, QuizBank


def write_bank(tmp_path, payload):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def entry(**overrides):
    data = {
        "id": "x-e-1",
        "topic": "Accessibility",
        "difficulty": "easy",
        "prompt": "Apa itu kontras warna?",
        "choices": ["Perbedaan terang-gelap", "Jenis font"],
        "correctIndex": 0,
        "explanation": "Kontras membantu keterbacaan.",
    }
    data.update(overrides)
    return data


class TestDefaultCatalog:
    """Built-in catalog."""

    @pytest.fixture
    def bank(self):
        return QuizBank()

    def test_catalog_size_and_topics(self, bank):
        assert len(bank) == 18
        assert bank.topics == list(DEFAULT_TOPICS)

    @pytest.mark.parametrize("topic", DEFAULT_TOPICS)
    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_two_questions_per_topic_and_difficulty(self, bank, topic, difficulty):
        questions = bank.by(topic, difficulty)

        assert len(questions) == 2
        assert all(q.topic == topic and q.difficulty == difficulty for q in questions)

    def test_ids_are_unique_and_answers_in_range(self, bank):
        questions = bank.all_questions()

        assert len({q.id for q in questions}) == len(questions)
        assert all(0 <= q.correct_index < len(q.choices) for q in questions)

    def test_get_by_id(self, bank):
        question = bank.get("h-m-1")
        assert question.topic == "Heuristics"
        assert question.difficulty == Difficulty.MEDIUM

    def test_get_unknown_id_raises(self, bank):
        with pytest.raises(QuestionNotFoundError):
            bank.get("missing")

    def test_unknown_topic_is_empty(self, bank):
        assert bank.by("Typography", Difficulty.EASY) == []
        assert bank.by_topic("Typography") == []

    def test_public_dict_hides_answer(self, bank):
        data = bank.get("u-e-1").to_dict(include_answer=False)
        assert "correctIndex" not in data
        assert "explanation" not in data


class TestFromJson:
    """Loading alternative catalogs."""

    def test_load_valid_file(self, tmp_path):
        bank = QuizBank.from_json(write_bank(tmp_path, [entry(), entry(id="x-e-2", correctIndex=1)]))

        assert len(bank) == 2
        assert bank.topics == ["Accessibility"]
        assert bank.get("x-e-2").correct_index == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            QuizBank.from_json(tmp_path / "nope.json")

    def test_root_must_be_list(self, tmp_path):
        with pytest.raises(QuizBankValidationError):
            QuizBank.from_json(write_bank(tmp_path, {"questions": []}))

    @pytest.mark.parametrize("bad", [
        entry(prompt=""),
        entry(difficulty="expert"),
        entry(choices=["only one"]),
        entry(correctIndex=5),
        entry(correctIndex="first"),
    ])
    def test_invalid_entries_rejected(self, tmp_path, bad):
        with pytest.raises(QuizBankValidationError):
            QuizBank.from_json(write_bank(tmp_path, [bad]))

    def test_duplicate_ids_rejected(self, tmp_path):
        with pytest.raises(QuizBankValidationError, match="Duplicate"):
            QuizBank.from_json(write_bank(tmp_path, [entry(), entry()]))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
