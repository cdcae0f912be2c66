"""
Levely Data Model

Immutable progression records for the learning companion. Every update goes
through ``clone_with`` which returns a new record, so a stored snapshot is
never changed behind the caller's back.

The JSON shape produced by ``to_dict`` is the persisted form: camelCase keys,
ISO-8601 timestamps and badges as a list of string ids.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Number = Union[int, float]


class Difficulty(Enum):
    """Per-topic quiz difficulty."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class LearningEventType(Enum):
    """Kinds of submissions the companion observes."""
    QUIZ = "quiz"
    ASSESSMENT = "assessment"
    ASSIGNMENT = "assignment"


class BadgeId(Enum):
    """Achievement badges. Values are the persisted identifiers."""
    CONSISTENCY_3_DAYS = "consistency3Days"
    FAST_LEARNER = "fastLearner"
    COMEBACK = "comeback"
    QUIZ_MASTER = "quizMaster"
    TOPIC_EXPLORER = "topicExplorer"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_datetime(text).date()


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Badge:
    """Static badge catalog entry."""
    id: BadgeId
    title: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id.value, "title": self.title, "description": self.description}


@dataclass(frozen=True)
class QuizQuestion:
    """A multiple-choice question tagged with topic and difficulty."""
    id: str
    topic: str
    difficulty: Difficulty
    prompt: str
    choices: Tuple[str, ...]
    correct_index: int
    explanation: str = ""

    def is_correct(self, selected_index: int) -> bool:
        return selected_index == self.correct_index

    def to_dict(self, include_answer: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "topic": self.topic,
            "difficulty": self.difficulty.value,
            "prompt": self.prompt,
            "choices": list(self.choices),
        }
        if include_answer:
            data["correctIndex"] = self.correct_index
            data["explanation"] = self.explanation
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizQuestion":
        return cls(
            id=str(data["id"]),
            topic=str(data["topic"]),
            difficulty=Difficulty(data["difficulty"]),
            prompt=str(data["prompt"]),
            choices=tuple(str(choice) for choice in data["choices"]),
            correct_index=int(data["correctIndex"]),
            explanation=str(data.get("explanation") or ""),
        )


@dataclass(frozen=True)
class TopicProgress:
    """Counters, streaks and adaptive difficulty for one topic."""
    topic: str
    attempted: int = 0
    correct: int = 0
    correct_streak: int = 0
    wrong_streak: int = 0
    current_difficulty: Difficulty = Difficulty.EASY

    @property
    def accuracy(self) -> float:
        if self.attempted == 0:
            return 0.0
        return self.correct / self.attempted

    def clone_with(self, **changes) -> "TopicProgress":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "attempted": self.attempted,
            "correct": self.correct,
            "correctStreak": self.correct_streak,
            "wrongStreak": self.wrong_streak,
            "currentDifficulty": self.current_difficulty.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopicProgress":
        try:
            difficulty = Difficulty(data.get("currentDifficulty") or Difficulty.EASY.value)
        except ValueError:
            logger.warning(f"⚠️ [TopicProgress] Unknown difficulty {data.get('currentDifficulty')!r}, using easy")
            difficulty = Difficulty.EASY
        return cls(
            topic=str(data["topic"]),
            attempted=int(data.get("attempted") or 0),
            correct=int(data.get("correct") or 0),
            correct_streak=int(data.get("correctStreak") or 0),
            wrong_streak=int(data.get("wrongStreak") or 0),
            current_difficulty=difficulty,
        )


@dataclass(frozen=True)
class LearningEvent:
    """One observed quiz answer, assessment or assignment. Never mutated."""
    type: LearningEventType
    topic: Optional[str] = None
    correct: Optional[int] = None
    attempted: Optional[int] = None
    score: Optional[Number] = None
    reference_id: Optional[str] = None
    at: datetime = field(default_factory=utcnow)

    @property
    def accuracy(self) -> Optional[float]:
        if not self.attempted:
            return None
        return (self.correct or 0) / self.attempted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "topic": self.topic,
            "correct": self.correct,
            "attempted": self.attempted,
            "score": self.score,
            "referenceId": self.reference_id,
            "at": _format_datetime(self.at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LearningEvent":
        return cls(
            type=LearningEventType(data["type"]),
            topic=data.get("topic"),
            correct=data.get("correct"),
            attempted=data.get("attempted"),
            score=data.get("score"),
            reference_id=data.get("referenceId"),
            at=parse_datetime(data.get("at")) or utcnow(),
        )


@dataclass(frozen=True)
class TrendPoint:
    """Numeric sample (accuracy % or score) used for "naik/turun" narration."""
    type: LearningEventType
    value: float
    at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value, "at": _format_datetime(self.at)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrendPoint":
        return cls(
            type=LearningEventType(data["type"]),
            value=float(data.get("value") or 0),
            at=parse_datetime(data.get("at")) or utcnow(),
        )


def _badge_ids(values: Iterable[Any]) -> FrozenSet[BadgeId]:
    badges = set()
    for value in values or ():
        if isinstance(value, BadgeId):
            badges.add(value)
            continue
        try:
            badges.add(BadgeId(value))
        except ValueError:
            logger.warning(f"⚠️ [LevelyProgress] Dropping unknown badge id {value!r}")
    return frozenset(badges)


@dataclass(frozen=True)
class LevelyProgress:
    """
    Aggregate progression record for one learner.

    Invariants: ``correct_total <= attempted_total``, history holds at most
    30 events and trend at most 12 points (enforced by the observer).
    """
    points: int = 0
    correct_total: int = 0
    attempted_total: int = 0
    daily_streak: int = 0
    last_active_date: Optional[date] = None
    topics: Dict[str, TopicProgress] = field(default_factory=dict)
    badges: FrozenSet[BadgeId] = frozenset()
    history: Tuple[LearningEvent, ...] = ()
    trend: Tuple[TrendPoint, ...] = ()
    last_feedback: Optional[str] = None
    last_feedback_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "LevelyProgress":
        return cls()

    @property
    def accuracy(self) -> float:
        if self.attempted_total == 0:
            return 0.0
        return self.correct_total / self.attempted_total

    @property
    def topics_attempted(self) -> List[str]:
        return list(self.topics.keys())

    def topic_or_default(self, topic: str) -> TopicProgress:
        existing = self.topics.get(topic)
        if existing is not None:
            return existing
        return TopicProgress(topic=topic)

    def has_submission(self) -> bool:
        return len(self.history) > 0 or self.attempted_total > 0

    def clone_with(self, **changes) -> "LevelyProgress":
        if "topics" in changes:
            changes["topics"] = dict(changes["topics"])
        if "badges" in changes:
            changes["badges"] = frozenset(changes["badges"])
        if "history" in changes:
            changes["history"] = tuple(changes["history"])
        if "trend" in changes:
            changes["trend"] = tuple(changes["trend"])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": self.points,
            "correctTotal": self.correct_total,
            "attemptedTotal": self.attempted_total,
            "dailyStreak": self.daily_streak,
            "lastActiveDate": self.last_active_date.isoformat() if self.last_active_date else None,
            "topics": {key: value.to_dict() for key, value in self.topics.items()},
            "badges": sorted(badge.value for badge in self.badges),
            "history": [event.to_dict() for event in self.history],
            "trend": [point.to_dict() for point in self.trend],
            "lastFeedback": self.last_feedback,
            "lastFeedbackAt": _format_datetime(self.last_feedback_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LevelyProgress":
        if not data:
            return cls.empty()
        topics = {
            key: value if isinstance(value, TopicProgress) else TopicProgress.from_dict({"topic": key, **value})
            for key, value in (data.get("topics") or {}).items()
        }
        return cls(
            points=int(data.get("points") or 0),
            correct_total=int(data.get("correctTotal") or 0),
            attempted_total=int(data.get("attemptedTotal") or 0),
            daily_streak=int(data.get("dailyStreak") or 0),
            last_active_date=parse_date(data.get("lastActiveDate")),
            topics=topics,
            badges=_badge_ids(data.get("badges") or []),
            history=tuple(LearningEvent.from_dict(entry) for entry in data.get("history") or []),
            trend=tuple(TrendPoint.from_dict(entry) for entry in data.get("trend") or []),
            last_feedback=data.get("lastFeedback"),
            last_feedback_at=parse_datetime(data.get("lastFeedbackAt")),
        )


@dataclass(frozen=True)
class ChatMessage:
    """A single chat turn passed to the LLM."""
    role: str
    content: str

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role="assistant", content=text)

    @classmethod
    def coerce(cls, entry: Any) -> Optional["ChatMessage"]:
        """
        Normalise a history entry.

        Accepts ``ChatMessage`` instances and dicts shaped either
        ``{"role", "content"}`` or ``{"fromUser", "text"}``. Empty entries
        yield ``None``.
        """
        if isinstance(entry, ChatMessage):
            return entry if entry.content.strip() else None
        if not isinstance(entry, Mapping):
            return None
        if entry.get("role"):
            role = "assistant" if entry.get("role") == "assistant" else "user"
        else:
            role = "user" if entry.get("fromUser") else "assistant"
        content = entry.get("content")
        if content is None:
            content = entry.get("text")
        content = str(content or "").strip()
        if not content:
            return None
        return cls(role=role, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
