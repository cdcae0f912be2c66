"""
Observation Layer

Turns quiz answers, assessments and assignments into updated progression
snapshots with bounded history and trend logs. Assessment and assignment
callbacks carrying an already-seen reference id are idempotent.
"""

import logging
import numbers
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from levely_companion.errors import ObservationValidationError
from levely_companion.gamification import apply_quiz_result, update_daily_streak
from levely_companion.models import (
    Badge,
    LearningEvent,
    LearningEventType,
    LevelyProgress,
    Number,
    QuizQuestion,
    TrendPoint,
)

logger = logging.getLogger(__name__)


@dataclass
class Observation:
    """Before/after snapshots of one observed submission."""
    before: LevelyProgress
    after: LevelyProgress
    event: LearningEvent
    points_delta: Optional[int] = None
    newly_unlocked: List[Badge] = field(default_factory=list)
    duplicate: bool = False


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


class CompanionObserver:
    """Applies submissions to a progression snapshot without touching storage."""

    def __init__(self, max_history: int = 30, max_trend: int = 12):
        self.max_history = max_history
        self.max_trend = max_trend

    def observe_quiz(
        self,
        progress: LevelyProgress,
        question: QuizQuestion,
        selected_index: int,
        now: datetime,
    ) -> Observation:
        """
        Apply one quiz answer. Quiz answers are never deduplicated.

        Raises:
            ObservationValidationError: if ``selected_index`` is not one of the choices
        """
        if not _is_int(selected_index) or not 0 <= selected_index < len(question.choices):
            raise ObservationValidationError(
                f"selected_index {selected_index!r} is out of range for question {question.id}"
            )

        is_correct = question.is_correct(selected_index)
        result = apply_quiz_result(progress, question, is_correct, now)

        event = LearningEvent(
            type=LearningEventType.QUIZ,
            topic=question.topic,
            correct=1 if is_correct else 0,
            attempted=1,
            at=now,
        )
        trend_value = result.progress.topic_or_default(question.topic).accuracy * 100
        updated = self.with_history_and_trend(result.progress, event, trend_value, now)

        return Observation(
            before=progress,
            after=updated,
            event=event,
            points_delta=result.points_delta,
            newly_unlocked=result.newly_unlocked,
        )

    def observe_assessment(
        self,
        progress: LevelyProgress,
        correct: int,
        attempted: int,
        score: Number,
        now: datetime,
        topic: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> Observation:
        """
        Record a graded assessment.

        Raises:
            ObservationValidationError: on missing or out-of-range counts/score
        """
        if not _is_int(correct) or not _is_int(attempted):
            raise ObservationValidationError("Assessment needs integer correct and attempted counts")
        if not 0 <= correct <= attempted:
            raise ObservationValidationError(
                f"Assessment counts out of range: correct={correct}, attempted={attempted}"
            )
        if not _is_number(score) or not 0 <= score <= 100:
            raise ObservationValidationError(f"Assessment score must be within 0..100, got {score!r}")

        base = update_daily_streak(progress, now)
        event = LearningEvent(
            type=LearningEventType.ASSESSMENT,
            topic=topic,
            correct=correct,
            attempted=attempted,
            score=score,
            reference_id=reference_id,
            at=now,
        )

        if self.already_observed(base, LearningEventType.ASSESSMENT, reference_id):
            logger.info(f"🔁 [CompanionObserver] Assessment {reference_id} already observed, skipping")
            return Observation(before=progress, after=base, event=event, duplicate=True)

        if score > 0:
            trend_value = score
        elif attempted == 0:
            trend_value = 0
        else:
            trend_value = correct / attempted * 100
        updated = self.with_history_and_trend(base, event, trend_value, now)
        return Observation(before=progress, after=updated, event=event)

    def observe_assignment(
        self,
        progress: LevelyProgress,
        now: datetime,
        score: Optional[Number] = None,
        topic: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> Observation:
        """
        Record a submitted assignment. ``score`` is ``None`` until it is graded.

        Raises:
            ObservationValidationError: if a given score is outside 0..100
        """
        if score is not None and (not _is_number(score) or not 0 <= score <= 100):
            raise ObservationValidationError(f"Assignment score must be within 0..100, got {score!r}")

        base = update_daily_streak(progress, now)
        event = LearningEvent(
            type=LearningEventType.ASSIGNMENT,
            topic=topic,
            score=score,
            reference_id=reference_id,
            at=now,
        )

        if self.already_observed(base, LearningEventType.ASSIGNMENT, reference_id):
            logger.info(f"🔁 [CompanionObserver] Assignment {reference_id} already observed, skipping")
            return Observation(before=progress, after=base, event=event, duplicate=True)

        trend_value = score if score and score > 0 else None
        updated = self.with_history_and_trend(base, event, trend_value, now)
        return Observation(before=progress, after=updated, event=event)

    @staticmethod
    def already_observed(progress: LevelyProgress, event_type: LearningEventType, reference_id: Optional[str]) -> bool:
        if not reference_id or not reference_id.strip():
            return False
        return any(
            entry.type == event_type and entry.reference_id == reference_id
            for entry in progress.history
        )

    def with_history_and_trend(
        self,
        progress: LevelyProgress,
        event: LearningEvent,
        trend_value: Optional[float],
        now: datetime,
    ) -> LevelyProgress:
        """Append the event (and a trend point when a value exists), evicting oldest first."""
        history = list(progress.history) + [event]
        history = history[-self.max_history:]

        trend = list(progress.trend)
        if trend_value is not None:
            trend.append(TrendPoint(type=event.type, value=float(trend_value), at=now))
        trend = trend[-self.max_trend:]

        return progress.clone_with(history=history, trend=trend)
