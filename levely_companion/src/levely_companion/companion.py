"""
Levely Companion

Orchestrates observation, feedback and persistence for submissions, and
guarded quick-ask chat. Observation calls never reach the LLM; quick-ask
never mutates progress.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from levely_companion.config import LevelySettings, build_llm_client
from levely_companion.engine import LevelyEngine
from levely_companion.feedback import CompanionFeedback, limit_sentences
from levely_companion.material_snippet import build_snippet
from levely_companion.models import Badge, LearningEvent, LevelyProgress, Number, QuizQuestion, utcnow
from levely_companion.observer import CompanionObserver, Observation
from levely_companion.progress_store import InMemoryProgressStore, SupabaseProgressStore
from levely_companion.quiz_bank import QuizBank

logger = logging.getLogger(__name__)

MATERIAL_SNIPPET_MAX_CHARS = 1200


@dataclass
class AutoFeedback:
    """What a submission observation hands back to the caller."""
    progress: LevelyProgress
    event: LearningEvent
    feedback: str
    points_delta: Optional[int] = None
    newly_unlocked: List[Badge] = field(default_factory=list)
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "progress": self.progress.to_dict(),
            "event": self.event.to_dict(),
            "feedback": self.feedback,
            "pointsDelta": self.points_delta,
            "newlyUnlocked": [badge.to_dict() for badge in self.newly_unlocked],
            "duplicate": self.duplicate,
        }


class LevelyCompanion:
    """
    Entry point for quiz/assessment/assignment observations and quick-ask.

    Observation calls for the same learner are serialised with a per-learner
    ``asyncio.Lock`` unless ``serialize_updates`` is off, in which case
    concurrent calls race and the last save wins. A learner's lock is
    dropped once no call holds or waits on it.

    Observation times are converted to ``streak_timezone`` before the daily
    streak reads their calendar date.
    """

    def __init__(
        self,
        engine: Optional[LevelyEngine] = None,
        observer: Optional[CompanionObserver] = None,
        feedback: Optional[CompanionFeedback] = None,
        max_sentences: int = 8,
        serialize_updates: bool = True,
        material_max_chars: int = MATERIAL_SNIPPET_MAX_CHARS,
        streak_timezone: tzinfo = timezone.utc,
    ):
        self.feedback = feedback or CompanionFeedback()
        self.engine = engine or LevelyEngine(feedback=self.feedback)
        self.observer = observer or CompanionObserver()
        self.max_sentences = max_sentences
        self.serialize_updates = serialize_updates
        self.material_max_chars = material_max_chars
        self.streak_timezone = streak_timezone
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[LevelySettings] = None,
        supabase_client=None,
        quiz_bank: Optional[QuizBank] = None,
    ) -> "LevelyCompanion":
        """Wire store, LLM client and engine from settings."""
        settings = settings or LevelySettings.from_env()
        if supabase_client is not None:
            store = SupabaseProgressStore(supabase_client, table=settings.progress_table)
        else:
            logger.warning("⚠️ [LevelyCompanion] Supabase not available, using in-memory progress store")
            store = InMemoryProgressStore()

        feedback = CompanionFeedback()
        engine = LevelyEngine(
            progress_store=store,
            quiz_bank=quiz_bank,
            llm_client=build_llm_client(settings.llm),
            feedback=feedback,
            timeout_seconds=settings.llm_timeout_seconds,
        )
        logger.info(
            f"✅ [LevelyCompanion] Ready (llm={'on' if engine.llm else 'offline'}, "
            f"store={type(store).__name__}, serialize={settings.serialize_updates})"
        )
        return cls(
            engine=engine,
            feedback=feedback,
            max_sentences=settings.max_sentences,
            serialize_updates=settings.serialize_updates,
            streak_timezone=settings.streak_timezone,
        )

    @contextlib.asynccontextmanager
    async def _learner_lock(self, learner_id: str):
        if not self.serialize_updates:
            yield
            return

        lock = self._locks.setdefault(learner_id, asyncio.Lock())
        self._lock_users[learner_id] = self._lock_users.get(learner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[learner_id] -= 1
            if not self._lock_users[learner_id]:
                del self._lock_users[learner_id]
                del self._locks[learner_id]

    def _local_time(self, now: Optional[datetime]) -> datetime:
        return (now or utcnow()).astimezone(self.streak_timezone)

    async def load_progress(self, learner_id: str) -> LevelyProgress:
        return await self.engine.load_progress(learner_id)

    async def _finish(
        self,
        learner_id: str,
        observation: Observation,
        feedback_text: str,
        now: datetime,
    ) -> AutoFeedback:
        updated = observation.after.clone_with(last_feedback=feedback_text, last_feedback_at=now)
        await self.engine.save_progress(learner_id, updated)
        return AutoFeedback(
            progress=updated,
            event=observation.event,
            feedback=feedback_text,
            points_delta=observation.points_delta,
            newly_unlocked=observation.newly_unlocked,
            duplicate=observation.duplicate,
        )

    async def observe_quiz(
        self,
        learner_id: str,
        selected_index: int,
        question: Optional[QuizQuestion] = None,
        question_id: Optional[str] = None,
        progress: Optional[LevelyProgress] = None,
        now: Optional[datetime] = None,
    ) -> AutoFeedback:
        """
        Apply a quiz answer, compose feedback and persist.

        Args:
            learner_id: Learner key
            selected_index: Chosen answer index
            question: Answered question (or give ``question_id``)
            question_id: Id looked up in the quiz bank when ``question`` is omitted
            progress: Snapshot to start from instead of the stored one
            now: Observation time (defaults to the current time)

        Raises:
            QuestionNotFoundError: unknown ``question_id``
            ObservationValidationError: ``selected_index`` out of range
        """
        if question is None:
            question = self.engine.quiz_bank.get(question_id)
        now = self._local_time(now)

        async with self._learner_lock(learner_id):
            base = progress if progress is not None else await self.load_progress(learner_id)
            observation = self.observer.observe_quiz(base, question, selected_index, now)
            feedback_text = self.feedback.quiz_feedback(
                observation, question.topic, question.is_correct(selected_index)
            )
            result = await self._finish(learner_id, observation, feedback_text, now)

        logger.info(
            f"✅ [LevelyCompanion] Quiz {question.id} for {learner_id}: "
            f"+{result.points_delta} pts, badges={[badge.id.value for badge in result.newly_unlocked]}"
        )
        return result

    async def observe_assessment(
        self,
        learner_id: str,
        correct: int,
        attempted: int,
        score: Number,
        chapter_name: Optional[str] = None,
        reference_id: Optional[str] = None,
        progress: Optional[LevelyProgress] = None,
        now: Optional[datetime] = None,
    ) -> AutoFeedback:
        now = self._local_time(now)
        async with self._learner_lock(learner_id):
            base = progress if progress is not None else await self.load_progress(learner_id)
            observation = self.observer.observe_assessment(
                base, correct, attempted, score, now, topic=chapter_name, reference_id=reference_id
            )
            feedback_text = self.feedback.assessment_feedback(
                observation, correct, attempted, score, chapter_name
            )
            result = await self._finish(learner_id, observation, feedback_text, now)

        logger.info(f"✅ [LevelyCompanion] Assessment for {learner_id}: score={score}, duplicate={result.duplicate}")
        return result

    async def observe_assignment(
        self,
        learner_id: str,
        score: Optional[Number] = None,
        chapter_name: Optional[str] = None,
        reference_id: Optional[str] = None,
        progress: Optional[LevelyProgress] = None,
        now: Optional[datetime] = None,
    ) -> AutoFeedback:
        now = self._local_time(now)
        async with self._learner_lock(learner_id):
            base = progress if progress is not None else await self.load_progress(learner_id)
            observation = self.observer.observe_assignment(
                base, now, score=score, topic=chapter_name, reference_id=reference_id
            )
            feedback_text = self.feedback.assignment_feedback(observation, score, chapter_name)
            result = await self._finish(learner_id, observation, feedback_text, now)

        logger.info(f"✅ [LevelyCompanion] Assignment for {learner_id}: score={score}, duplicate={result.duplicate}")
        return result

    async def quick_ask(
        self,
        learner_id: str,
        prompt: str,
        history: Optional[Iterable] = None,
        course_id: Optional[int] = None,
        level: Optional[int] = None,
        chapter_name: Optional[str] = None,
        material_content: Optional[str] = None,
        progress: Optional[LevelyProgress] = None,
    ) -> str:
        """
        Answer a free-form question.

        Guardrail replies are returned as-is without calling the LLM, so
        performance claims always come from recorded submissions.
        """
        base = progress if progress is not None else await self.load_progress(learner_id)
        guardrail = self.feedback.guardrails(prompt, base)
        if guardrail:
            logger.info(f"🛡️ [LevelyCompanion] Guardrail reply for {learner_id}")
            return guardrail

        snippet = ""
        if material_content and material_content.strip():
            snippet = build_snippet(material_content, max_chars=self.material_max_chars)

        reply = await self.engine.answer_chat(
            prompt,
            base,
            history=history,
            course_id=course_id,
            level=level,
            chapter_name=chapter_name,
            material_snippet=snippet,
        )
        return limit_sentences(reply, self.max_sentences)
