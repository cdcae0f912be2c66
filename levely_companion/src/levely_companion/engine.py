"""
Levely Engine

Quiz flow (next question, answer submission, explanation text), study
recommendations and LLM-backed chat answers with offline fallback.
"""

import asyncio
import logging
import random
import time
from datetime import datetime
from typing import Iterable, List, Optional

from levely_companion.errors import ObservationValidationError, QuestionNotFoundError
from levely_companion.feedback import CompanionFeedback
from levely_companion.gamification import QuizResult, apply_quiz_result, build_recommendation
from levely_companion.llm_client import LlmClient
from levely_companion.models import ChatMessage, LevelyProgress, QuizQuestion, utcnow
from levely_companion.progress_store import InMemoryProgressStore, ProgressStore
from levely_companion.prompt import context_prompt, system_prompt
from levely_companion.quiz_bank import QuizBank

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10

HEURISTICS_ANSWER = (
    "Heuristik adalah aturan praktis untuk mengevaluasi UI (misalnya Nielsen). Contohnya mencakup "
    "visibilitas status sistem, konsistensi, dan pencegahan error. Mau bahas prinsip tertentu atau "
    "contoh penerapannya?"
)
USABILITY_ANSWER = (
    "Usability adalah seberapa mudah dan efektif user mencapai tujuan. Biasanya diukur lewat "
    "efektivitas, efisiensi, dan kepuasan pengguna. Kamu mau bahas metrik seperti task success rate, "
    "waktu penyelesaian, atau error rate?"
)


class LevelyEngine:
    """
    Owns the progress store, quiz bank and (optional) LLM client.

    Without an LLM client every chat answer comes from the offline templates.
    """

    def __init__(
        self,
        progress_store: Optional[ProgressStore] = None,
        quiz_bank: Optional[QuizBank] = None,
        llm_client: Optional[LlmClient] = None,
        feedback: Optional[CompanionFeedback] = None,
        timeout_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.progress_store = progress_store or InMemoryProgressStore()
        self.quiz_bank = quiz_bank or QuizBank()
        self.llm = llm_client
        self.feedback = feedback or CompanionFeedback()
        self.timeout_seconds = timeout_seconds
        self.rng = rng or random.Random()

    async def load_progress(self, learner_id: str) -> LevelyProgress:
        return await self.progress_store.load(learner_id)

    async def save_progress(self, learner_id: str, progress: LevelyProgress) -> None:
        await self.progress_store.save(learner_id, progress)

    # Quiz flow

    def next_question(self, progress: LevelyProgress, topic: str) -> QuizQuestion:
        """
        Pick a random question at the topic's current difficulty.

        Falls back to any question of the topic when that difficulty has none.

        Raises:
            QuestionNotFoundError: if the topic has no questions at all
        """
        topic_progress = progress.topic_or_default(topic)
        candidates = self.quiz_bank.by(topic, topic_progress.current_difficulty)
        if not candidates:
            candidates = self.quiz_bank.by_topic(topic)
            if not candidates:
                raise QuestionNotFoundError(f"No quiz found for topic {topic}")
        return self.rng.choice(candidates)

    async def submit_answer(
        self,
        learner_id: str,
        question: QuizQuestion,
        selected_index: int,
        progress: Optional[LevelyProgress] = None,
        now: Optional[datetime] = None,
    ) -> QuizResult:
        """Score one answer and persist the result (no history or feedback)."""
        if not 0 <= selected_index < len(question.choices):
            raise ObservationValidationError(
                f"selected_index {selected_index!r} is out of range for question {question.id}"
            )
        base = progress if progress is not None else await self.load_progress(learner_id)
        result = apply_quiz_result(base, question, question.is_correct(selected_index), now or utcnow())
        await self.save_progress(learner_id, result.progress)
        return result

    @staticmethod
    def feedback_for_quiz(question: QuizQuestion, selected_index: int, points_delta: int) -> str:
        if question.is_correct(selected_index):
            return f"Jawaban kamu sudah benar. +{points_delta} poin.\n\n{question.explanation}"
        chosen = question.choices[selected_index]
        correct_choice = question.choices[question.correct_index]
        return (
            f'Sepertinya kamu masih bingung. Jawaban kamu: "{chosen}".\n'
            f'Yang benar: "{correct_choice}". +{points_delta} poin.\n\n'
            f"{question.explanation}\n\n"
            "Mau coba contoh lain atau lanjut soal berikutnya?"
        )

    @staticmethod
    def recommendation(progress: LevelyProgress) -> str:
        return build_recommendation(progress)

    # Chat

    async def answer_chat(
        self,
        user_message: str,
        progress: LevelyProgress,
        history: Optional[Iterable] = None,
        course_id: Optional[int] = None,
        level: Optional[int] = None,
        chapter_name: Optional[str] = None,
        material_snippet: Optional[str] = None,
    ) -> str:
        """
        Generate a reply with the LLM, degrading to offline answers.

        Timeouts, client errors and empty replies fall back to
        ``offline_answer``. Cancellation propagates to the caller.
        """
        if self.llm is None:
            return self.offline_answer(user_message, progress, chapter_name)

        system = system_prompt(app_name="LeveLearn", assistant_name="Levely", language="Indonesia")
        context = context_prompt(
            progress,
            course_id=course_id,
            level=level,
            chapter_name=chapter_name,
            material_snippet=material_snippet,
        )
        messages = self.recent_messages(history) + [ChatMessage.user(user_message)]

        start_time = time.time()
        try:
            reply = await asyncio.wait_for(
                self.llm.complete(system, context, messages),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ [LevelyEngine] LLM timed out after {time.time() - start_time:.2f}s, using offline answer")
            return self.offline_answer(user_message, progress, chapter_name)
        except Exception as e:
            logger.error(f"❌ [LevelyEngine] LLM call failed: {e}")
            return self.offline_answer(user_message, progress, chapter_name)

        if not reply or not reply.strip():
            logger.warning("⚠️ [LevelyEngine] LLM returned empty reply, using offline answer")
            return self.offline_answer(user_message, progress, chapter_name)
        return reply.strip()

    @staticmethod
    def recent_messages(history: Optional[Iterable]) -> List[ChatMessage]:
        messages = [message for message in map(ChatMessage.coerce, history or []) if message is not None]
        return messages[-HISTORY_WINDOW:]

    def offline_answer(
        self,
        user_message: str,
        progress: Optional[LevelyProgress] = None,
        chapter_name: Optional[str] = None,
    ) -> str:
        lower = (user_message or "").lower()
        if "heuristik" in lower or "heuristics" in lower:
            return HEURISTICS_ANSWER
        if "usability" in lower:
            return USABILITY_ANSWER
        return self.feedback.quick_ask_fallback(user_message, progress or LevelyProgress.empty(), chapter_name)
