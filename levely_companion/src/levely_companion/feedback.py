"""
Feedback Composer

Deterministic Indonesian feedback for observed submissions, guardrails for
free-form questions, and offline fallback answers. Nothing here calls the LLM.
"""

import re
from typing import Optional

from levely_companion.gamification import round_half_up
from levely_companion.models import Difficulty, LearningEventType, LevelyProgress, Number, TopicProgress, TrendPoint
from levely_companion.observer import Observation

EMPTY_PROMPT_REPLY = "Tulis pertanyaan singkat. Jika perlu, tambahkan konteks atau contoh."
NO_SUBMISSION_REPLY = (
    "Feedback performa hanya tersedia setelah kamu submit kuis/assessment/assignment. "
    "Selesaikan dulu, lalu aku bantu ringkas hasilnya."
)
WHICH_SUBMISSION_REPLY = (
    "Aku bisa bahas hasil submission kamu. Mau bahas hasil kuis, assessment, atau assignment yang mana?"
)

SUBMISSION_KEYWORDS = ("quiz", "kuis", "assessment", "asesmen", "assignment", "tugas")

_PERFORMANCE_WORDS = r"(progres|progress|performa|hasil|nilai|skor|score|kemajuan|akurasi|poin|streak)"
PERFORMANCE_QUESTION_RE = re.compile(
    r"(gimana|bagaimana|seberapa|cek|lihat|review|evaluasi)\s+" + _PERFORMANCE_WORDS,
    re.IGNORECASE,
)
SELF_PERFORMANCE_RE = re.compile(_PERFORMANCE_WORDS + r"(ku|\s*(saya|aku))", re.IGNORECASE)

SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

DIFFICULTY_LABELS = {
    Difficulty.EASY: "mudah",
    Difficulty.MEDIUM: "sedang",
    Difficulty.HARD: "sulit",
}


def format_score(value: Number) -> str:
    """``80.0`` renders as ``80``; fractional scores keep their decimals."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def limit_sentences(text: str, max_sentences: int = 8) -> str:
    """Keep at most ``max_sentences`` sentences of ``text``."""
    trimmed = (text or "").strip()
    if not trimmed:
        return trimmed
    parts = SENTENCE_SPLIT_RE.split(trimmed)
    if len(parts) <= max_sentences:
        return trimmed
    return " ".join(parts[:max_sentences]).strip()


class CompanionFeedback:
    """Guardrails and per-event feedback templates."""

    # Guardrails

    def guardrails(self, prompt: str, progress: LevelyProgress) -> Optional[str]:
        """
        Return a canned reply when the prompt must not reach the LLM, else ``None``.

        Performance questions are answered only after a submission exists and
        only when the learner names which kind of submission they mean.
        """
        trimmed = (prompt or "").strip()
        if not trimmed:
            return EMPTY_PROMPT_REPLY

        lower = trimmed.lower()
        if self.is_performance_request(lower):
            if not progress.has_submission():
                return NO_SUBMISSION_REPLY
            if not self.mentions_submission_type(lower):
                return WHICH_SUBMISSION_REPLY
        return None

    @staticmethod
    def is_performance_request(lower_prompt: str) -> bool:
        return bool(PERFORMANCE_QUESTION_RE.search(lower_prompt) or SELF_PERFORMANCE_RE.search(lower_prompt))

    @staticmethod
    def mentions_submission_type(lower_prompt: str) -> bool:
        return any(keyword in lower_prompt for keyword in SUBMISSION_KEYWORDS)

    # Event templates

    def quiz_feedback(self, observation: Observation, topic: str, is_correct: bool) -> str:
        after_topic = observation.after.topic_or_default(topic)
        accuracy = round_half_up(after_topic.accuracy * 100)
        trend_note = self.trend_delta_note(observation.before, LearningEventType.QUIZ, accuracy)

        summary = "Benar" if is_correct else "Belum tepat"
        performance = f"{summary}, akurasi topik {topic} sekarang {accuracy}%{self._note_suffix(trend_note)}."
        weakness = self.weak_point_for_topic(after_topic)
        next_step = self.next_step_for_topic(after_topic)
        return f"{performance} {weakness}{self.next_step_sentence(next_step)}"

    def assessment_feedback(
        self,
        observation: Observation,
        correct: int,
        attempted: int,
        score: Number,
        chapter_name: Optional[str] = None,
    ) -> str:
        label = self.chapter_suffix(chapter_name)
        trend_note = self.trend_delta_note(observation.before, LearningEventType.ASSESSMENT, score)
        summary = (
            f"Assessment selesai{label}. Benar {correct}/{attempted}, "
            f"skor {format_score(score)}/100{self._note_suffix(trend_note)}."
        )
        weakness = self.weak_point_for_score(score, chapter_name)
        next_step = self.next_step_for_score(score, chapter_name)
        return f"{summary} {weakness}{self.next_step_sentence(next_step)}"

    def assignment_feedback(
        self,
        observation: Observation,
        score: Optional[Number] = None,
        chapter_name: Optional[str] = None,
    ) -> str:
        label = self.chapter_suffix(chapter_name)
        if not score:
            return (
                f"Tugas terkirim{label}. Kelemahan belum bisa dinilai karena nilai belum tersedia. "
                "Langkah berikutnya: cek rubrik dan tunggu penilaian."
            )
        trend_note = self.trend_delta_note(observation.before, LearningEventType.ASSIGNMENT, score)
        summary = f"Tugas dinilai{label} dengan skor {format_score(score)}/100{self._note_suffix(trend_note)}."
        weakness = self.weak_point_for_score(score, chapter_name)
        next_step = self.next_step_for_score(score, chapter_name)
        return f"{summary} {weakness}{self.next_step_sentence(next_step)}"

    # Offline answers

    def quick_ask_fallback(self, prompt: str, progress: LevelyProgress, chapter_name: Optional[str] = None) -> str:
        """Templated answer used when no generated reply is available."""
        lower = (prompt or "").lower()
        if self.is_performance_request(lower):
            if not progress.has_submission():
                return NO_SUBMISSION_REPLY
            if not self.mentions_submission_type(lower):
                return WHICH_SUBMISSION_REPLY
            return "Sebutkan bagian hasil submission yang ingin kamu bahas."

        chapter = self.chapter_suffix(chapter_name)
        if "ringkas" in lower or "summary" in lower:
            return (
                f"Sebutkan bagian{chapter} yang ingin diringkas. Jika ada teksnya, tempelkan di sini; "
                "aku rangkum 3-5 poin utama plus istilah pentingnya."
            )
        if "contoh" in lower or "example" in lower:
            return (
                f"Sebutkan topik{chapter} yang ingin contoh singkatnya, plus konteksnya. Aku akan berikan "
                "contoh, jelaskan alasannya, dan bila perlu versi alternatifnya."
            )
        if "quiz" in lower or "kuis" in lower or "latihan" in lower:
            return (
                f"Aku bisa buat 3 soal latihan{chapter}. Sebutkan topik dan tingkat kesulitan; kalau belum "
                "yakin, aku buat level mudah dulu dan jelaskan jawabannya."
            )
        return (
            "Aku bisa jawab pertanyaan umum. Jelaskan topik, konteks, atau tujuanmu agar jawabannya lebih "
            "detail. Jika ada contoh, sertakan ya. Kalau mau, sebutkan tingkat kedalaman yang kamu inginkan."
        )

    # Sentence helpers

    @staticmethod
    def chapter_suffix(chapter_name: Optional[str]) -> str:
        if not chapter_name or not chapter_name.strip():
            return ""
        return f" di bab {chapter_name.strip()}"

    @staticmethod
    def _chapter_label(chapter_name: Optional[str]) -> str:
        if chapter_name and chapter_name.strip():
            return f"bab {chapter_name.strip()}"
        return "materi ini"

    @staticmethod
    def _note_suffix(note: str) -> str:
        return f", {note}" if note else ""

    def trend_delta_note(self, before: LevelyProgress, event_type: LearningEventType, current_value: Number) -> str:
        """Compare against the latest trend point of the same type recorded before this event."""
        previous = self.last_trend(before, event_type)
        if previous is None:
            return ""
        diff = current_value - previous.value
        if abs(diff) < 1:
            return "stabil dibanding sebelumnya"
        direction = "naik" if diff > 0 else "turun"
        return f"{direction} sekitar {round_half_up(abs(diff))} poin dari sebelumnya"

    @staticmethod
    def last_trend(progress: LevelyProgress, event_type: LearningEventType) -> Optional[TrendPoint]:
        for point in reversed(progress.trend):
            if point.type == event_type:
                return point
        return None

    @staticmethod
    def weak_point_for_topic(topic: TopicProgress) -> str:
        if topic.attempted < 2:
            return f"Bagian lemah: belum terlihat jelas, butuh lebih banyak latihan di topik {topic.topic}."
        if topic.accuracy < 0.6:
            return f"Bagian lemah: akurasi topik {topic.topic} masih rendah."
        if topic.accuracy < 0.8:
            return f"Bagian lemah: konsistensi di topik {topic.topic} masih naik-turun."
        return f"Bagian lemah: detail kecil di topik {topic.topic} masih bisa ditajamkan."

    def weak_point_for_score(self, score: Number, chapter_name: Optional[str]) -> str:
        label = self._chapter_label(chapter_name)
        if score >= 85:
            return f"Bagian lemah: belum terlihat besar, tapi tetap teliti di {label}."
        if score >= 60:
            return f"Bagian lemah: beberapa bagian di {label} masih belum konsisten."
        return f"Bagian lemah: konsep inti di {label} masih lemah."

    def next_step_for_topic(self, topic: TopicProgress) -> str:
        if topic.accuracy < 0.6:
            return f"ulang konsep inti topik {topic.topic} lalu coba 2-3 soal mudah"
        if topic.accuracy < 0.8:
            return f"latihan 3 soal lagi di topik {topic.topic}"
        return f"coba soal tingkat {self.difficulty_label(topic.current_difficulty)} untuk tantangan berikutnya"

    def next_step_for_score(self, score: Number, chapter_name: Optional[str]) -> str:
        label = self._chapter_label(chapter_name)
        if score >= 85:
            return f"lanjut ke materi berikutnya atau coba soal lebih sulit di {label}"
        if score >= 60:
            return f"ulang bagian yang lemah di {label} lalu latihan 3-5 soal"
        return f"ulang konsep inti di {label} lalu latihan dasar sebelum lanjut"

    @staticmethod
    def difficulty_label(difficulty: Difficulty) -> str:
        return DIFFICULTY_LABELS.get(difficulty, "custom")

    @staticmethod
    def next_step_sentence(next_step: str) -> str:
        trimmed = (next_step or "").strip()
        if not trimmed:
            return ""
        return f" Langkah berikutnya: {trimmed}."
