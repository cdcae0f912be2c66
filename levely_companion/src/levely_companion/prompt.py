"""
Prompt Builder

System instruction and progress context block sent with every quick-ask.
"""

import numbers
from typing import Optional

from levely_companion.gamification import round_half_up
from levely_companion.models import LearningEventType, LevelyProgress

LAST_FEEDBACK_MAX_CHARS = 160

TREND_LABELS = {
    LearningEventType.QUIZ: "quiz",
    LearningEventType.ASSESSMENT: "assessment",
    LearningEventType.ASSIGNMENT: "assignment",
}


def system_prompt(app_name: str = "LeveLearn", assistant_name: str = "Levely", language: str = "Indonesia") -> str:
    return f"""Kamu adalah {assistant_name}, personal learning companion di aplikasi {app_name}.
Bahasa utama: {language}. Gunakan gaya ramah, jelas, dan tidak terlalu singkat.

Tujuan:
1) Menjawab pertanyaan pengguna secara umum dengan jelas, termasuk yang terkait materi.
2) Memberi feedback reflektif berbasis progres (benar/salah, tren, langkah berikutnya).
3) Mendorong belajar aktif: tanya klarifikasi jika konteks kurang.

Aturan:
- Jangan mengaku manusia.
- Boleh menjawab pertanyaan umum. Jika relevan, hubungkan jawaban dengan course/bab/topik yang sedang aktif.
- Jawaban tidak terlalu singkat; untuk pertanyaan terbuka, beri 4-7 kalimat yang mencakup poin inti dan contoh singkat bila perlu.
- Jika tidak yakin, jelaskan keterbatasan dan ajukan pertanyaan klarifikasi.
- Jangan mengarang referensi/rumus yang tidak diminta.
- Feedback performa hanya setelah submission (quiz/assessment/assignment); jangan memberi evaluasi spontan di Quick-Ask."""


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def context_prompt(
    progress: LevelyProgress,
    course_id: Optional[int] = None,
    level: Optional[int] = None,
    chapter_name: Optional[str] = None,
    material_snippet: Optional[str] = None,
) -> str:
    """
    Build the "KONTEKS APP / PROGRES RINGKAS" block.

    Args:
        progress: Learner progression snapshot
        course_id: Active course id, if any
        level: Active level, if any
        chapter_name: Active chapter title, if any
        material_snippet: Cleaned reference material to append

    Returns:
        Multi-line context string
    """
    parts = []
    if _is_int(course_id):
        parts.append(f"courseId={course_id}")
    if _is_int(level):
        parts.append(f"level={level}")
    if chapter_name and chapter_name.strip():
        parts.append(f'chapter="{chapter_name.strip()}"')

    top_topics = sorted(progress.topics.values(), key=lambda topic: topic.attempted, reverse=True)
    topic_summary = ", ".join(
        f"{topic.topic}:{topic.correct}/{topic.attempted}({round_half_up(topic.accuracy * 100)}%)"
        for topic in top_topics[:3]
    )
    topic_attempted = ", ".join(progress.topics_attempted[:3])
    last_feedback = trim_text(progress.last_feedback or "", LAST_FEEDBACK_MAX_CHARS)
    last_feedback_at = progress.last_feedback_at.isoformat() if progress.last_feedback_at else "-"

    material_context = ""
    if material_snippet and material_snippet.strip():
        material_context = f"\n\nMATERI TERKAIT (cuplikan):\n{material_snippet.strip()}"

    lines = [
        "KONTEKS APP:",
        f"- {' '.join(parts) if parts else 'no_context'}",
        "",
        "PROGRES RINGKAS:",
        f"- poin={progress.points}",
        f"- totalQuiz={progress.correct_total}/{progress.attempted_total} ({round_half_up(progress.accuracy * 100)}%)",
        f"- streakHarian={progress.daily_streak}",
        f"- topikTeratas={topic_summary or '-'}",
        f"- topikDicoba={topic_attempted or '-'}",
        f"- skorTerbaru={recent_score_summary(progress) or '-'}",
        f"- trenTerakhir={trend_summary(progress) or '-'}",
        f"- feedbackTerakhir={last_feedback or '-'}",
        f"- feedbackTerakhirAt={last_feedback_at}{material_context}",
    ]
    return "\n".join(lines) + "\n"


def trend_summary(progress: LevelyProgress) -> str:
    """Last three trend samples as ``label:value%``."""
    return ", ".join(
        f"{TREND_LABELS.get(point.type, 'event')}:{round_half_up(point.value)}%"
        for point in progress.trend[-3:]
    )


def recent_score_summary(progress: LevelyProgress) -> str:
    """Last three events as score, accuracy % or ``-`` when neither is known."""
    summaries = []
    for event in progress.history[-3:]:
        label = TREND_LABELS.get(event.type, "event")
        if event.score is not None and event.score > 0:
            summaries.append(f"{label}:{event.score}")
        elif event.attempted and event.correct is not None:
            summaries.append(f"{label}:{round_half_up(event.correct / event.attempted * 100)}%")
        else:
            summaries.append(f"{label}:-")
    return ", ".join(summaries)


def trim_text(text: str, max_length: int) -> str:
    trimmed = text.strip()
    if not trimmed or len(trimmed) <= max_length:
        return trimmed
    return f"{trimmed[:max_length].strip()}..."
