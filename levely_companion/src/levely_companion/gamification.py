"""
Scoring & Difficulty Engine

Pure functions turning a quiz answer into a new progression snapshot:
daily streak, topic counters, point delta, adaptive difficulty and badges.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from levely_companion.badges import evaluate_badges
from levely_companion.difficulty_adapter import DifficultyAdapter
from levely_companion.models import Badge, Difficulty, LevelyProgress, QuizQuestion, TopicProgress

logger = logging.getLogger(__name__)

BASE_POINTS = {
    Difficulty.EASY: 10,
    Difficulty.MEDIUM: 20,
    Difficulty.HARD: 30,
}

STREAK_BONUS_STEP = 0.12
STREAK_BONUS_WINDOW = 6
ATTEMPT_CREDIT_RATIO = 0.15
WRONG_STREAK_PENALTY_STEP = 0.15
WRONG_STREAK_PENALTY_WINDOW = 4
WRONG_STREAK_PENALTY_FLOOR = 0.4
COMEBACK_WRONG_STREAK = 3

_default_adapter = DifficultyAdapter()


@dataclass
class QuizResult:
    """Outcome of applying one quiz answer."""
    progress: LevelyProgress
    points_delta: int
    newly_unlocked: List[Badge] = field(default_factory=list)
    comeback: bool = False


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` would go to even)."""
    return int(math.floor(value + 0.5))


def points_for_answer(
    difficulty: Difficulty,
    is_correct: bool,
    correct_streak: int,
    wrong_streak: int,
) -> int:
    """
    Points earned for one answer.

    Correct answers earn the difficulty base times a streak bonus of 12% per
    streak step, capped at 6 steps. Wrong answers earn 15% of the base as
    effort credit, shrunk by 15% per wrong-streak step down to a 40% floor.

    Args:
        difficulty: Difficulty of the answered question
        is_correct: Whether the answer was correct
        correct_streak: Correct streak including this answer
        wrong_streak: Wrong streak including this answer

    Returns:
        Non-negative integer point delta
    """
    base = BASE_POINTS.get(difficulty, BASE_POINTS[Difficulty.EASY])

    if not is_correct:
        attempt = round_half_up(base * ATTEMPT_CREDIT_RATIO)
        steps = clamp(wrong_streak, 0, WRONG_STREAK_PENALTY_WINDOW)
        penalty = clamp(1 - steps * WRONG_STREAK_PENALTY_STEP, WRONG_STREAK_PENALTY_FLOOR, 1)
        return round_half_up(attempt * penalty)

    streak_bonus = 1 + clamp(correct_streak, 0, STREAK_BONUS_WINDOW) * STREAK_BONUS_STEP
    return round_half_up(base * streak_bonus)


def adjust_difficulty(topic: TopicProgress, adapter: Optional[DifficultyAdapter] = None) -> Difficulty:
    """Next difficulty for ``topic`` given its updated counters."""
    return (adapter or _default_adapter).check_adjustment(topic).new_difficulty


def update_daily_streak(progress: LevelyProgress, now: datetime) -> LevelyProgress:
    """
    Refresh the daily streak for activity at ``now``.

    Same calendar day keeps the streak, the next day extends it, any other
    gap (or no previous activity) restarts it at 1. The calendar day is
    ``now.date()`` in ``now``'s own time zone; callers convert to the
    learner-facing zone first (see ``LevelyCompanion.streak_timezone``).
    """
    today = now.date()
    last = progress.last_active_date

    if last is None:
        return progress.clone_with(daily_streak=1, last_active_date=today)

    diff_days = (today - last).days
    if diff_days == 0:
        return progress.clone_with(last_active_date=today)
    if diff_days == 1:
        return progress.clone_with(daily_streak=progress.daily_streak + 1, last_active_date=today)
    return progress.clone_with(daily_streak=1, last_active_date=today)


def apply_quiz_result(
    progress: LevelyProgress,
    question: QuizQuestion,
    is_correct: bool,
    now: datetime,
    adapter: Optional[DifficultyAdapter] = None,
) -> QuizResult:
    """
    Fold one quiz answer into the progression.

    Order matters: daily streak first, then the comeback check on the topic's
    counters before the answer, then counters, points, difficulty and badges.
    """
    adapter = adapter or _default_adapter
    updated = update_daily_streak(progress, now)
    before_topic = updated.topic_or_default(question.topic)
    comeback_trigger = is_correct and before_topic.wrong_streak >= COMEBACK_WRONG_STREAK

    correct_streak = before_topic.correct_streak + 1 if is_correct else 0
    wrong_streak = 0 if is_correct else before_topic.wrong_streak + 1
    points_delta = points_for_answer(question.difficulty, is_correct, correct_streak, wrong_streak)

    after_topic = before_topic.clone_with(
        attempted=before_topic.attempted + 1,
        correct=before_topic.correct + (1 if is_correct else 0),
        correct_streak=correct_streak,
        wrong_streak=wrong_streak,
    )
    adjustment = adapter.check_adjustment(after_topic)
    if adjustment.should_adjust:
        logger.info(
            f"📊 [Gamification] Difficulty for {question.topic}: "
            f"{after_topic.current_difficulty.value} → {adjustment.new_difficulty.value} ({adjustment.reason})"
        )
    after_topic = adapter.apply_adjustment(after_topic, adjustment)

    topics = dict(updated.topics)
    topics[question.topic] = after_topic
    next_progress = updated.clone_with(
        points=updated.points + points_delta,
        attempted_total=updated.attempted_total + 1,
        correct_total=updated.correct_total + (1 if is_correct else 0),
        topics=topics,
    )

    next_progress, newly_unlocked = evaluate_badges(next_progress, comeback_trigger=comeback_trigger)
    return QuizResult(
        progress=next_progress,
        points_delta=points_delta,
        newly_unlocked=newly_unlocked,
        comeback=comeback_trigger,
    )


def build_recommendation(progress: LevelyProgress) -> str:
    """Short study recommendation based on the weakest / strongest topic."""
    if progress.attempted_total < 3:
        return "Mulai dengan kuis mudah dulu. Setelah itu, Levely bisa kasih rekomendasi berdasarkan progresmu."

    weakest: Optional[TopicProgress] = None
    strongest: Optional[TopicProgress] = None
    for topic in progress.topics.values():
        if topic.attempted < 3:
            continue
        if weakest is None or topic.accuracy < weakest.accuracy:
            weakest = topic
        if strongest is None or topic.accuracy > strongest.accuracy:
            strongest = topic

    if weakest is not None and weakest.accuracy <= 0.55:
        return (
            f"Kamu masih sering salah di topik {weakest.topic}. Coba ulangi materi inti topik itu, "
            f"lalu latihan kuis {weakest.current_difficulty.value} lagi."
        )
    if strongest is not None and strongest.accuracy >= 0.85:
        return (
            f"Kamu sudah kuat di topik {strongest.topic}. Kamu bisa lanjut ke level berikutnya "
            "atau coba kuis yang lebih sulit."
        )
    return "Progresmu stabil. Lanjutkan latihan, dan fokuskan 1 topik sampai akurasimu naik."
