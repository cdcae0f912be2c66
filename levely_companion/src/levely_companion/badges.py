"""
Badge Rules

Unlock conditions evaluated against a progression snapshot. Badges are
one-way: an id already present in the snapshot is never reported again.
"""

import logging
from typing import Dict, List, Optional, Tuple

from levely_companion.models import Badge, BadgeId, LevelyProgress

logger = logging.getLogger(__name__)

BADGE_CATALOG: Tuple[Badge, ...] = (
    Badge(
        id=BadgeId.CONSISTENCY_3_DAYS,
        title="Consistency",
        description="Belajar 3 hari berturut-turut.",
    ),
    Badge(
        id=BadgeId.FAST_LEARNER,
        title="Fast Learner",
        description="Banyak jawaban benar di awal latihan.",
    ),
    Badge(
        id=BadgeId.COMEBACK,
        title="Comeback",
        description="Berhasil bangkit setelah beberapa kali salah.",
    ),
    Badge(
        id=BadgeId.QUIZ_MASTER,
        title="Quiz Master",
        description="Total 20 jawaban benar.",
    ),
    Badge(
        id=BadgeId.TOPIC_EXPLORER,
        title="Topic Explorer",
        description="Mencoba kuis di 3 topik berbeda.",
    ),
)

_BADGES_BY_ID: Dict[BadgeId, Badge] = {badge.id: badge for badge in BADGE_CATALOG}

CONSISTENCY_DAYS = 3
QUIZ_MASTER_CORRECT = 20
TOPIC_EXPLORER_TOPICS = 3
FAST_LEARNER_MAX_ATTEMPTS = 7
FAST_LEARNER_MIN_CORRECT = 5


def badge_for(badge_id: BadgeId) -> Optional[Badge]:
    return _BADGES_BY_ID.get(badge_id)


def qualifying_badges(progress: LevelyProgress, comeback_trigger: bool = False) -> List[BadgeId]:
    """Badge ids whose condition holds for ``progress``, in catalog check order."""
    earned = []
    if progress.daily_streak >= CONSISTENCY_DAYS:
        earned.append(BadgeId.CONSISTENCY_3_DAYS)
    if progress.correct_total >= QUIZ_MASTER_CORRECT:
        earned.append(BadgeId.QUIZ_MASTER)
    if len(progress.topics) >= TOPIC_EXPLORER_TOPICS:
        earned.append(BadgeId.TOPIC_EXPLORER)
    if progress.attempted_total <= FAST_LEARNER_MAX_ATTEMPTS and progress.correct_total >= FAST_LEARNER_MIN_CORRECT:
        earned.append(BadgeId.FAST_LEARNER)
    if comeback_trigger:
        earned.append(BadgeId.COMEBACK)
    return earned


def evaluate_badges(
    progress: LevelyProgress,
    comeback_trigger: bool = False,
) -> Tuple[LevelyProgress, List[Badge]]:
    """
    Award every qualifying badge the learner does not own yet.

    Args:
        progress: Snapshot after the latest update
        comeback_trigger: True when a correct answer ended a wrong streak of 3+

    Returns:
        (updated progress, newly unlocked badges in award order)
    """
    unlocked = set(progress.badges)
    newly_unlocked: List[Badge] = []

    for badge_id in qualifying_badges(progress, comeback_trigger):
        if badge_id in unlocked:
            continue
        unlocked.add(badge_id)
        badge = badge_for(badge_id)
        if badge:
            newly_unlocked.append(badge)

    if not newly_unlocked:
        return progress, newly_unlocked

    logger.info(f"🏅 [Badges] Unlocked: {', '.join(badge.id.value for badge in newly_unlocked)}")
    return progress.clone_with(badges=unlocked), newly_unlocked
