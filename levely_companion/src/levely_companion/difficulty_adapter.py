"""
Automatic Difficulty Adaptation

Adjusts a topic's quiz difficulty from its streaks and accuracy.
Runs after every quiz answer on the already-updated topic counters.
"""

from typing import Optional
from dataclasses import dataclass

from levely_companion.models import Difficulty, TopicProgress


@dataclass
class DifficultyAdjustment:
    """Result of difficulty adjustment check."""
    should_adjust: bool
    direction: Optional[str]  # "increase", "decrease", or None
    reason: str
    new_difficulty: Difficulty


class DifficultyAdapter:
    """
    Promotes or demotes one level at a time.

    Algorithm:
    - Promote when correct streak >= 3, or >= 6 attempts with accuracy >= 0.8
    - Demote when wrong streak >= 2, or >= 6 attempts with accuracy <= 0.45
    - Demotion wins when both conditions hold
    - Otherwise keep the current level
    """

    DIFFICULTY_LEVELS = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]

    # Thresholds
    PROMOTE_STREAK = 3
    DEMOTE_STREAK = 2
    MIN_ATTEMPTS_FOR_ACCURACY = 6
    HIGH_ACCURACY_THRESHOLD = 0.8
    LOW_ACCURACY_THRESHOLD = 0.45

    def check_adjustment(self, topic: TopicProgress) -> DifficultyAdjustment:
        """
        Check if the topic's difficulty should change.

        Args:
            topic: Topic counters after the latest answer was applied

        Returns:
            DifficultyAdjustment with recommendation
        """
        current = topic.current_difficulty
        enough_data = topic.attempted >= self.MIN_ATTEMPTS_FOR_ACCURACY

        demote = topic.wrong_streak >= self.DEMOTE_STREAK or (
            enough_data and topic.accuracy <= self.LOW_ACCURACY_THRESHOLD
        )
        if demote:
            new_difficulty = self._lower_difficulty(current)
            return DifficultyAdjustment(
                should_adjust=new_difficulty != current,
                direction="decrease",
                reason=(
                    f"Low performance (wrong_streak={topic.wrong_streak}, "
                    f"accuracy={topic.accuracy:.2f}, attempted={topic.attempted})"
                ),
                new_difficulty=new_difficulty,
            )

        promote = topic.correct_streak >= self.PROMOTE_STREAK or (
            enough_data and topic.accuracy >= self.HIGH_ACCURACY_THRESHOLD
        )
        if promote:
            new_difficulty = self._raise_difficulty(current)
            return DifficultyAdjustment(
                should_adjust=new_difficulty != current,
                direction="increase",
                reason=(
                    f"High performance (correct_streak={topic.correct_streak}, "
                    f"accuracy={topic.accuracy:.2f}, attempted={topic.attempted})"
                ),
                new_difficulty=new_difficulty,
            )

        return DifficultyAdjustment(
            should_adjust=False,
            direction=None,
            reason=f"Performance stable (accuracy={topic.accuracy:.2f}, attempted={topic.attempted})",
            new_difficulty=current,
        )

    def _raise_difficulty(self, current: Difficulty) -> Difficulty:
        """Raise difficulty level."""
        current_idx = self.DIFFICULTY_LEVELS.index(current)
        if current_idx < len(self.DIFFICULTY_LEVELS) - 1:
            return self.DIFFICULTY_LEVELS[current_idx + 1]
        return current  # Already at max

    def _lower_difficulty(self, current: Difficulty) -> Difficulty:
        """Lower difficulty level."""
        current_idx = self.DIFFICULTY_LEVELS.index(current)
        if current_idx > 0:
            return self.DIFFICULTY_LEVELS[current_idx - 1]
        return current  # Already at min

    def apply_adjustment(self, topic: TopicProgress, adjustment: DifficultyAdjustment) -> TopicProgress:
        """
        Return the topic with the adjusted difficulty applied.

        Args:
            topic: TopicProgress to update
            adjustment: DifficultyAdjustment result

        Returns:
            The same record when nothing changes, otherwise a clone
        """
        if not adjustment.should_adjust:
            return topic
        return topic.clone_with(current_difficulty=adjustment.new_difficulty)
