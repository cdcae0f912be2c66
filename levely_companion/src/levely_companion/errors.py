"""
Levely Error Types

Exceptions raised by the progression core. "Learner not found" is not an
error here: the progress store answers it with an empty progression.
"""


class LevelyError(Exception):
    """Base class for all Levely companion errors."""


class ObservationValidationError(LevelyError, ValueError):
    """Submission data is missing or out of range; nothing was mutated."""


class QuestionNotFoundError(LevelyError, LookupError):
    """No quiz question matches the requested id or topic."""


class QuizBankValidationError(LevelyError, ValueError):
    """A quiz catalog entry failed validation while loading."""


class ProgressStoreError(LevelyError):
    """The progress backend failed to read or write a progression record."""

    def __init__(self, message: str, learner_id: str = None):
        super().__init__(message)
        self.learner_id = learner_id


class ChatHistoryError(LevelyError):
    """The chat session store could not create, rename or delete a session."""
