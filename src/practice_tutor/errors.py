"""Exceptions raised by the practice engine."""


class PracticeError(Exception):
    """Base class for practice engine errors."""


class NoQuestionsAvailable(PracticeError):
    """The chosen selection criteria produced no questions."""

    def __init__(self, message: str = "No questions available for this selection"):
        super().__init__(message)


class InvalidSelection(PracticeError):
    """Selection criteria are incomplete for the chosen mode."""


class InvalidTransition(PracticeError):
    """A session transition was requested from a state that does not allow it."""


class FeedbackError(PracticeError):
    """A reasoning feedback request failed or returned an unusable response."""
