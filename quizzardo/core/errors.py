"""Exception hierarchy shared by the engine, the manager and the API."""

from __future__ import annotations


class QuizError(Exception):
    """Base class for all quiz platform errors."""


class QuizNotFoundError(QuizError):
    """Raised when a quiz id does not resolve to a stored quiz."""


class QuizConfigurationError(QuizError):
    """Raised when a stored quiz cannot be played as configured."""


class QuizValidationError(QuizError, ValueError):
    """Raised when admin input for a quiz or question is invalid."""


class QuizImportError(QuizValidationError):
    """Raised when a quiz definition cannot be parsed."""


class QuizNotStartedError(QuizError):
    """Raised when a session is started before the quiz start time."""


class PaymentRequiredError(QuizError):
    """Raised when a paid quiz is entered without a confirmed payment."""


class AlreadyAttemptedError(QuizError):
    """Raised when a user tries to retake a quiz and retakes are disabled."""


class SessionStateError(QuizError):
    """Raised when an operation does not fit the current session status."""


class RepositoryError(QuizError):
    """Raised when the backing store fails to read or write."""


class DuplicateResultError(RepositoryError):
    """Raised when a result already exists for the same user and quiz."""
