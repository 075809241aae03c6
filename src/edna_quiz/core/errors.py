"""Error taxonomy shared by the scoring service, persistence and HTTP surfaces."""

from __future__ import annotations


class QuizError(Exception):
    """Base class for every error raised by the quiz backend."""


class ValidationError(QuizError):
    """Required client input is missing or malformed. Never retryable."""


class NotFoundError(QuizError):
    """No quiz result for an email or id, or an unknown download token."""


class ExpiredError(QuizError):
    """The download token is past its expiry."""


class PersistenceError(QuizError):
    """The database rejected a read or write."""


class RenderError(QuizError):
    """PDF generation failed."""


class StorageError(QuizError):
    """Object storage upload or presigning failed."""


class NotificationError(QuizError):
    """The marketing webhook could not be notified. Best effort only."""
