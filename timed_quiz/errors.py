"""
Exception taxonomy for quiz sessions and their collaborators.
"""


class QuizError(Exception):
    """Base exception for quiz errors."""
    pass


class DataNotFoundError(QuizError):
    """Raised when a quiz is missing or has no questions."""
    pass


class AuthRequiredError(QuizError):
    """Raised when a result is persisted without an authenticated user."""
    pass


class PersistenceError(QuizError):
    """Raised when the durable write of a score record fails."""
    pass


class QuizValidationError(QuizError):
    """Raised when quiz content does not have the expected structure."""
    pass
