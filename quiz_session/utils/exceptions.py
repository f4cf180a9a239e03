"""Custom exceptions for the quiz session client."""

from typing import Optional


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""

    pass


class ApiError(QuizSessionError):
    """Backend request failed (non-2xx response or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AlreadySubmittedError(ApiError):
    """The backend reports the quiz was already submitted (HTTP 409)."""

    def __init__(self, message: str = "You have already submitted this quiz") -> None:
        super().__init__(message, status_code=409)


class MaterialNotFoundError(QuizSessionError):
    """Material is not part of the student's class."""

    pass


class QuizLoadError(QuizSessionError):
    """Quiz questions could not be loaded."""

    pass


class SessionClosedError(QuizSessionError):
    """Answer edit attempted after the session stopped accepting answers."""

    pass
