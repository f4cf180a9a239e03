"""Timed quiz-taking session client."""

from quiz_session.client import QuizApiClient
from quiz_session.session import QuizSessionController, SessionState
from quiz_session.storage import JsonFileStore, LocalCache, MemoryStore

__all__ = [
    "JsonFileStore",
    "LocalCache",
    "MemoryStore",
    "QuizApiClient",
    "QuizSessionController",
    "SessionState",
]

__version__ = "0.1.0"
