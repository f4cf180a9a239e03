"""
Centralized logging configuration for the quiz session client.

Records carry the active session as ``student/material`` so interleaved
sessions on one event loop can be told apart. The tag lives in a context
variable; tasks spawned after ``bind_session`` inherit it.
"""

import logging
import sys
from contextvars import ContextVar

from quiz_session.config import settings

NO_SESSION = "-"

_session_tag: ContextVar[str] = ContextVar("quiz_session_tag", default=NO_SESSION)


def bind_session(student_id: str, material_id: str) -> None:
    """Tag log records in the current context with the given session."""
    _session_tag.set(f"{student_id}/{material_id}")


def current_session() -> str:
    return _session_tag.get()


class SessionContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session = current_session()
        return True


def setup_logger(name: str) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(SessionContextFilter())

    # timestamp | level | module | student/material | message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(session)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger


logger = setup_logger("quiz_session")
