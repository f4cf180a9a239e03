"""
Common utility functions.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional


def now_millis(clock: Callable[[], float] = time.time) -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(clock() * 1000)


def to_epoch_millis(value: datetime) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Naive datetimes are taken to be UTC, which is what the backend stores.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def count_answered(answers: Optional[Mapping[str, Any]]) -> int:
    """Number of questions with a non-blank answer."""
    if not answers:
        return 0
    return sum(1 for value in answers.values() if str(value).strip())


def format_json(data: Dict[str, Any], indent: Optional[int] = None) -> str:
    """
    Serialize a dictionary as JSON text.

    Args:
        data: Dictionary to format
        indent: Indentation spaces (compact when None)

    Returns:
        JSON string
    """
    return json.dumps(data, indent=indent, ensure_ascii=False)
