"""
Local progress cache.

Answers and the session start time are mirrored into a small key-value
store so a reload can resume without a network round-trip. The store is
injected: `MemoryStore` for tests and embedded use, `JsonFileStore` for a
cache that survives process restarts.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.utils.helpers import format_json

logger = setup_logger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    Store backed by a single JSON file.

    Every write rewrites the file synchronously (atomic replace), so a
    crash right after an edit still leaves the edit on disk.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path or settings.storage_path)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Ignoring unreadable cache file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"⚠️ Ignoring malformed cache file {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(format_json(self._data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()


class LocalCache:
    """
    Per-material view over a KeyValueStore.

    Keys: ``quiz_{materialId}_answers`` (JSON-encoded answer set) and
    ``quiz_{materialId}_start_time`` (epoch milliseconds as text).
    Unparseable entries read as absent.
    """

    def __init__(self, store: KeyValueStore, material_id: str) -> None:
        self.store = store
        self.material_id = material_id

    @property
    def answers_key(self) -> str:
        return f"quiz_{self.material_id}_answers"

    @property
    def start_time_key(self) -> str:
        return f"quiz_{self.material_id}_start_time"

    def load_answers(self) -> Optional[Dict[str, str]]:
        raw = self.store.get(self.answers_key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"⚠️ Corrupt cached answers for material {self.material_id}")
            return None
        if not isinstance(data, dict):
            return None
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def save_answers(self, answers: Dict[str, str]) -> None:
        self.store.set(self.answers_key, format_json(answers))

    def load_start_time(self) -> Optional[int]:
        raw = self.store.get(self.start_time_key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"⚠️ Corrupt cached start time for material {self.material_id}")
            return None

    def save_start_time(self, epoch_millis: int) -> None:
        self.store.set(self.start_time_key, str(int(epoch_millis)))

    def clear(self) -> None:
        self.store.remove(self.answers_key)
        self.store.remove(self.start_time_key)
