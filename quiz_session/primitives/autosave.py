"""
Debounced draft persistence.

Every edit is written to the local cache immediately; the server draft is
updated once edits have been quiet for ``autosave_delay`` seconds.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, Optional

from quiz_session.client import QuizApiClient
from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.models import SaveDraftRequest
from quiz_session.scheduling import BestEffortTasks, CancellableTimer
from quiz_session.storage import LocalCache
from quiz_session.utils.exceptions import QuizSessionError
from quiz_session.utils.helpers import now_millis

logger = setup_logger(__name__)


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class DebouncedPersistence:
    """
    Keeps the server draft eventually consistent with local edits.

    Saves always carry the full answer set, so out-of-order arrival can only
    replace a newer draft with a slightly older one, never corrupt it. A
    failed save is not retried until the next edit.
    """

    def __init__(
        self,
        api: QuizApiClient,
        cache: LocalCache,
        student_id: str,
        material_id: str,
        quiz_id: str,
        tasks: Optional[BestEffortTasks] = None,
        clock: Callable[[], float] = time.time,
        delay: Optional[float] = None,
        saved_seconds: Optional[float] = None,
        error_seconds: Optional[float] = None,
        on_status: Optional[Callable[[SaveStatus], None]] = None,
    ) -> None:
        self.api = api
        self.cache = cache
        self.student_id = student_id
        self.material_id = material_id
        self.quiz_id = quiz_id
        self.clock = clock
        self.delay = settings.autosave_delay if delay is None else delay
        self.saved_seconds = (
            settings.saved_indicator_seconds if saved_seconds is None else saved_seconds
        )
        self.error_seconds = (
            settings.error_indicator_seconds if error_seconds is None else error_seconds
        )
        self.on_status = on_status

        self.tasks = tasks or BestEffortTasks()
        self._save_timer = CancellableTimer(self.tasks)
        self._status_timer = CancellableTimer(self.tasks)

        self.status = SaveStatus.IDLE
        self.answers: Dict[str, str] = {}
        self.sealed = False

    @property
    def pending(self) -> bool:
        return self._save_timer.pending

    def record(self, answers: Dict[str, str]) -> None:
        """Cache the edit now and (re)start the quiet window for the server save."""
        if self.sealed:
            logger.debug("Ignoring edit for a finished session")
            return
        self.answers = dict(answers)
        self.cache.save_answers(self.answers)
        self._save_timer.schedule(self.save_now, self.delay)

    def schedule_sync(self, answers: Dict[str, str]) -> None:
        """Queue a server save for answers that are already cached."""
        if self.sealed:
            return
        self.answers = dict(answers)
        self._save_timer.schedule(self.save_now, self.delay)

    def build_request(self) -> SaveDraftRequest:
        start_time = self.cache.load_start_time()
        if start_time is None:
            start_time = now_millis(self.clock)
        return SaveDraftRequest(
            student_id=self.student_id,
            material_id=self.material_id,
            quiz_id=self.quiz_id,
            answers=dict(self.answers),
            start_time=start_time,
        )

    async def save_now(self) -> bool:
        """Push the current answers to the server draft."""
        if self.sealed:
            return False
        request = self.build_request()
        self._set_status(SaveStatus.SAVING)
        try:
            await self.api.save_progress(request)
        except QuizSessionError as e:
            logger.warning(f"⚠️ Draft save failed: {e}")
            self._set_status(SaveStatus.ERROR, revert_after=self.error_seconds)
            return False

        logger.debug(f"💾 Draft saved ({len(request.answers)} answers)")
        self._set_status(SaveStatus.SAVED, revert_after=self.saved_seconds)
        return True

    def cancel(self) -> None:
        """Drop the scheduled save. A request already sent is not affected."""
        self._save_timer.cancel()

    def seal(self) -> None:
        """Stop all draft writes for good (the session was submitted)."""
        self.cancel()
        self.sealed = True

    def flush_beacon(self, answers: Optional[Dict[str, str]] = None) -> bool:
        """
        Persist the latest answers on teardown: cache write plus a
        fire-and-forget server post whose response is never read.
        """
        if self.sealed:
            return False
        self.cancel()
        if answers is not None:
            self.answers = dict(answers)
        self.cache.save_answers(self.answers)
        self.tasks.spawn(self.api.send_beacon(self.build_request()), name="beacon")
        return True

    def close(self) -> None:
        self._save_timer.cancel()
        self._status_timer.cancel()

    def _set_status(self, status: SaveStatus, revert_after: Optional[float] = None) -> None:
        self._status_timer.cancel()
        self.status = status
        if self.on_status is not None:
            self.on_status(status)
        if revert_after is not None:
            self._status_timer.schedule(
                lambda: self._set_status(SaveStatus.IDLE), revert_after
            )
