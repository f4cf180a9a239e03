"""
Deadline timer with force-submit logic.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.storage import LocalCache
from quiz_session.utils.helpers import now_millis

logger = setup_logger(__name__)


class TimerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    EXPIRED = "expired"
    TERMINATED = "terminated"


def format_time(seconds: int) -> str:
    """Render remaining seconds as ``m:ss``."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins}:{secs:02d}"


class DeadlineTimer:
    """
    Enforces a wall-clock deadline for a timed material.

    Remaining time is derived from the start time persisted in the local
    cache, so reloads never reset the countdown. At zero the ``on_expire``
    callback (the submission path) is invoked; if the submission does not
    resolve the timer stays EXPIRED and keeps retrying until it does.
    """

    def __init__(
        self,
        time_limit_minutes: int,
        cache: LocalCache,
        on_expire: Callable[[], Awaitable[bool]],
        clock: Callable[[], float] = time.time,
        tick_interval: Optional[float] = None,
        retry_interval: Optional[float] = None,
    ) -> None:
        """
        Args:
            time_limit_minutes: Material time limit; must be positive.
            cache: Local cache holding the session start time.
            on_expire: Coroutine function invoked at the deadline. It returns
                True once the submission has resolved; otherwise the timer
                stays expired and calls it again after ``retry_interval``.
            clock: Wall-clock source in epoch seconds.
            tick_interval: Seconds between countdown ticks (default from config).
            retry_interval: Seconds between deadline submission retries.
        """
        self.time_limit_minutes = time_limit_minutes
        self.cache = cache
        self.on_expire = on_expire
        self.clock = clock
        self.tick_interval = (
            settings.tick_interval if tick_interval is None else tick_interval
        )
        self.retry_interval = (
            settings.expiry_retry_seconds if retry_interval is None else retry_interval
        )

        self.state = TimerState.UNINITIALIZED
        self.remaining_seconds: Optional[int] = None
        self.start_time: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._fired = False

    @property
    def limit_seconds(self) -> int:
        return self.time_limit_minutes * 60

    async def start(self) -> TimerState:
        """
        Initialize from the cached start time and begin counting down.

        The first start of a session persists ``now`` as the start time; later
        starts reuse it. A session whose deadline has already passed expires
        immediately without a countdown.
        """
        if self.state is not TimerState.UNINITIALIZED:
            return self.state
        if self.time_limit_minutes <= 0:
            raise ValueError("DeadlineTimer requires a positive time limit")

        start_time = self.cache.load_start_time()
        if start_time is None:
            start_time = now_millis(self.clock)
            self.cache.save_start_time(start_time)
            logger.info(f"⏱️  Session started (limit: {self.time_limit_minutes} min)")
        self.start_time = start_time

        self.remaining_seconds = max(0, self.limit_seconds - self.elapsed())

        if self.remaining_seconds <= 0:
            logger.warning("⌛ Deadline already passed on load, submitting now")
            await self._expire()
            if self.state is TimerState.EXPIRED:
                self._task = asyncio.create_task(self._retry_expired())
            return self.state

        self.state = TimerState.RUNNING
        logger.info(f"⏱️  Timer running: {format_time(self.remaining_seconds)} left")
        self._task = asyncio.create_task(self._run())
        return self.state

    def elapsed(self) -> int:
        """Whole seconds since the session start time."""
        if self.start_time is None:
            return 0
        return max(0, (now_millis(self.clock) - self.start_time) // 1000)

    def tick(self) -> int:
        """Advance the countdown by one second."""
        if self.remaining_seconds is not None and self.remaining_seconds > 0:
            self.remaining_seconds -= 1
        return self.remaining_seconds or 0

    @property
    def display(self) -> Optional[str]:
        if self.remaining_seconds is None:
            return None
        return format_time(self.remaining_seconds)

    def is_low_time(self, threshold: Optional[int] = None) -> bool:
        if threshold is None:
            threshold = settings.low_time_warning_seconds
        return self.remaining_seconds is not None and self.remaining_seconds < threshold

    async def _run(self) -> None:
        while self.state is TimerState.RUNNING and (self.remaining_seconds or 0) > 0:
            await asyncio.sleep(self.tick_interval)
            if self.state is not TimerState.RUNNING:
                return
            self.tick()
        if self.state is TimerState.RUNNING:
            logger.warning("⌛ Time is up, forcing submission")
            await self._expire()
        await self._retry_expired()

    async def _retry_expired(self) -> None:
        while self.state is TimerState.EXPIRED:
            await asyncio.sleep(self.retry_interval)
            if self.state is not TimerState.EXPIRED:
                return
            logger.warning("⌛ Deadline submission unresolved, retrying")
            await self._expire()

    async def _expire(self) -> bool:
        if self._fired:
            return False
        self._fired = True
        self.state = TimerState.EXPIRED
        self.remaining_seconds = 0
        resolved = False
        try:
            resolved = bool(await self.on_expire())
        finally:
            if resolved:
                self.terminate()
            else:
                # stays EXPIRED; the next retry may fire again
                self._fired = False
        return resolved

    def terminate(self) -> None:
        """Stop ticking. Called once the submission path has resolved."""
        if self.state is TimerState.TERMINATED:
            return
        self.state = TimerState.TERMINATED
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
