"""
Event-loop scheduling helpers: cancellable delayed callbacks and
best-effort background work.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Set

from quiz_session.logger import setup_logger

logger = setup_logger(__name__)


class BestEffortTasks:
    """
    Runs fire-and-forget coroutines (draft cleanup, unload beacon).

    Failures are logged and dropped; nothing here is on the critical path.
    Strong references are kept until each task finishes.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Best-effort task '{name}' failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all outstanding tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class CancellableTimer:
    """
    A single delayed callback slot.

    ``schedule`` replaces whatever is pending; ``cancel`` clears it. When the
    callback returns a coroutine it is run as a task on the same loop.
    Cancelling never affects work that already started.
    """

    def __init__(self, tasks: Optional[BestEffortTasks] = None) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks = tasks or BestEffortTasks()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, fn: Callable[[], Any], delay: float) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, fn)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, fn: Callable[[], Any]) -> None:
        self._handle = None
        result = fn()
        if inspect.isawaitable(result):
            self._tasks.spawn(result, name=getattr(fn, "__name__", "timer"))
