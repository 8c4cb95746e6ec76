"""Cooperative timer scheduling for debounce, stability and stall timers.

All lifecycle timers go through a :class:`Scheduler` so the manager never
touches a global event loop directly. :class:`AsyncioScheduler` is used by
real hosts; :class:`ManualScheduler` advances a virtual clock explicitly and
is what the tests and the replay script drive.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

__all__ = [
    "Scheduler",
    "TimerHandle",
    "ManualScheduler",
    "AsyncioScheduler",
]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None:  # pragma: no cover - protocol stub
        ...

    def cancelled(self) -> bool:  # pragma: no cover - protocol stub
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Timer and task facility used by the lifecycle manager."""

    def now(self) -> float:
        """Current time in seconds on the scheduler's clock."""
        ...

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` after *delay* seconds."""
        ...

    def spawn(self, awaitable: Awaitable[Any]) -> None:
        """Run a coroutine without awaiting it (e.g. auto-execution)."""
        ...

    async def drain(self) -> None:
        """Wait until every spawned coroutine has finished."""
        ...


# -----------------------------------------------------------------------------
# Manual (virtual clock) scheduler
# -----------------------------------------------------------------------------


@dataclass(order=True)
class _ManualTimer:
    when: float
    sequence: int
    callback: Callable[..., None] = field(compare=False)
    args: tuple[Any, ...] = field(compare=False, default=())
    _cancelled: bool = field(compare=False, default=False)

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Scheduler with a virtual clock that only moves when :meth:`advance` is called.

    Timers fire in time order (ties in scheduling order). Timers scheduled by
    a callback run in the same :meth:`advance` call when they fall due
    before the target time.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._timers: list[_ManualTimer] = []
        self._sequence = itertools.count()
        self._spawned: list[Awaitable[Any]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, float(delay)), next(self._sequence), callback, args)
        heapq.heappush(self._timers, timer)
        return timer

    def advance(self, seconds: float) -> int:
        """Move the clock forward by *seconds*, firing due timers. Returns the number fired."""

        if seconds < 0:
            raise ValueError("Cannot move the clock backwards")
        target = self._now + seconds
        fired = 0
        while self._timers and self._timers[0].when <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled():
                continue
            self._now = max(self._now, timer.when)
            timer.callback(*timer.args)
            fired += 1
        self._now = target
        return fired

    def run_pending(self) -> int:
        """Fire timers that are already due without moving the clock."""

        return self.advance(0.0)

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled())

    def spawn(self, awaitable: Awaitable[Any]) -> None:
        self._spawned.append(awaitable)

    async def drain(self) -> None:
        while self._spawned:
            awaitable = self._spawned.pop(0)
            await awaitable


# -----------------------------------------------------------------------------
# asyncio-backed scheduler
# -----------------------------------------------------------------------------


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Future[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, float(delay)), callback, *args)

    def spawn(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable, loop=self.loop)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Spawned task failed: %s", error, exc_info=error)
