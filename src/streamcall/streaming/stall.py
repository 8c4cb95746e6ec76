"""Detects streams that stopped growing before their markup was closed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .scheduler import Scheduler, TimerHandle

__all__ = ["StallDetector", "StallState"]

LOGGER = logging.getLogger(__name__)

_EPSILON = 1e-9

StallCallback = Callable[[str], None]


@dataclass(slots=True)
class StallState:
    """Per-block stall bookkeeping.

    Attributes:
        block_id: Block being watched.
        consecutive_stale_checks: Ticks in a row that saw no growth.
        marked_stalled: The absolute no-growth timeout has elapsed.
        abruptly_ended: The stream is treated as finished despite open tags.
        last_growth_at: Scheduler time of the last growth event.
        last_length: Buffer length at the last growth event.
        unbalanced: Whether the latest parse still had open tags.
    """

    block_id: str
    last_growth_at: float
    last_length: int
    consecutive_stale_checks: int = 0
    marked_stalled: bool = False
    abruptly_ended: bool = False
    unbalanced: bool = True
    checked_length: int = 0


class StallDetector:
    """Ticks per tracked block and reports stalls and abrupt stream ends.

    On every tick a block whose tags are unbalanced and whose length did not
    change since the previous tick accumulates a stale check. After
    ``stale_ticks`` of those it is reported through ``on_abrupt_end`` so the
    owner can force-complete it. Independently, ``stall_timeout`` seconds
    without growth report ``on_stalled``; growth afterwards reports
    ``on_recovered``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        on_abrupt_end: StallCallback,
        on_stalled: StallCallback | None = None,
        on_recovered: StallCallback | None = None,
        tick_interval: float = 1.0,
        stale_ticks: int = 3,
        stall_timeout: float = 3.0,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be > 0")
        self._scheduler = scheduler
        self._on_abrupt_end = on_abrupt_end
        self._on_stalled = on_stalled
        self._on_recovered = on_recovered
        self._tick_interval = tick_interval
        self._stale_ticks = max(1, stale_ticks)
        self._stall_timeout = stall_timeout
        self._states: dict[str, StallState] = {}
        self._timers: dict[str, TimerHandle] = {}

    def track(self, block_id: str, length: int, *, unbalanced: bool = True) -> StallState:
        """Start watching *block_id*; calling it again for a tracked block is a no-op."""

        state = self._states.get(block_id)
        if state is not None:
            return state
        state = StallState(
            block_id=block_id,
            last_growth_at=self._scheduler.now(),
            last_length=length,
            unbalanced=unbalanced,
            checked_length=length,
        )
        self._states[block_id] = state
        self._schedule(block_id)
        return state

    def record_growth(self, block_id: str, length: int, *, unbalanced: bool | None = None) -> None:
        state = self._states.get(block_id)
        if state is None:
            return
        if unbalanced is not None:
            state.unbalanced = unbalanced
        if length == state.last_length:
            return
        state.last_length = length
        state.last_growth_at = self._scheduler.now()
        state.consecutive_stale_checks = 0
        if state.marked_stalled:
            state.marked_stalled = False
            LOGGER.debug("Block %s resumed growing", block_id)
            if self._on_recovered is not None:
                self._on_recovered(block_id)

    def update_balance(self, block_id: str, *, unbalanced: bool) -> None:
        state = self._states.get(block_id)
        if state is not None:
            state.unbalanced = unbalanced

    def state(self, block_id: str) -> StallState | None:
        return self._states.get(block_id)

    def discard(self, block_id: str) -> None:
        """Stop watching *block_id*. Safe to call repeatedly."""

        self._states.pop(block_id, None)
        timer = self._timers.pop(block_id, None)
        if timer is not None:
            timer.cancel()

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._states

    def _schedule(self, block_id: str) -> None:
        self._timers[block_id] = self._scheduler.call_later(self._tick_interval, self._tick, block_id)

    def _tick(self, block_id: str) -> None:
        state = self._states.get(block_id)
        if state is None:
            return
        self._timers.pop(block_id, None)
        now = self._scheduler.now()
        if state.last_length == state.checked_length:
            state.consecutive_stale_checks += 1
        else:
            state.consecutive_stale_checks = 0
        state.checked_length = state.last_length

        if state.unbalanced:
            idle = now - state.last_growth_at
            if not state.marked_stalled and idle + _EPSILON >= self._stall_timeout:
                state.marked_stalled = True
                LOGGER.info("Block %s stalled after %.1fs without growth", block_id, idle)
                if self._on_stalled is not None:
                    self._on_stalled(block_id)
            if not state.abruptly_ended and state.consecutive_stale_checks >= self._stale_ticks:
                state.abruptly_ended = True
                LOGGER.info(
                    "Block %s ended abruptly after %d stale checks",
                    block_id,
                    state.consecutive_stale_checks,
                )
                self._on_abrupt_end(block_id)

        if self._states.get(block_id) is state and not state.abruptly_ended:
            self._schedule(block_id)
