"""Confirms that a block's completeness is stable rather than a transient parse."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

__all__ = ["StabilityTracker"]

LOGGER = logging.getLogger(__name__)

# Tolerance for clock arithmetic such as 0.25 - 0.05 < 0.2.
_EPSILON = 1e-9


@dataclass(slots=True)
class _StabilityState:
    positive_checks: int = 0
    last_counted_at: float | None = None


class StabilityTracker:
    """Counts consecutive positive completeness checks per block.

    A block is stable once ``required_checks`` positive checks have been
    counted, each at least ``min_interval`` after the previous counted one.
    Positive checks arriving sooner than ``min_interval`` are not counted. A
    gap longer than ``max_gap`` since the last counted check restarts the
    count, as does any negative check.
    """

    def __init__(
        self,
        *,
        required_checks: int = 2,
        min_interval: float = 0.2,
        max_gap: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if required_checks < 1:
            raise ValueError("required_checks must be >= 1")
        if max_gap < min_interval:
            raise ValueError("max_gap must not be shorter than min_interval")
        self._required = required_checks
        self._min_interval = min_interval
        self._max_gap = max_gap
        self._clock = clock
        self._states: dict[str, _StabilityState] = {}

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def record(self, block_id: str, complete: bool, *, now: float | None = None) -> bool:
        """Record one completeness check and return whether the block is now stable."""

        timestamp = self._clock() if now is None else now
        state = self._states.setdefault(block_id, _StabilityState())
        if not complete:
            state.positive_checks = 0
            state.last_counted_at = None
            return False
        if state.last_counted_at is None:
            state.positive_checks = 1
            state.last_counted_at = timestamp
        else:
            elapsed = timestamp - state.last_counted_at
            if elapsed > self._max_gap:
                LOGGER.debug("Stability count for %s restarted after %.3fs gap", block_id, elapsed)
                state.positive_checks = 1
                state.last_counted_at = timestamp
            elif elapsed + _EPSILON >= self._min_interval:
                state.positive_checks += 1
                state.last_counted_at = timestamp
        return state.positive_checks >= self._required

    def is_stable(self, block_id: str) -> bool:
        state = self._states.get(block_id)
        return state is not None and state.positive_checks >= self._required

    def checks(self, block_id: str) -> int:
        state = self._states.get(block_id)
        return state.positive_checks if state else 0

    def reset(self, block_id: str) -> None:
        self._states[block_id] = _StabilityState()

    def discard(self, block_id: str) -> None:
        self._states.pop(block_id, None)

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._states
