"""Block model and the arena that owns every live block of a manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Iterator, Sequence

from ..execution.types import ExecutionRecord, Invocation
from ..parsing.extractor import Parameter
from .scheduler import TimerHandle

__all__ = [
    "Block",
    "BlockArena",
    "BlockHandle",
    "BlockState",
    "BlockStatus",
    "Parameter",
    "merge_parameters",
]


class BlockState(Enum):
    """Lifecycle phase of a block."""

    STREAMING = auto()
    COMPLETE = auto()
    EXECUTING = auto()
    RESULTED = auto()
    ERRORED = auto()

    @property
    def terminal(self) -> bool:
        return self in (BlockState.RESULTED, BlockState.ERRORED)

    @property
    def settled(self) -> bool:
        """Past streaming: late bytes no longer change the block."""
        return self is not BlockState.STREAMING


@dataclass(slots=True, frozen=True)
class BlockStatus:
    """What a renderer needs to draw a block besides its parameters."""

    state: BlockState
    stalled: bool = False
    resyncing: bool = False
    abruptly_ended: bool = False
    function_name: str | None = None
    call_id: str | None = None
    language_tag: str | None = None
    result: Any = None
    error: str | None = None
    error_category: str | None = None
    from_cache: bool = False


@dataclass(slots=True, frozen=True)
class BlockHandle:
    """Opaque reference into a :class:`BlockArena`; stale once its slot is reused."""

    index: int
    generation: int


@dataclass(slots=True)
class Block:
    id: str
    handle: BlockHandle
    created_at: float
    last_growth_at: float
    state: BlockState = BlockState.STREAMING
    function_name: str | None = None
    call_id: str | None = None
    language_tag: str | None = None
    parameters: list[Parameter] = field(default_factory=list)
    snapshot: str = ""
    processed_length: int = 0
    stalled: bool = False
    resyncing: bool = False
    abruptly_ended: bool = False
    invocation: Invocation | None = None
    record: ExecutionRecord | None = None
    error: str | None = None
    error_category: str | None = None
    from_cache: bool = False
    busy: bool = False
    busy_since: float = 0.0
    pending_update: bool = False
    debounce_timer: TimerHandle | None = None
    confirm_timer: TimerHandle | None = None
    last_frame: tuple[Any, ...] | None = None

    def status(self) -> BlockStatus:
        return BlockStatus(
            state=self.state,
            stalled=self.stalled,
            resyncing=self.resyncing,
            abruptly_ended=self.abruptly_ended,
            function_name=self.function_name,
            call_id=self.call_id,
            language_tag=self.language_tag,
            result=self.record.result if self.record is not None else None,
            error=self.error,
            error_category=self.error_category,
            from_cache=self.from_cache,
        )

    def cancel_timers(self) -> None:
        for timer in (self.debounce_timer, self.confirm_timer):
            if timer is not None:
                timer.cancel()
        self.debounce_timer = None
        self.confirm_timer = None


def merge_parameters(existing: list[Parameter], fresh: Sequence[Parameter]) -> bool:
    """Merge *fresh* parse output into *existing* in place, longest value wins.

    Parameters are never removed and a stored value is only replaced by a
    longer one. Completion is sticky. Returns ``True`` when anything changed.
    """

    changed = False
    index = {parameter.name: parameter for parameter in existing}
    for candidate in fresh:
        current = index.get(candidate.name)
        if current is None:
            copy = Parameter(
                name=candidate.name,
                value=candidate.value,
                complete=candidate.complete,
                streaming=candidate.streaming,
                declared_type=candidate.declared_type,
            )
            existing.append(copy)
            index[copy.name] = copy
            changed = True
            continue
        if len(candidate.value) > len(current.value):
            current.value = candidate.value
            changed = True
        if candidate.complete and not current.complete:
            current.complete = True
            current.streaming = False
            changed = True
        if candidate.declared_type and current.declared_type != candidate.declared_type:
            current.declared_type = candidate.declared_type
            changed = True
    return changed


class BlockArena:
    """Slot storage for blocks addressed by generation-checked handles."""

    def __init__(self) -> None:
        self._slots: list[Block | None] = []
        self._generations: list[int] = []
        self._free: list[int] = []

    def allocate(self, block_id: str, *, now: float) -> Block:
        if self._free:
            index = self._free.pop()
            self._generations[index] += 1
        else:
            index = len(self._slots)
            self._slots.append(None)
            self._generations.append(0)
        block = Block(
            id=block_id,
            handle=BlockHandle(index, self._generations[index]),
            created_at=now,
            last_growth_at=now,
        )
        self._slots[index] = block
        return block

    def get(self, handle: BlockHandle) -> Block | None:
        if handle.index >= len(self._slots) or self._generations[handle.index] != handle.generation:
            return None
        return self._slots[handle.index]

    def release(self, handle: BlockHandle) -> Block | None:
        block = self.get(handle)
        if block is None:
            return None
        self._slots[handle.index] = None
        self._generations[handle.index] += 1
        self._free.append(handle.index)
        return block

    def __iter__(self) -> Iterator[Block]:
        return (block for block in self._slots if block is not None)

    def __len__(self) -> int:
        return sum(1 for block in self._slots if block is not None)
