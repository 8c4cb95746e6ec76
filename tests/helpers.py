"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence

from streamcall.execution.errors import ErrorCategory, InvocationError
from streamcall.execution.types import Invocation
from streamcall.parsing.extractor import Parameter
from streamcall.streaming.types import BlockState, BlockStatus


@dataclass
class Frame:
    block_id: str
    status: BlockStatus
    parameters: tuple[Parameter, ...]
    invocation: Invocation | None


class RecordingRenderer:
    """Renderer stub that keeps every frame it receives."""

    def __init__(self) -> None:
        self.frames: list[Frame] = []

    def apply_block_state(
        self,
        block_id: str,
        status: BlockStatus,
        parameters: Sequence[Parameter],
        invocation: Invocation | None = None,
    ) -> None:
        self.frames.append(Frame(block_id, status, tuple(replace(p) for p in parameters), invocation))

    def for_block(self, block_id: str) -> list[Frame]:
        return [frame for frame in self.frames if frame.block_id == block_id]

    def states(self, block_id: str) -> list[BlockState]:
        """Distinct consecutive states seen for *block_id*."""
        seen: list[BlockState] = []
        for frame in self.for_block(block_id):
            if not seen or seen[-1] is not frame.status.state:
                seen.append(frame.status.state)
        return seen

    def last(self, block_id: str) -> Frame:
        return self.for_block(block_id)[-1]


@dataclass
class StubInvoker:
    """Invoker stub returning canned results and recording calls.

    Attributes:
        results: Result per tool name; defaults to echoing the arguments.
        errors: Exception raised per tool name.
        gate: When set, each invocation waits on it before returning.
    """

    results: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    schemas: dict[str, Mapping[str, Any]] = field(default_factory=dict)
    gate: asyncio.Event | None = None
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def invoke(self, function_name: str, args: Mapping[str, Any]) -> Any:
        self.calls.append((function_name, dict(args)))
        if self.gate is not None:
            await self.gate.wait()
        if function_name in self.errors:
            raise self.errors[function_name]
        if function_name in self.results:
            return self.results[function_name]
        return {"echo": dict(args)}

    def schema_for(self, function_name: str) -> Mapping[str, Any] | None:
        return self.schemas.get(function_name)


def connection_error(tool: str = "search") -> InvocationError:
    return InvocationError("connection refused", category=ErrorCategory.CONNECTION, tool_name=tool)


def invoke_markup(name: str, params: Mapping[str, str], *, call_id: str | None = None, close: bool = True) -> str:
    """Build ``<function_calls>`` markup for one invoke."""
    attrs = f' name="{name}"'
    if call_id is not None:
        attrs += f' call_id="{call_id}"'
    body = "".join(f'<parameter name="{key}">{value}</parameter>' for key, value in params.items())
    text = f"<function_calls><invoke{attrs}>{body}"
    if close:
        text += "</invoke></function_calls>"
    return text


def chunks(text: str, size: int) -> list[str]:
    """Return the growing prefixes of *text* in steps of *size* characters."""
    return [text[:end] for end in range(size, len(text) + size, size)]
