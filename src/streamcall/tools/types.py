"""In-process tool types used by :class:`~streamcall.execution.invoker.RegistryToolInvoker`."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

from ..parsing import schema_notation

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
]


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Interface description of a tool.

    Attributes:
        name: Unique identifier used in ``<invoke name="...">``.
        description: Human-readable description for instructions.
        parameters: JSON Schema for the tool's arguments.
    """

    name: str
    description: str = ""
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @property
    def input_schema(self) -> dict[str, Any]:
        if self.parameters:
            return dict(self.parameters)
        return {"type": "object", "properties": {}}

    def to_notation(self) -> str:
        """Render the argument schema in compact notation.

        Raises:
            ParseError: If the schema cannot be expressed.
        """
        return schema_notation.encode(self.input_schema)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ToolSpec":
        schema = payload.get("input_schema") or payload.get("inputSchema") or payload.get("parameters") or {}
        return cls(
            name=str(payload["name"]),
            description=str(payload.get("description") or ""),
            parameters=dict(schema),
        )

    @classmethod
    def from_notation(cls, name: str, notation: str, description: str = "") -> "ToolSpec":
        """Build a spec from compact notation; raises :class:`ParseError` when malformed."""
        return cls(name=name, description=description, parameters=schema_notation.decode(notation))


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

ToolHandler = Callable[[Mapping[str, Any]], Any]

AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Protocol for in-process tool implementations."""

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        """Execute the tool with the given arguments.

        Args:
            arguments: Coerced tool arguments.

        Returns:
            The tool's result (any JSON-serializable value).

        Raises:
            Exception: If tool execution fails.
        """
        ...


@dataclass
class SimpleTool:
    """Tool implementation wrapping a plain (sync or async) callable.

    Example:
        tool = SimpleTool(
            spec=ToolSpec(name="greet", description="Greet someone"),
            handler=lambda args: f"Hello, {args.get('name', 'World')}!",
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        if self._is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        result = self.handler(arguments)
        if inspect.isawaitable(result):
            return await result
        return result
