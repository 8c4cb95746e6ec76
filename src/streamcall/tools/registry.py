"""Registry of in-process tools available to the registry invoker.

Tools are registered under the name the model uses in
``<invoke name="...">``; disabled tools stay registered but are reported as
missing to invokers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(LookupError):
    """Raised when a requested tool is unknown or disabled."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    name: str
    tool: Tool
    spec: ToolSpec
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Name-indexed collection of tools.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            ToolSpec(name="search", parameters={"type": "object"}),
            lambda args: {"hits": []},
        )
        registry.get_required("search")
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}

    def register(
        self,
        tool: Tool,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        name = tool.name
        if name in self._tools and not allow_override:
            raise DuplicateToolError(name)
        registration = ToolRegistration(
            name=name,
            tool=tool,
            spec=tool.spec,
            enabled=enabled,
            metadata=dict(metadata) if metadata else {},
        )
        self._tools[name] = registration
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a plain callable under *spec*."""
        return self.register(
            SimpleTool(spec=spec, handler=handler),
            enabled=enabled,
            allow_override=allow_override,
            metadata=metadata,
        )

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is None:
            return False
        LOGGER.debug("Unregistered tool: %s", name)
        return True

    def get(self, name: str) -> Tool | None:
        """Return the tool if registered and enabled."""
        registration = self._tools.get(name)
        if registration is None or not registration.enabled:
            return None
        return registration.tool

    def get_required(self, name: str) -> Tool:
        """Return the tool or raise :class:`ToolNotFoundError`."""
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def spec_for(self, name: str) -> ToolSpec | None:
        registration = self._tools.get(name)
        if registration is None or not registration.enabled:
            return None
        return registration.spec

    def has(self, name: str) -> bool:
        registration = self._tools.get(name)
        return registration is not None and registration.enabled

    def list_tools(self, *, include_disabled: bool = False) -> list[ToolSpec]:
        return [registration.spec for registration in self._iter(include_disabled)]

    def list_names(self, *, include_disabled: bool = False) -> list[str]:
        return [registration.name for registration in self._iter(include_disabled)]

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def _iter(self, include_disabled: bool) -> Iterator[ToolRegistration]:
        for registration in self._tools.values():
            if registration.enabled or include_disabled:
                yield registration

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = enabled
        return True
