"""Invocation error type and connection/tool error categorization."""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from typing import Any

import httpx
from jsonschema import ValidationError

from ..tools.registry import ToolNotFoundError

__all__ = ["ErrorCategory", "InvocationError", "categorize_error", "as_invocation_error"]


class ErrorCategory(str, Enum):
    """Whether a failure is about reaching the tool server or about the tool call itself."""

    CONNECTION = "connection"
    TOOL = "tool"


class InvocationError(Exception):
    """Raised by tool invokers when an invocation fails.

    Attributes:
        message: Human-readable failure description, shown in place of a result.
        category: :class:`ErrorCategory` of the failure.
        tool_name: Tool that was being invoked.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.TOOL,
        tool_name: str = "",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = ErrorCategory(category)
        self.tool_name = tool_name
        self.cause = cause

    @property
    def is_connection_error(self) -> bool:
        return self.category is ErrorCategory.CONNECTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.category.value,
            "message": self.message,
            "tool_name": self.tool_name,
        }


# Tool-level patterns are checked first; "tool not found" must never count as an outage.
_TOOL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"tool .* not found",
        r"tool not found",
        r"method not found",
        r"invalid arguments",
        r"invalid parameters",
        r"mcp error -32602",
        r"mcp error -32601",
        r"mcp error -32600",
        r"tool '.*' is not available",
        r"tool '.*' not found on server",
    )
)
_CONNECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"connection refused",
        r"econnrefused",
        r"timed? ?out",
        r"etimedout",
        r"enotfound",
        r"network error",
        r"server unavailable",
        r"service unavailable",
        r"could not connect",
        r"connection failed",
        r"connection reset",
        r"transport error",
        r"fetch failed",
    )
)
_CONNECTION_TYPES: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)
_TOOL_TYPES: tuple[type[BaseException], ...] = (
    ToolNotFoundError,
    ValidationError,
    TypeError,
    KeyError,
)


def categorize_error(error: BaseException | str) -> ErrorCategory:
    """Classify *error* as a connection problem or a tool problem.

    Exception types are checked first, then the message text. Anything
    ambiguous is a tool error, so connectivity status only changes on
    clear transport failures.
    """

    if isinstance(error, InvocationError):
        return error.category
    if isinstance(error, BaseException):
        if isinstance(error, _TOOL_TYPES):
            return ErrorCategory.TOOL
        if isinstance(error, _CONNECTION_TYPES):
            return ErrorCategory.CONNECTION
        message = str(error)
    else:
        message = error
    if any(pattern.search(message) for pattern in _TOOL_PATTERNS):
        return ErrorCategory.TOOL
    if any(pattern.search(message) for pattern in _CONNECTION_PATTERNS):
        return ErrorCategory.CONNECTION
    return ErrorCategory.TOOL


def as_invocation_error(error: BaseException, *, tool_name: str = "") -> InvocationError:
    """Wrap *error* in an :class:`InvocationError`, keeping existing ones as-is."""

    if isinstance(error, InvocationError):
        if not error.tool_name:
            error.tool_name = tool_name
        return error
    message = str(error) or error.__class__.__name__
    return InvocationError(message, category=categorize_error(error), tool_name=tool_name, cause=error)
