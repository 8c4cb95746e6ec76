"""Tool invoker contract and the in-process and HTTP implementations."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

import httpx
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..tools.registry import ToolRegistry
from ..tools.types import ToolSpec
from .errors import ErrorCategory, InvocationError, as_invocation_error, categorize_error

if TYPE_CHECKING:
    from ..services.settings import StreamSettings

__all__ = [
    "ToolInvoker",
    "SchemaProvider",
    "ConnectivityStatus",
    "RegistryToolInvoker",
    "HttpToolInvoker",
    "validate_arguments",
]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({502, 503, 504})


# -----------------------------------------------------------------------------
# Contracts
# -----------------------------------------------------------------------------


@runtime_checkable
class ToolInvoker(Protocol):
    """Runs a tool by name and returns its result."""

    async def invoke(self, function_name: str, args: Mapping[str, Any]) -> Any:
        """Invoke *function_name* with *args*.

        Raises:
            InvocationError: On any failure, categorized as connection or tool.
        """
        ...


@runtime_checkable
class SchemaProvider(Protocol):
    """Optional companion of an invoker that exposes each tool's argument schema."""

    def schema_for(self, function_name: str) -> Mapping[str, Any] | None:
        ...


def validate_arguments(schema: Mapping[str, Any] | None, args: Mapping[str, Any]) -> list[str]:
    """Validate *args* against a JSON Schema; returns readable error messages (empty when valid)."""

    if not schema:
        return []
    try:
        Draft7Validator.check_schema(dict(schema))
    except SchemaError as exc:
        LOGGER.warning("Ignoring invalid tool schema: %s", exc.message)
        return []
    validator = Draft7Validator(dict(schema))
    messages: list[str] = []
    for error in sorted(validator.iter_errors(dict(args)), key=lambda item: [str(part) for part in item.path]):
        location = ".".join(str(part) for part in error.path)
        messages.append(f"{location}: {error.message}" if location else error.message)
    return messages


# -----------------------------------------------------------------------------
# Connectivity
# -----------------------------------------------------------------------------


class ConnectivityStatus:
    """Tracks whether the tool server is reachable.

    Only connection-class failures mark the status disconnected; a tool-class
    failure (unknown tool, bad arguments) never does.
    """

    def __init__(self) -> None:
        self._connected = True
        self._last_error: str | None = None
        self._changed_at = time.time()
        self._listeners: list[Callable[[bool, str | None], None]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def changed_at(self) -> float:
        return self._changed_at

    def add_listener(self, callback: Callable[[bool, str | None], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def record_success(self) -> None:
        self._set(True, None)

    def record_failure(self, error: InvocationError) -> None:
        if error.category is not ErrorCategory.CONNECTION:
            LOGGER.debug("Tool error for %s leaves connectivity unchanged: %s", error.tool_name, error.message)
            return
        self._set(False, error.message)

    def _set(self, connected: bool, error: str | None) -> None:
        changed = connected != self._connected
        self._connected = connected
        self._last_error = error
        if not changed:
            return
        self._changed_at = time.time()
        LOGGER.info("Tool server %s%s", "connected" if connected else "disconnected", f": {error}" if error else "")
        for callback in list(self._listeners):
            try:
                callback(connected, error)
            except Exception:  # pragma: no cover - listeners must not break status updates
                LOGGER.debug("Connectivity listener %s failed", callback, exc_info=True)


# -----------------------------------------------------------------------------
# In-process invoker
# -----------------------------------------------------------------------------


class RegistryToolInvoker:
    """Invokes tools from a :class:`ToolRegistry` in the current event loop.

    Example:
        invoker = RegistryToolInvoker(registry, timeout=10.0)
        result = await invoker.invoke("search", {"q": "hello"})
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        timeout: float | None = 30.0,
        log_arguments: bool = False,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._log_arguments = log_arguments

    @classmethod
    def from_settings(cls, registry: ToolRegistry, settings: StreamSettings, **kwargs: Any) -> "RegistryToolInvoker":
        return cls(registry, timeout=settings.invoke_timeout, **kwargs)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def schema_for(self, function_name: str) -> Mapping[str, Any] | None:
        spec = self._registry.spec_for(function_name)
        return spec.parameters if spec is not None and spec.parameters else None

    async def invoke(self, function_name: str, args: Mapping[str, Any]) -> Any:
        if self._log_arguments:
            LOGGER.debug("Invoking tool %s with arguments: %s", function_name, dict(args))
        else:
            LOGGER.debug("Invoking tool %s", function_name)

        tool = self._registry.get(function_name)
        if tool is None:
            raise InvocationError(
                f"Tool '{function_name}' not found",
                category=ErrorCategory.TOOL,
                tool_name=function_name,
            )

        start_time = time.perf_counter()
        try:
            if self._timeout is not None and self._timeout > 0:
                result = await asyncio.wait_for(tool.execute(args), timeout=self._timeout)
            else:
                result = await tool.execute(args)
        except asyncio.TimeoutError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s timed out after %.1fms", function_name, duration_ms)
            raise InvocationError(
                f"Tool '{function_name}' timed out after {self._timeout}s",
                category=ErrorCategory.CONNECTION,
                tool_name=function_name,
                cause=exc,
            ) from exc
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", function_name, duration_ms, exc)
            raise as_invocation_error(exc, tool_name=function_name) from exc

        LOGGER.debug("Tool %s completed in %.1fms", function_name, (time.perf_counter() - start_time) * 1000)
        return result


# -----------------------------------------------------------------------------
# HTTP invoker
# -----------------------------------------------------------------------------


class _RetryableStatusError(Exception):
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"Tool server unavailable (HTTP {response.status_code})")


class HttpToolInvoker:
    """Invokes tools on a remote server over HTTP.

    The server is expected to accept ``POST {call_path}`` with
    ``{"name": ..., "arguments": {...}}`` and answer ``{"result": ...}`` or
    ``{"error": {"message": ...}}``; ``GET {list_path}`` lists tool specs.
    Transport failures and 502/503/504 responses are retried with
    exponential backoff; tool errors are not retried.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 30.0,
        max_retries: int = 3,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 6.0,
        call_path: str = "/tools/call",
        list_path: str = "/tools",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=dict(headers or {}))
        self._max_retries = max(1, int(max_retries))
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds
        self._call_path = call_path
        self._list_path = list_path
        self._schemas: dict[str, Mapping[str, Any]] = {}

    @classmethod
    def from_settings(cls, settings: StreamSettings, **kwargs: Any) -> "HttpToolInvoker":
        """Build an invoker for ``settings.tool_endpoint`` using the configured timeout and retry policy.

        Raises:
            ValueError: If no tool endpoint is configured.
        """

        if not settings.tool_endpoint:
            raise ValueError("tool_endpoint is not configured")
        options: dict[str, Any] = {
            "timeout": settings.invoke_timeout,
            "max_retries": settings.max_retries,
            "retry_min_seconds": settings.retry_min_seconds,
            "retry_max_seconds": settings.retry_max_seconds,
        }
        options.update(kwargs)
        return cls(settings.tool_endpoint, **options)

    async def __aenter__(self) -> "HttpToolInvoker":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def schema_for(self, function_name: str) -> Mapping[str, Any] | None:
        return self._schemas.get(function_name)

    async def list_tools(self) -> list[ToolSpec]:
        """Fetch tool specs from the server and cache their schemas."""

        response = await self._send("GET", self._list_path, tool_name="")
        payload = self._json(response, tool_name="")
        entries: Sequence[Any] = payload.get("tools", []) if isinstance(payload, Mapping) else payload or []
        specs: list[ToolSpec] = []
        for entry in entries:
            if not isinstance(entry, Mapping) or "name" not in entry:
                continue
            spec = ToolSpec.from_dict(entry)
            specs.append(spec)
            if spec.parameters:
                self._schemas[spec.name] = spec.parameters
        return specs

    async def invoke(self, function_name: str, args: Mapping[str, Any]) -> Any:
        response = await self._send(
            "POST",
            self._call_path,
            tool_name=function_name,
            json={"name": function_name, "arguments": dict(args)},
        )
        if response.status_code == 404:
            raise InvocationError(
                f"Tool '{function_name}' not found on server",
                category=ErrorCategory.TOOL,
                tool_name=function_name,
            )
        payload = self._json(response, tool_name=function_name)
        error = payload.get("error") if isinstance(payload, Mapping) else None
        if error or response.is_error:
            message = _error_message(error) or _error_message(payload) or f"HTTP {response.status_code}"
            raise InvocationError(message, category=categorize_error(message), tool_name=function_name)
        if isinstance(payload, Mapping) and "result" in payload:
            return payload["result"]
        return payload

    async def _send(self, method: str, path: str, *, tool_name: str, **kwargs: Any) -> httpx.Response:
        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.request(method, path, **kwargs)
                    if response.status_code in _RETRYABLE_STATUS:
                        raise _RetryableStatusError(response)
                    return response
        except _RetryableStatusError as exc:
            raise InvocationError(str(exc), category=ErrorCategory.CONNECTION, tool_name=tool_name, cause=exc) from exc
        except httpx.TransportError as exc:
            message = f"Could not connect to tool server: {exc}" if str(exc) else "Could not connect to tool server"
            raise InvocationError(message, category=ErrorCategory.CONNECTION, tool_name=tool_name, cause=exc) from exc
        raise AssertionError("unreachable")  # pragma: no cover - AsyncRetrying always yields an attempt

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_min_seconds, max=self._retry_max_seconds),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatusError)),
        )

    @staticmethod
    def _json(response: httpx.Response, *, tool_name: str) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            if response.is_error:
                raise InvocationError(
                    response.text.strip() or f"HTTP {response.status_code}",
                    category=categorize_error(response.text),
                    tool_name=tool_name,
                ) from exc
            raise InvocationError(
                "Tool server returned a non-JSON response",
                category=ErrorCategory.TOOL,
                tool_name=tool_name,
                cause=exc,
            ) from exc


def _error_message(error: Any) -> str:
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("detail") or "")
    if error:
        return str(error)
    return ""
