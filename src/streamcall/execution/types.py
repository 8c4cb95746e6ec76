"""Invocation and execution record types, plus the content signature."""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

__all__ = ["Invocation", "ExecutionRecord", "content_signature", "normalize_arguments"]


def normalize_arguments(value: Any) -> Any:
    """Return a JSON-friendly copy of *value* with deterministic ordering."""

    if isinstance(value, Mapping):
        return {str(key): normalize_arguments(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_arguments(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((normalize_arguments(item) for item in value), key=repr)
    return value


def content_signature(function_name: str, args: Mapping[str, Any]) -> str:
    """Hash of the function name and its arguments, independent of argument order."""

    payload = json.dumps(
        {"name": function_name, "params": normalize_arguments(args)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


@dataclass(slots=True, frozen=True)
class Invocation:
    """Immutable request handed to a tool invoker."""

    function_name: str
    call_id: str
    args: Mapping[str, Any]
    content_signature: str

    @classmethod
    def create(cls, function_name: str, call_id: str, args: Mapping[str, Any]) -> "Invocation":
        frozen_args = dict(args)
        return cls(
            function_name=function_name,
            call_id=call_id,
            args=frozen_args,
            content_signature=content_signature(function_name, frozen_args),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "function_name": self.function_name,
            "call_id": self.call_id,
            "args": dict(self.args),
            "content_signature": self.content_signature,
        }


@dataclass(slots=True, frozen=True)
class ExecutionRecord:
    """Outcome of one execution, keyed by call id and content signature."""

    call_id: str
    function_name: str
    content_signature: str
    args: Mapping[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    error_category: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "function_name": self.function_name,
            "content_signature": self.content_signature,
            "args": dict(self.args),
            "result": self.result,
            "error": self.error,
            "error_category": self.error_category,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionRecord":
        return cls(
            call_id=str(payload["call_id"]),
            function_name=str(payload["function_name"]),
            content_signature=str(payload["content_signature"]),
            args=dict(payload.get("args") or {}),
            result=payload.get("result"),
            error=payload.get("error"),
            error_category=payload.get("error_category"),
            timestamp=float(payload.get("timestamp") or time.time()),
        )
