"""Deduplicated execution of completed invocations."""

from .cache import ExecutionCache
from .errors import ErrorCategory, InvocationError, as_invocation_error, categorize_error
from .invoker import (
    ConnectivityStatus,
    HttpToolInvoker,
    RegistryToolInvoker,
    SchemaProvider,
    ToolInvoker,
    validate_arguments,
)
from .types import ExecutionRecord, Invocation, content_signature, normalize_arguments

__all__ = [
    "ConnectivityStatus",
    "ErrorCategory",
    "ExecutionCache",
    "ExecutionRecord",
    "HttpToolInvoker",
    "Invocation",
    "InvocationError",
    "RegistryToolInvoker",
    "SchemaProvider",
    "ToolInvoker",
    "as_invocation_error",
    "categorize_error",
    "content_signature",
    "normalize_arguments",
    "validate_arguments",
]
