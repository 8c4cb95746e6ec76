"""Incremental extraction and execution of tool invocations in streamed text.

Example:
    from streamcall import BlockLifecycleManager, ManualScheduler

    manager = BlockLifecycleManager(scheduler=ManualScheduler())
    manager.on_growth("msg-1", '<function_calls><invoke name="search">')
"""

from .execution import (
    ConnectivityStatus,
    ErrorCategory,
    ExecutionCache,
    ExecutionRecord,
    HttpToolInvoker,
    InvocationError,
    RegistryToolInvoker,
    ToolInvoker,
    categorize_error,
    content_signature,
)
from .parsing import ParseError, ParseResult, detect, parse
from .services.settings import SettingsStore, StreamSettings
from .streaming import (
    AsyncioScheduler,
    BlockHandle,
    BlockLifecycleManager,
    BlockState,
    BlockStatus,
    Invocation,
    ManualScheduler,
    Parameter,
    RendererAdapter,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncioScheduler",
    "BlockHandle",
    "BlockLifecycleManager",
    "BlockState",
    "BlockStatus",
    "ConnectivityStatus",
    "ErrorCategory",
    "ExecutionCache",
    "ExecutionRecord",
    "HttpToolInvoker",
    "Invocation",
    "InvocationError",
    "ManualScheduler",
    "Parameter",
    "ParseError",
    "ParseResult",
    "RegistryToolInvoker",
    "RendererAdapter",
    "SettingsStore",
    "StreamSettings",
    "ToolInvoker",
    "categorize_error",
    "content_signature",
    "detect",
    "parse",
]
