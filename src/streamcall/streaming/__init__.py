"""Block lifecycle: debounced parsing, stability, stall detection and rendering."""

from ..execution.types import Invocation
from .lifecycle import BlockLifecycleManager, BlockListener, LifecycleError
from .renderer import LoggingRenderer, NullRenderer, RendererAdapter
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, TimerHandle
from .stability import StabilityTracker
from .stall import StallDetector, StallState
from .types import (
    Block,
    BlockArena,
    BlockHandle,
    BlockState,
    BlockStatus,
    Parameter,
    merge_parameters,
)

__all__ = [
    "AsyncioScheduler",
    "Block",
    "BlockArena",
    "BlockHandle",
    "BlockLifecycleManager",
    "BlockListener",
    "BlockState",
    "BlockStatus",
    "Invocation",
    "LifecycleError",
    "LoggingRenderer",
    "ManualScheduler",
    "NullRenderer",
    "Parameter",
    "RendererAdapter",
    "Scheduler",
    "StabilityTracker",
    "StallDetector",
    "StallState",
    "TimerHandle",
    "merge_parameters",
]
