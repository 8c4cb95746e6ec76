"""In-process tools.

Example:
    from streamcall.tools import ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="greet", description="Greet someone"),
        handler=lambda args: f"Hello, {args.get('name', 'World')}!",
    )
"""

from .registry import DuplicateToolError, ToolNotFoundError, ToolRegistration, ToolRegistry
from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec

__all__ = [
    "AsyncToolHandler",
    "DuplicateToolError",
    "SimpleTool",
    "Tool",
    "ToolHandler",
    "ToolNotFoundError",
    "ToolRegistration",
    "ToolRegistry",
    "ToolSpec",
]
