"""Tests for tools/registry.py and tools/types.py."""

from __future__ import annotations

from typing import Any

import pytest

from streamcall.parsing import ParseError
from streamcall.tools import (
    DuplicateToolError,
    SimpleTool,
    Tool,
    ToolNotFoundError,
    ToolRegistry,
    ToolSpec,
)


def make_spec(name: str = "test_tool", description: str = "A test tool") -> ToolSpec:
    """Helper to create a ToolSpec."""
    return ToolSpec(name=name, description=description)


# -----------------------------------------------------------------------------
# Tests: ToolSpec
# -----------------------------------------------------------------------------


class TestToolSpec:
    """Tests for ToolSpec."""

    def test_default_schema_is_empty_object(self) -> None:
        assert make_spec().input_schema == {"type": "object", "properties": {}}

    def test_to_notation(self) -> None:
        spec = ToolSpec(
            name="search",
            parameters={"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
        )
        assert spec.to_notation() == "o {p {q:s r}}"

    def test_from_notation(self) -> None:
        spec = ToolSpec.from_notation("search", "o {p {q:s r; limit:i}}", "Search the index")
        assert spec.parameters["required"] == ["q"]
        assert spec.parameters["properties"]["limit"] == {"type": "integer"}
        assert spec.description == "Search the index"

    def test_from_notation_rejects_garbage(self) -> None:
        with pytest.raises(ParseError):
            ToolSpec.from_notation("bad", "o {p {")

    @pytest.mark.parametrize("key", ["input_schema", "inputSchema", "parameters"])
    def test_from_dict_accepts_schema_aliases(self, key: str) -> None:
        spec = ToolSpec.from_dict({"name": "x", key: {"type": "object"}})
        assert spec.parameters == {"type": "object"}
        assert spec.to_dict()["input_schema"] == {"type": "object"}


# -----------------------------------------------------------------------------
# Tests: SimpleTool
# -----------------------------------------------------------------------------


class TestSimpleTool:
    """Tests for SimpleTool."""

    @pytest.mark.asyncio
    async def test_sync_handler(self) -> None:
        tool = SimpleTool(spec=make_spec("echo"), handler=lambda args: args["message"])
        assert tool.name == "echo"
        assert isinstance(tool, Tool)
        assert await tool.execute({"message": "hi"}) == "hi"

    @pytest.mark.asyncio
    async def test_async_handler(self) -> None:
        async def greet(args: Any) -> str:
            return f"Hello, {args.get('name', 'World')}!"

        tool = SimpleTool(spec=make_spec("greet"), handler=greet)
        assert await tool.execute({}) == "Hello, World!"


# -----------------------------------------------------------------------------
# Tests: ToolRegistry
# -----------------------------------------------------------------------------


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_and_get(self) -> None:
        registry = ToolRegistry()
        registry.register_function(make_spec("echo"), lambda args: args)
        assert "echo" in registry
        assert registry.has("echo")
        assert registry.get("echo") is not None
        assert registry.get_required("echo").name == "echo"
        assert registry.list_names() == ["echo"]
        assert len(registry) == 1

    def test_duplicate_registration(self) -> None:
        registry = ToolRegistry()
        registry.register_function(make_spec("echo"), lambda args: 1)
        with pytest.raises(DuplicateToolError):
            registry.register_function(make_spec("echo"), lambda args: 2)
        registry.register_function(make_spec("echo", "Replaced"), lambda args: 2, allow_override=True)
        assert registry.spec_for("echo").description == "Replaced"

    def test_missing_tool(self) -> None:
        registry = ToolRegistry()
        assert registry.get("nope") is None
        with pytest.raises(ToolNotFoundError):
            registry.get_required("nope")

    def test_disable_hides_tool(self) -> None:
        registry = ToolRegistry()
        registry.register_function(make_spec("a"), lambda args: 1)
        registry.register_function(make_spec("b"), lambda args: 2)
        assert registry.disable("a") is True
        assert registry.get("a") is None
        assert registry.spec_for("a") is None
        assert registry.list_names() == ["b"]
        assert registry.list_names(include_disabled=True) == ["a", "b"]
        assert registry.enable("a") is True
        assert registry.has("a")
        assert registry.disable("zzz") is False

    def test_unregister_and_clear(self) -> None:
        registry = ToolRegistry()
        registry.register_function(make_spec("a"), lambda args: 1)
        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        registry.register_function(make_spec("b"), lambda args: 1)
        registry.clear()
        assert len(registry) == 0
