"""Instruction text that teaches a model the invocation markup and the available tools."""

from __future__ import annotations

import json
import logging
from typing import Iterable

from .parsing.errors import ParseError
from .tools.registry import ToolRegistry
from .tools.types import ToolSpec

__all__ = ["build_instructions", "format_tool_entry", "markup_section", "notation_section"]

LOGGER = logging.getLogger(__name__)


def build_instructions(tools: ToolRegistry | Iterable[ToolSpec], *, include_notation_guide: bool = True) -> str:
    """Render the markup usage section followed by one entry per tool.

    Args:
        tools: A registry (enabled tools only) or an iterable of specs.
        include_notation_guide: Append the compact notation reference table.
    """

    specs = tools.list_tools() if isinstance(tools, ToolRegistry) else list(tools)
    sections = [markup_section()]
    if include_notation_guide:
        sections.append(notation_section())
    if specs:
        entries = "\n".join(format_tool_entry(spec) for spec in specs)
        sections.append(f"## Available Tools\n\n{entries}")
    else:
        sections.append("## Available Tools\n\nNo tools are available right now.")
    return "\n\n".join(sections) + "\n"


def markup_section() -> str:
    return """## Calling Tools

To call a tool, write the call in this form:

<function_calls>
<invoke name="TOOL_NAME">
<parameter name="PARAM_NAME">value</parameter>
</invoke>
</function_calls>

- Write one <parameter> per argument. Values are plain text; numbers and booleans are converted.
- Wrap values that contain markup in <![CDATA[ ... ]]>.
- Several <invoke> elements may share one <function_calls> block.
- Always close every tag. The call runs once the block is closed."""


def notation_section() -> str:
    return """## Schema Notation

Tool arguments are described in a compact notation:

- s, i, n, b: string, integer, number, boolean
- o {p {name:type; ...}}: object with properties, ap f forbids extra keys
- a[type]: array, e[...]: one of the listed values, u[...]: any of the listed types
- ?type: optional (may be null), lit[value]: exactly this value
- r marks a required property, d=value a default, "text" a description
- type(k=v): constraints such as s(minLength=1) or i(min=0)"""


def format_tool_entry(spec: ToolSpec) -> str:
    """Return `` - name: description`` plus an indented schema line."""

    header = f" - {spec.name}"
    if spec.description:
        header += f": {spec.description.strip()}"
    try:
        schema = spec.to_notation()
    except ParseError as exc:
        LOGGER.warning("Falling back to JSON schema for tool %s: %s", spec.name, exc.message)
        schema = json.dumps(spec.input_schema, sort_keys=True, separators=(",", ":"))
    return f"{header}\n   args: {schema}"
