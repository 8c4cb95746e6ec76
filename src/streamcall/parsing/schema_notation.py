"""Compact schema notation: a terse text form of JSON Schema for prompts.

Notation summary:

==================  ======================================  ============================
Notation            Meaning                                 Example
==================  ======================================  ============================
``s i n b``         string, integer, number, boolean        ``name:s``
``o {p {...}}``     object with ``;``-separated properties  ``o {p {name:s; age:i}}``
``a[type]``         array of *type* (``any`` when untyped)  ``tags:a[s]``
``e[...]``          enum of JSON values                     ``e["red", "green"]``
``u[...]``          union (``anyOf``)                       ``u[s, n]``
``lit[value]``      constant                                ``lit["active"]``
``?type``           optional, same as ``u[type, null]``     ``?s``
``r``               required property                       ``name:s r``
``d=value``         default (JSON)                          ``active:b d=true``
``"text"``          description                             ``q:s r "Search terms"``
``ap f``            no additional properties                ``o {p {name:s} ap f}``
``type(k=v, ...)``  constraints                             ``s(minLength=1)``
==================  ======================================  ============================
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from .errors import ParseError

__all__ = ["encode", "decode", "TYPE_CODES"]

TYPE_CODES: Mapping[str, str] = {
    "string": "s",
    "integer": "i",
    "number": "n",
    "boolean": "b",
    "object": "o",
    "array": "a",
}
_TYPE_NAMES: Mapping[str, str] = {code: name for name, code in TYPE_CODES.items()}

_STRING_CONSTRAINTS: tuple[tuple[str, str], ...] = (
    ("minLength", "minLength"),
    ("maxLength", "maxLength"),
    ("pattern", "pattern"),
)
_NUMBER_CONSTRAINTS: tuple[tuple[str, str], ...] = (
    ("minimum", "min"),
    ("maximum", "max"),
    ("exclusiveMinimum", "exclusiveMin"),
    ("exclusiveMaximum", "exclusiveMax"),
)
_CONSTRAINT_KEYS: Mapping[str, str] = {
    short: full for full, short in _STRING_CONSTRAINTS + _NUMBER_CONSTRAINTS
}
_FRAGMENT_WIDTH = 40
_DECODER = json.JSONDecoder()


# -----------------------------------------------------------------------------
# Encoding
# -----------------------------------------------------------------------------


def encode(schema: Mapping[str, Any], *, include_descriptions: bool = False) -> str:
    """Render a JSON Schema mapping as compact notation.

    Raises:
        ParseError: If *schema* (or a nested schema) is not a mapping.
    """

    if not isinstance(schema, Mapping):
        raise ParseError(
            "Schema must be an object",
            fragment=repr(schema)[:_FRAGMENT_WIDTH],
            code="invalid_schema",
        )
    if "enum" in schema:
        return f"e[{', '.join(_json(value) for value in schema['enum'])}]"
    if "const" in schema:
        return f"lit[{_json(schema['const'])}]"
    if "anyOf" in schema:
        return f"u[{', '.join(encode(sub, include_descriptions=include_descriptions) for sub in schema['anyOf'])}]"

    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        members = [encode({**schema, "type": member}, include_descriptions=include_descriptions) for member in schema_type]
        return f"u[{', '.join(members)}]"
    if schema_type == "array":
        items = schema.get("items")
        item_notation = encode(items, include_descriptions=include_descriptions) if items else "any"
        return f"a[{item_notation}]"
    if schema_type == "object":
        return _encode_object(schema, include_descriptions=include_descriptions)
    if schema_type is None:
        return "any"

    base = TYPE_CODES.get(str(schema_type), str(schema_type))
    constraints: list[str] = []
    if schema_type == "string":
        pairs = _STRING_CONSTRAINTS
    elif schema_type in ("number", "integer"):
        pairs = _NUMBER_CONSTRAINTS
    else:
        pairs = ()
    for key, short in pairs:
        if key in schema:
            constraints.append(f"{short}={_json(schema[key])}")
    if constraints:
        return f"{base}({', '.join(constraints)})"
    return base


def _encode_object(schema: Mapping[str, Any], *, include_descriptions: bool) -> str:
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or ())
    entries: list[str] = []
    for name, prop_schema in properties.items():
        entry = f"{name}:{encode(prop_schema, include_descriptions=include_descriptions)}"
        if name in required:
            entry += " r"
        if isinstance(prop_schema, Mapping) and "default" in prop_schema:
            entry += f" d={_json(prop_schema['default'])}"
        if include_descriptions and isinstance(prop_schema, Mapping) and prop_schema.get("description"):
            entry += f" {_json(str(prop_schema['description']))}"
        entries.append(entry)
    suffix = " ap f" if schema.get("additionalProperties") is False else ""
    return f"o {{p {{{'; '.join(entries)}}}{suffix}}}"


def _json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# -----------------------------------------------------------------------------
# Decoding
# -----------------------------------------------------------------------------


def decode(notation: str) -> dict[str, Any]:
    """Parse compact notation back into a JSON Schema dictionary.

    Raises:
        ParseError: When the notation is malformed; ``fragment`` holds the
            text at the point of failure.
    """

    reader = _Reader(notation or "")
    reader.skip_ws()
    if reader.at_end():
        raise ParseError("Empty schema notation", fragment=notation or "", code="empty")
    schema = reader.read_type()
    _apply_flags(reader, schema, allow_required=False)
    reader.skip_ws()
    if not reader.at_end():
        raise reader.error("Unexpected trailing notation")
    return schema


def _apply_flags(reader: "_Reader", schema: dict[str, Any], *, allow_required: bool) -> bool:
    required = False
    while True:
        reader.skip_ws()
        if reader.at_end() or reader.peek() in ";}]),":
            return required
        if reader.peek() == '"':
            schema["description"] = reader.read_json()
            continue
        if reader.startswith("d="):
            reader.advance(2)
            schema["default"] = reader.read_json()
            continue
        if allow_required and reader.startswith("r") and reader.boundary_after(1):
            reader.advance(1)
            required = True
            continue
        raise reader.error("Unknown modifier")


class _Reader:
    """Cursor over notation text."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def startswith(self, token: str) -> bool:
        return self.text.startswith(token, self.pos)

    def boundary_after(self, size: int) -> bool:
        following = self.text[self.pos + size: self.pos + size + 1]
        return following == "" or following.isspace() or following in ";}]),"

    def advance(self, size: int) -> None:
        self.pos += size

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def expect(self, token: str) -> None:
        self.skip_ws()
        if not self.startswith(token):
            raise self.error(f"Expected {token!r}")
        self.pos += len(token)

    def error(self, message: str) -> ParseError:
        fragment = self.text[self.pos: self.pos + _FRAGMENT_WIDTH] or self.text[-_FRAGMENT_WIDTH:]
        return ParseError(message, fragment=fragment)

    def read_json(self) -> Any:
        try:
            value, end = _DECODER.raw_decode(self.text, self.pos)
        except json.JSONDecodeError:
            raise self.error("Invalid JSON value") from None
        self.pos = end
        return value

    def read_identifier(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isalnum() or self.text[self.pos] == "_"):
            self.pos += 1
        return self.text[start: self.pos]

    def read_list(self, read_item: Any) -> list[Any]:
        items: list[Any] = []
        self.skip_ws()
        if self.peek() == "]":
            self.advance(1)
            return items
        while True:
            self.skip_ws()
            items.append(read_item())
            self.skip_ws()
            if self.peek() == ",":
                self.advance(1)
                continue
            self.expect("]")
            return items

    def read_type(self) -> dict[str, Any]:
        self.skip_ws()
        if self.startswith("?"):
            self.advance(1)
            return {"anyOf": [self.read_type(), {"type": "null"}]}
        if self.startswith("e["):
            self.advance(2)
            return {"enum": self.read_list(self.read_json)}
        if self.startswith("lit["):
            self.advance(4)
            self.skip_ws()
            value = self.read_json()
            self.expect("]")
            return {"const": value}
        if self.startswith("u["):
            self.advance(2)
            return {"anyOf": self.read_list(self.read_type)}
        if self.startswith("a["):
            self.advance(2)
            items = self.read_type()
            self.expect("]")
            schema: dict[str, Any] = {"type": "array"}
            if items:
                schema["items"] = items
            return schema
        start = self.pos
        identifier = self.read_identifier()
        if not identifier:
            raise self.error("Expected a type")
        if identifier == "o":
            self.skip_ws()
            if self.peek() == "{":
                return self.read_object()
        if identifier == "any":
            return {}
        schema = {"type": _TYPE_NAMES.get(identifier, identifier)}
        if self.peek() == "(":
            self.advance(1)
            self.read_constraints(schema)
        elif self.peek() == "[":
            self.pos = start
            raise self.error("Unsupported type constructor")
        return schema

    def read_constraints(self, schema: dict[str, Any]) -> None:
        while True:
            self.skip_ws()
            key = self.read_identifier()
            if not key:
                raise self.error("Expected a constraint name")
            self.expect("=")
            self.skip_ws()
            schema[_CONSTRAINT_KEYS.get(key, key)] = self.read_json()
            self.skip_ws()
            if self.peek() == ",":
                self.advance(1)
                continue
            self.expect(")")
            return

    def read_object(self) -> dict[str, Any]:
        self.expect("{")
        schema: dict[str, Any] = {"type": "object", "properties": {}}
        required: list[str] = []
        self.skip_ws()
        if self.startswith("p") and not self.startswith("p:"):
            self.advance(1)
            self.expect("{")
            self.read_properties(schema["properties"], required)
        self.skip_ws()
        if self.startswith("ap"):
            self.advance(2)
            self.skip_ws()
            flag = self.read_identifier()
            if flag not in ("f", "t"):
                raise self.error("Expected 'f' or 't' after 'ap'")
            schema["additionalProperties"] = flag == "t"
        self.expect("}")
        if required:
            schema["required"] = required
        return schema

    def read_properties(self, properties: dict[str, Any], required: list[str]) -> None:
        while True:
            self.skip_ws()
            if self.peek() == "}":
                self.advance(1)
                return
            name_start = self.pos
            while self.pos < len(self.text) and self.text[self.pos] not in ":;{}":
                self.pos += 1
            name = self.text[name_start: self.pos].strip()
            if not name or self.peek() != ":":
                self.pos = name_start
                raise self.error("Expected 'name:type'")
            self.advance(1)
            prop_schema = self.read_type()
            if _apply_flags(self, prop_schema, allow_required=True):
                required.append(name)
            properties[name] = prop_schema
            self.skip_ws()
            if self.peek() == ";":
                self.advance(1)
                continue
            self.expect("}")
            return
