"""Incremental parser for ``<function_calls>`` invocation markup.

The parser is tolerant of truncation: closing tags are optional while a
stream is still growing, partially written open tags are reported as
streaming parameters, and completeness is only claimed once every opened tag
kind has been closed again.

Example:
    result = parse('<invoke name="search"><parameter name="q">hel')
    result.invoke_name   # "search"
    result.params[0]     # Parameter(name="q", value="hel", streaming=True)
    result.is_complete   # False
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from .language import extract_language_tag, strip_trailing_fence

__all__ = [
    "MARKUP_TRANSLATION",
    "Parameter",
    "ParseResult",
    "TagBalance",
    "coerce_value",
    "count_tags",
    "normalize_markup",
    "parse",
    "unwrap_cdata",
]

LOGGER = logging.getLogger(__name__)

# One-for-one glyph replacements; offsets in the normalized text match the source.
MARKUP_TRANSLATION = str.maketrans(
    {
        ord("＜"): "<",
        ord("﹤"): "<",
        ord("〈"): "<",
        ord("＞"): ">",
        ord("﹥"): ">",
        ord("〉"): ">",
        ord("＂"): '"',
        ord("＝"): "=",
        ord("／"): "/",
        ord("\u00a0"): " ",
        ord("\u2002"): " ",
        ord("\u2003"): " ",
        ord("\u2009"): " ",
        ord("\u202f"): " ",
        ord("\u3000"): " ",
        ord("\ufeff"): " ",
    }
)

_CDATA_OPEN = "<![CDATA["
_CDATA_CLOSE = "]]>"
# An unterminated section runs to the end of the buffer.
_CDATA_BLOCK_RE = re.compile(r"<!\[CDATA\[.*?(?:\]\]>|\Z)", re.DOTALL)

_WRAPPER_OPEN_RE = re.compile(r"<function_calls>")
_WRAPPER_CLOSE_RE = re.compile(r"</function_calls>")
_INVOKE_OPEN_RE = re.compile(r"<invoke\b[^>]*>")
_INVOKE_CLOSE_RE = re.compile(r"</invoke>")
_PARAMETER_OPEN_RE = re.compile(r"<parameter\b[^>]*>")
_PARAMETER_CLOSE_RE = re.compile(r"</parameter>")
_FUNCTION_HINT_RE = re.compile(r"<function_calls>|<invoke\b")

_INVOKE_START_RE = re.compile(r"<invoke\b")
_PARAMETER_TOKEN_RE = re.compile(r"<parameter\b|</parameter>")
_ATTRIBUTE_RE = re.compile(r"([A-Za-z_][\w\-]*)\s*=\s*\"([^\"]*)\"")
_TRAILING_TAG_FRAGMENT_RE = re.compile(r"<(/?[A-Za-z_]*)$")
_TAG_NAME_PREFIX_RE = re.compile(r"/?[A-Za-z_]*")
_TAG_NAMES = ("parameter", "/parameter", "invoke", "/invoke", "function_calls", "/function_calls")

_INT_RE = re.compile(r"-?\d+")
_DECIMAL_RE = re.compile(r"-?\d+\.\d+")
_NUMBER_TYPES = frozenset({"number", "float", "double", "integer", "int"})
_BOOLEAN_TYPES = frozenset({"boolean", "bool"})
_JSON_TYPES = frozenset({"json", "object", "array"})
_STRING_TYPES = frozenset({"string", "str", "text"})


# -----------------------------------------------------------------------------
# Result Types
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class Parameter:
    """A named argument as extracted from the buffer so far.

    Attributes:
        name: Parameter name from the ``name`` attribute.
        value: Cleaned textual value (CDATA unwrapped, whitespace trimmed).
        complete: ``True`` once the closing tag has been seen.
        streaming: ``True`` while more of the value may still arrive.
        declared_type: Value of the ``type`` attribute, if any.
    """

    name: str
    value: str = ""
    complete: bool = False
    streaming: bool = True
    declared_type: str | None = None

    def coerced(self, *, sniff_json: bool = False) -> Any:
        return coerce_value(self.value, self.declared_type, sniff_json=sniff_json)


@dataclass(slots=True, frozen=True)
class TagBalance:
    """Open/close tag counts per tag kind."""

    wrapper_open: int = 0
    wrapper_close: int = 0
    invoke_open: int = 0
    invoke_close: int = 0
    parameter_open: int = 0
    parameter_close: int = 0
    dangling_tag: bool = False

    @property
    def balanced(self) -> bool:
        return (
            not self.dangling_tag
            and self.wrapper_open <= self.wrapper_close
            and self.invoke_open <= self.invoke_close
            and self.parameter_open <= self.parameter_close
        )


@dataclass(slots=True)
class ParseResult:
    has_function: bool = False
    is_complete: bool = False
    invoke_name: str | None = None
    call_id: str | None = None
    params: list[Parameter] = field(default_factory=list)
    language_tag: str | None = None
    balance: TagBalance = field(default_factory=TagBalance)

    def param(self, name: str) -> Parameter | None:
        for parameter in self.params:
            if parameter.name == name:
                return parameter
        return None

    def arguments(self, *, sniff_json: bool = False) -> dict[str, Any]:
        """Return the coerced argument map in document order."""

        return {parameter.name: parameter.coerced(sniff_json=sniff_json) for parameter in self.params}


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def normalize_markup(text: str) -> str:
    """Replace stylized Unicode glyphs with their ASCII markup equivalents."""

    return text.translate(MARKUP_TRANSLATION)


def parse(buffer: str) -> ParseResult:
    """Parse the current buffer of a block.

    Safe to call on any prefix of well-formed markup; never raises for
    malformed or truncated input.
    """

    text = normalize_markup(buffer or "").lstrip()
    language_tag, body = extract_language_tag(text)
    if language_tag is not None and text.startswith("```"):
        body = strip_trailing_fence(body)
    masked = _mask_cdata(body)

    result = ParseResult(language_tag=language_tag)
    result.has_function = _FUNCTION_HINT_RE.search(masked) is not None
    if not result.has_function:
        return result

    result.balance = count_tags(masked, premasked=True)
    invoke_start = _INVOKE_START_RE.search(masked)
    if invoke_start is not None:
        tag_end = masked.find(">", invoke_start.end())
        attributes = _attributes(masked[invoke_start.end(): tag_end if tag_end != -1 else len(masked)])
        result.invoke_name = attributes.get("name") or None
        result.call_id = attributes.get("call_id") or None
        if tag_end != -1:
            region_end = masked.find("</invoke>", tag_end + 1)
            if region_end == -1:
                region_end = len(masked)
            result.params = list(_iter_parameters(body, masked, tag_end + 1, region_end))

    result.is_complete = result.balance.balanced and result.balance.invoke_open > 0
    return result


def count_tags(text: str, *, premasked: bool = False) -> TagBalance:
    """Count opening and closing tags per kind, ignoring CDATA bodies.

    A tag left unterminated at the end of *text* (``<invoke name="a"`` or
    ``</param``) is flagged as ``dangling_tag`` so a truncated prefix is never
    mistaken for a balanced document.
    """

    masked = text if premasked else _mask_cdata(normalize_markup(text))
    dangling = _has_dangling_tag(masked)
    return TagBalance(
        wrapper_open=len(_WRAPPER_OPEN_RE.findall(masked)),
        wrapper_close=len(_WRAPPER_CLOSE_RE.findall(masked)),
        invoke_open=len(_INVOKE_OPEN_RE.findall(masked)),
        invoke_close=len(_INVOKE_CLOSE_RE.findall(masked)),
        parameter_open=len(_PARAMETER_OPEN_RE.findall(masked)),
        parameter_close=len(_PARAMETER_CLOSE_RE.findall(masked)),
        dangling_tag=dangling,
    )


def _has_dangling_tag(masked: str) -> bool:
    last_open = masked.rfind("<")
    if last_open == -1 or masked.find(">", last_open) != -1:
        return False
    tail = masked[last_open + 1:]
    if not tail:
        return True
    match = _TAG_NAME_PREFIX_RE.match(tail)
    written = match.group(0) if match else ""
    if not written.strip("/"):
        return written == "/"
    return any(name.startswith(written) or written.startswith(name) for name in _TAG_NAMES)


def _iter_parameters(source: str, masked: str, start: int, end: int) -> Iterator[Parameter]:
    seen: dict[str, Parameter] = {}
    position = start
    while position < end:
        opening = masked.find("<parameter", position, end)
        if opening == -1:
            break
        tag_end = masked.find(">", opening, end)
        if tag_end == -1:
            # Opening tag still being written; surface it once its name is known.
            attributes = _attributes(masked[opening + len("<parameter"): end])
            name = attributes.get("name")
            if name and name not in seen:
                seen[name] = Parameter(name=name, declared_type=attributes.get("type"))
                yield seen[name]
            break
        attributes = _attributes(masked[opening + len("<parameter"): tag_end])
        name = attributes.get("name")
        value_start = tag_end + 1
        close_start, close_end = _find_parameter_close(masked, value_start, end)
        if close_start == -1:
            raw = _strip_tag_fragment(source[value_start:end])
            complete = False
            position = end
        else:
            raw = source[value_start:close_start]
            complete = True
            position = close_end
        if not name:
            continue
        parameter = Parameter(
            name=name,
            value=_clean_value(raw, complete=complete),
            complete=complete,
            streaming=not complete,
            declared_type=attributes.get("type"),
        )
        if name in seen:
            existing = seen[name]
            existing.value = parameter.value
            existing.complete = parameter.complete
            existing.streaming = parameter.streaming
            existing.declared_type = parameter.declared_type or existing.declared_type
            continue
        seen[name] = parameter
        yield parameter


def _find_parameter_close(masked: str, start: int, end: int) -> tuple[int, int]:
    depth = 1
    for match in _PARAMETER_TOKEN_RE.finditer(masked, start, end):
        if match.group(0) == "</parameter>":
            depth -= 1
            if depth == 0:
                return match.start(), match.end()
        else:
            depth += 1
    return -1, -1


def _attributes(fragment: str) -> dict[str, str]:
    return {key: value for key, value in _ATTRIBUTE_RE.findall(fragment)}


def _strip_tag_fragment(raw: str) -> str:
    for size in range(len(_CDATA_OPEN) - 1, 1, -1):
        if raw.endswith(_CDATA_OPEN[:size]):
            return raw[:-size]
    match = _TRAILING_TAG_FRAGMENT_RE.search(raw)
    if match is None:
        return raw
    partial = match.group(1)
    if any(name.startswith(partial) for name in _TAG_NAMES):
        return raw[: match.start()]
    return raw


def _mask_cdata(text: str) -> str:
    if _CDATA_OPEN not in text:
        return text
    return _CDATA_BLOCK_RE.sub(lambda match: " " * len(match.group(0)), text)


def _clean_value(raw: str, *, complete: bool) -> str:
    text = raw.strip()
    if not text.startswith(_CDATA_OPEN):
        return text
    unwrapped = unwrap_cdata(text, partial=not complete)
    return text if unwrapped is None else unwrapped


def unwrap_cdata(text: str, *, partial: bool = False) -> str | None:
    """Return the body of a ``<![CDATA[...]]>`` section.

    Returns ``None`` when *text* is not a terminated CDATA section, unless
    *partial* is set, in which case the body written so far is returned.
    """

    stripped = text.strip()
    if not stripped.startswith(_CDATA_OPEN):
        return None
    body_start = len(_CDATA_OPEN)
    close = stripped.find(_CDATA_CLOSE, body_start)
    if close != -1:
        return stripped[body_start:close]
    if partial:
        body = stripped[body_start:]
        # Hide a half-written terminator.
        for size in (2, 1):
            if body.endswith(_CDATA_CLOSE[:size]):
                return body[:-size]
        return body
    return None


# -----------------------------------------------------------------------------
# Type Coercion
# -----------------------------------------------------------------------------


def coerce_value(raw: str, declared_type: str | None = None, *, sniff_json: bool = False) -> Any:
    """Convert a textual parameter value to a Python value.

    A declared ``type`` attribute takes precedence; a value that does not
    satisfy its declared type is returned unchanged. Untyped values become
    ``int``/``float`` for plain numerals and ``bool`` for ``true``/``false``.
    Bracket-shaped untyped values stay strings unless *sniff_json* is set.
    """

    kind = (declared_type or "").strip().lower()
    if kind in _STRING_TYPES:
        return raw
    if kind in _NUMBER_TYPES:
        return _coerce_number(raw, integer=kind in {"integer", "int"})
    if kind in _BOOLEAN_TYPES:
        lowered = raw.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        return raw
    if kind in _JSON_TYPES:
        try:
            return json.loads(raw)
        except ValueError:
            LOGGER.debug("Value declared as %s is not valid JSON; keeping raw text", kind)
            return raw
    if kind:
        LOGGER.debug("Unknown declared parameter type %r; using untyped coercion", declared_type)

    stripped = raw.strip()
    if _INT_RE.fullmatch(stripped):
        return int(stripped)
    if _DECIMAL_RE.fullmatch(stripped):
        return float(stripped)
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if sniff_json and stripped[:1] in ("{", "["):
        try:
            return json.loads(stripped)
        except ValueError:
            return raw
    return raw


def _coerce_number(raw: str, *, integer: bool) -> Any:
    stripped = raw.strip()
    if _INT_RE.fullmatch(stripped):
        return int(stripped)
    try:
        number = float(stripped)
    except ValueError:
        return raw
    if math.isnan(number) or math.isinf(number):
        return raw
    if integer and number.is_integer():
        return int(number)
    return number
