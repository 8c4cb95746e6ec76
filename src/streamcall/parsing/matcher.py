"""Classifies newly appended stream content by the markup it contains.

Only the delta since the last processed length is inspected, so the cost of a
growth event is proportional to the new bytes rather than the whole buffer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "ChunkType",
    "ChunkDetection",
    "DEFAULT_SIGNIFICANCE_THRESHOLD",
    "MAX_MARKER_CARRY",
    "detect",
    "carry_tail",
    "contains_start_marker",
]

DEFAULT_SIGNIFICANCE_THRESHOLD = 20

# Longest fixed marker prefix we need to see across a chunk boundary.
MAX_MARKER_CARRY = len("</function_calls>") - 1


class ChunkType(str, Enum):
    FUNCTION_START = "function_start"
    INVOKE = "invoke"
    PARAMETER = "parameter"
    CLOSING = "closing"
    CONTENT = "content"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class ChunkDetection:
    type: ChunkType
    significant: bool
    position: int = -1

    @property
    def structural(self) -> bool:
        return self.type in _STRUCTURAL


_STRUCTURAL = frozenset({ChunkType.FUNCTION_START, ChunkType.INVOKE, ChunkType.PARAMETER, ChunkType.CLOSING})

# Alternation order encodes the outermost-first tie-break at equal positions.
_MARKER_RE = re.compile(
    r"(?P<function_start><function_calls>)"
    r"|(?P<invoke><invoke\b[^>]*?\bname=\"[^\"]*\")"
    r"|(?P<parameter><parameter\b[^>]*?\bname=\"[^\"]*\"[^>]*>)"
    r"|(?P<closing></(?:function_calls|invoke|parameter)>)"
)
_START_RE = re.compile(r"<function_calls>|<invoke\b[^>]*?\bname=")


def detect(
    delta: str,
    *,
    carry: str = "",
    threshold: int = DEFAULT_SIGNIFICANCE_THRESHOLD,
) -> ChunkDetection:
    """Classify *delta*, the text appended since the previous call.

    Args:
        delta: Newly appended text.
        carry: Tail of previously processed text (see :func:`carry_tail`); lets
            a marker split across two deltas be recognised. Matches lying
            entirely inside the carry are ignored.
        threshold: Content-only deltas longer than this are significant.

    Returns:
        The earliest marker in the delta, or a content/none classification.
    """

    if not delta:
        return ChunkDetection(ChunkType.NONE, False)
    text = carry + delta if carry else delta
    offset = len(carry) if carry else 0
    for match in _MARKER_RE.finditer(text):
        if match.end() <= offset:
            continue
        kind = ChunkType(match.lastgroup)
        return ChunkDetection(kind, True, max(0, match.start() - offset))
    if delta.strip():
        return ChunkDetection(ChunkType.CONTENT, len(delta) > threshold)
    return ChunkDetection(ChunkType.NONE, False)


def carry_tail(processed: str) -> str:
    """Return the bounded tail of *processed* text to pass as ``carry``."""

    if len(processed) <= MAX_MARKER_CARRY:
        return processed
    return processed[-MAX_MARKER_CARRY:]


def contains_start_marker(text: str) -> bool:
    """Return ``True`` when *text* contains a wrapper or invoke opening marker."""

    return _START_RE.search(text) is not None
