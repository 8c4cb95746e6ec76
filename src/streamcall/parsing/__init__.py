"""Markup detection, extraction and compact schema notation."""

from .errors import ParseError
from .extractor import (
    Parameter,
    ParseResult,
    TagBalance,
    coerce_value,
    count_tags,
    normalize_markup,
    parse,
    unwrap_cdata,
)
from .language import KNOWN_LANGUAGES, extract_language_tag
from .matcher import ChunkDetection, ChunkType, carry_tail, contains_start_marker, detect
from . import schema_notation

__all__ = [
    "ChunkDetection",
    "ChunkType",
    "KNOWN_LANGUAGES",
    "Parameter",
    "ParseError",
    "ParseResult",
    "TagBalance",
    "carry_tail",
    "coerce_value",
    "contains_start_marker",
    "count_tags",
    "detect",
    "extract_language_tag",
    "normalize_markup",
    "parse",
    "schema_notation",
    "unwrap_cdata",
]
