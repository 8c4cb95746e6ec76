"""Detects and strips a leading code-fence or comment language tag."""

from __future__ import annotations

import re

__all__ = ["KNOWN_LANGUAGES", "extract_language_tag", "strip_trailing_fence"]

KNOWN_LANGUAGES: frozenset[str] = frozenset(
    {
        "xml",
        "html",
        "python",
        "javascript",
        "js",
        "ruby",
        "bash",
        "shell",
        "sh",
        "css",
        "json",
        "java",
        "c",
        "cpp",
        "csharp",
        "php",
        "typescript",
        "ts",
        "go",
        "rust",
        "swift",
        "kotlin",
        "sql",
    }
)

_PREFIX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^```(\w+)[\s:]?[ \t]*\n"),
    re.compile(r"^\[(\w+)\][ \t]*\n"),
    re.compile(r"^//\s*language:\s*(\w+)[ \t]*\n", re.IGNORECASE),
    re.compile(r"^#\s*language:\s*(\w+)[ \t]*\n", re.IGNORECASE),
    re.compile(r"^<!--\s*language:\s*(\w+)\s*-->[ \t]*\n", re.IGNORECASE),
)
_TRAILING_FENCE_RE = re.compile(r"\n?```\s*$")


def extract_language_tag(content: str) -> tuple[str | None, str]:
    """Split a recognised language tag off the front of *content*.

    Returns ``(tag, remainder)``; the tag is lower-cased and only accepted when
    it names a known language, otherwise ``(None, content)`` is returned.
    """

    for pattern in _PREFIX_PATTERNS:
        match = pattern.match(content)
        if match is None:
            continue
        tag = match.group(1).lower()
        if tag in KNOWN_LANGUAGES:
            return tag, content[match.end():]
    return None, content


def strip_trailing_fence(content: str) -> str:
    return _TRAILING_FENCE_RE.sub("", content)
