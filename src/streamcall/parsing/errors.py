"""Parsing error types."""

from __future__ import annotations

from typing import Any

__all__ = ["ParseError"]


class ParseError(ValueError):
    """Raised when notation or markup cannot be parsed.

    Attributes:
        fragment: The offending piece of input, for display next to the message.
        code: Short machine-readable reason.
    """

    def __init__(self, message: str, *, fragment: str = "", code: str = "malformed") -> None:
        super().__init__(message)
        self.message = message
        self.fragment = fragment
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "fragment": self.fragment}

    def __str__(self) -> str:
        if self.fragment:
            return f"{self.message}: {self.fragment!r}"
        return self.message
