"""Renderer adapter contract and the adapters shipped with the library."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from ..execution.types import Invocation
from ..parsing.extractor import Parameter
from .types import BlockStatus

__all__ = ["RendererAdapter", "NullRenderer", "LoggingRenderer"]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class RendererAdapter(Protocol):
    """Receives block updates. Never called twice in a row with identical content."""

    def apply_block_state(
        self,
        block_id: str,
        status: BlockStatus,
        parameters: Sequence[Parameter],
        invocation: Invocation | None = None,
    ) -> None:
        ...


class NullRenderer:
    """Discards every update; for headless use."""

    def apply_block_state(
        self,
        block_id: str,
        status: BlockStatus,
        parameters: Sequence[Parameter],
        invocation: Invocation | None = None,
    ) -> None:
        return None


class LoggingRenderer:
    """Writes one log line per update."""

    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.INFO) -> None:
        self._logger = logger or LOGGER
        self._level = level

    def apply_block_state(
        self,
        block_id: str,
        status: BlockStatus,
        parameters: Sequence[Parameter],
        invocation: Invocation | None = None,
    ) -> None:
        flags = [
            name
            for name, enabled in (
                ("stalled", status.stalled),
                ("resyncing", status.resyncing),
                ("abrupt", status.abruptly_ended),
                ("cached", status.from_cache),
            )
            if enabled
        ]
        summary = ", ".join(
            f"{parameter.name}={parameter.value!r}{'' if parameter.complete else '…'}" for parameter in parameters
        )
        self._logger.log(
            self._level,
            "[%s] %s %s(%s)%s%s",
            block_id,
            status.state.name,
            status.function_name or "?",
            summary,
            f" [{' '.join(flags)}]" if flags else "",
            f" error={status.error!r}" if status.error else "",
        )
