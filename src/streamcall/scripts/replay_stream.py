"""Replay a recorded transcript through the block lifecycle manager."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..execution.invoker import HttpToolInvoker, ToolInvoker
from ..services.settings import SettingsStore, StreamSettings
from ..streaming.lifecycle import BlockLifecycleManager
from ..streaming.renderer import LoggingRenderer
from ..streaming.scheduler import ManualScheduler
from ..utils.logging import configure_from_settings

LOGGER = logging.getLogger(__name__)


class EchoInvoker:
    """Returns the call it receives; lets a replay exercise execution offline."""

    async def invoke(self, function_name: str, args: Mapping[str, Any]) -> Any:
        return {"tool": function_name, "arguments": dict(args)}


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Replay a transcript in chunks and report the detected tool calls.")
    parser.add_argument("file", type=Path, help="Transcript to replay. Use '-' to read stdin.")
    parser.add_argument("--chunk-size", type=int, default=16, help="Characters delivered per growth event.")
    parser.add_argument(
        "--interval",
        type=float,
        default=0.03,
        help="Simulated seconds between growth events.",
    )
    parser.add_argument("--block-id", default="replay", help="Identifier used for the replayed block.")
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Execute completed blocks on the configured tool endpoint, or with an echo invoker when none is set.",
    )
    parser.add_argument("--settings", type=Path, help="Settings file to load instead of the default location.")
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    parser.add_argument("--log-dir", type=Path, help="Directory for the rotating log file.")
    args = parser.parse_args(argv)

    if args.chunk_size < 1 or args.interval < 0:
        print("--chunk-size must be >= 1 and --interval must be >= 0.", file=sys.stderr)
        return 2

    payload = _load_text(args.file)
    if not payload:
        print("No transcript text provided.", file=sys.stderr)
        return 1

    settings = SettingsStore(args.settings).load()
    configure_from_settings(settings, level=args.log_level, log_dir=args.log_dir, force=True)

    invoker = _build_invoker(settings) if args.execute else None
    scheduler = ManualScheduler()
    manager = BlockLifecycleManager(
        scheduler=scheduler,
        renderer=LoggingRenderer(),
        invoker=invoker,
        settings=settings,
        auto_execute=args.execute,
    )
    _replay(manager, scheduler, payload, block_id=args.block_id, chunk_size=args.chunk_size, interval=args.interval)
    scheduler.advance(_settle_time(settings))
    asyncio.run(_settle(scheduler, invoker))

    status = manager.status(args.block_id)
    if status is None:
        print(f"{args.block_id}: no tool invocation found")
        return 0
    print(f"{args.block_id}: {status.state.name.lower()}")
    print(f"  function: {status.function_name or '-'}")
    print(f"  call_id: {status.call_id or '-'}")
    for parameter in manager.parameters(args.block_id):
        marker = "" if parameter.complete else " (partial)"
        print(f"  {parameter.name} = {parameter.value!r}{marker}")
    if status.abruptly_ended:
        print("  ended abruptly")
    if status.error:
        print(f"  error: {status.error}")
    elif status.result is not None:
        print(f"  result: {status.result!r}")
    manager.close()
    return 0


def _build_invoker(settings: StreamSettings) -> ToolInvoker:
    if settings.tool_endpoint:
        LOGGER.info("Executing replayed calls on %s", settings.tool_endpoint)
        return HttpToolInvoker.from_settings(settings)
    return EchoInvoker()


async def _settle(scheduler: ManualScheduler, invoker: ToolInvoker | None) -> None:
    try:
        await scheduler.drain()
    finally:
        if isinstance(invoker, HttpToolInvoker):
            await invoker.aclose()


def _load_text(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    return path.read_text(encoding="utf-8")


def _replay(
    manager: BlockLifecycleManager,
    scheduler: ManualScheduler,
    text: str,
    *,
    block_id: str,
    chunk_size: int,
    interval: float,
) -> None:
    for end in range(chunk_size, len(text) + chunk_size, chunk_size):
        manager.on_growth(block_id, text[:end])
        scheduler.advance(interval)
    LOGGER.debug("Replayed %d characters for %s", len(text), block_id)


def _settle_time(settings: StreamSettings) -> float:
    # Long enough for stability confirmation and a full stall sequence.
    stall = settings.stall_check_interval * (settings.stall_stale_ticks + 1) + settings.stall_timeout
    stability = settings.debounce_interval + settings.stability_interval * (settings.stability_checks + 1)
    return max(stall, stability) + 1.0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
