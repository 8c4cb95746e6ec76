"""Block lifecycle manager.

Drives each candidate block through::

    STREAMING -> COMPLETE -> EXECUTING -> RESULTED | ERRORED

with the orthogonal ``stalled`` and ``resyncing`` flags. Growth events from
the content source are classified by the matcher, parsed after a short
debounce, confirmed by the stability tracker and watched by the stall
detector. Completed blocks are executed on request (or automatically) through
the execution cache and a tool invoker.

Example:
    manager = BlockLifecycleManager(
        scheduler=AsyncioScheduler(),
        renderer=my_renderer,
        invoker=RegistryToolInvoker(registry),
    )
    manager.on_growth("msg-1", text_so_far)
    ...
    record = await manager.execute("msg-1")
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Callable, Mapping

from ..execution.cache import ExecutionCache
from ..execution.errors import ErrorCategory, InvocationError, as_invocation_error
from ..execution.invoker import ConnectivityStatus, SchemaProvider, ToolInvoker, validate_arguments
from ..execution.types import ExecutionRecord, Invocation
from ..parsing.extractor import Parameter, normalize_markup, parse
from ..parsing.matcher import carry_tail, contains_start_marker, detect
from ..services import telemetry as telemetry_service
from ..services.settings import StreamSettings
from .renderer import NullRenderer, RendererAdapter
from .scheduler import Scheduler
from .stability import StabilityTracker
from .stall import StallDetector
from .types import Block, BlockArena, BlockHandle, BlockState, BlockStatus, merge_parameters

__all__ = ["BlockLifecycleManager", "LifecycleError", "BlockListener"]

LOGGER = logging.getLogger(__name__)

BlockListener = Callable[[str, BlockStatus], None]


class LifecycleError(RuntimeError):
    """Raised when an operation is not valid for a block's current state."""


class BlockLifecycleManager:
    """Owns every block of one content source and the trackers attached to them."""

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        renderer: RendererAdapter | None = None,
        invoker: ToolInvoker | None = None,
        cache: ExecutionCache | None = None,
        settings: StreamSettings | None = None,
        connectivity: ConnectivityStatus | None = None,
        schema_provider: SchemaProvider | None = None,
        auto_execute: bool = False,
    ) -> None:
        self._scheduler = scheduler
        self._settings = settings or StreamSettings()
        self._renderer: RendererAdapter = renderer or NullRenderer()
        self._invoker = invoker
        self._cache = cache or ExecutionCache(
            max_entries=self._settings.execution_cache_size,
            ttl_seconds=self._settings.execution_cache_ttl,
        )
        self._connectivity = connectivity or ConnectivityStatus()
        if schema_provider is None and isinstance(invoker, SchemaProvider):
            schema_provider = invoker
        self._schema_provider = schema_provider
        self._auto_execute = auto_execute
        self._arena = BlockArena()
        self._ids: dict[str, BlockHandle] = {}
        self._listeners: list[BlockListener] = []
        self._inflight: set[BlockHandle] = set()
        self._inflight_signatures: dict[str, asyncio.Future[None]] = {}
        self._stability = StabilityTracker(
            required_checks=self._settings.stability_checks,
            min_interval=self._settings.stability_interval,
            max_gap=self._settings.stability_max_gap,
            clock=scheduler.now,
        )
        self._stall = StallDetector(
            scheduler,
            on_abrupt_end=self._handle_abrupt_end,
            on_stalled=self._handle_stalled,
            on_recovered=self._handle_recovered,
            tick_interval=self._settings.stall_check_interval,
            stale_ticks=self._settings.stall_stale_ticks,
            stall_timeout=self._settings.stall_timeout,
        )

    # ------------------------------------------------------------------
    # Properties and queries
    # ------------------------------------------------------------------
    @property
    def settings(self) -> StreamSettings:
        return self._settings

    @property
    def cache(self) -> ExecutionCache:
        return self._cache

    @property
    def connectivity(self) -> ConnectivityStatus:
        return self._connectivity

    def handle(self, block_id: str) -> BlockHandle | None:
        return self._ids.get(block_id)

    def block_for(self, handle: BlockHandle) -> Block | None:
        return self._arena.get(handle)

    def get(self, block_id: str) -> Block | None:
        handle = self._ids.get(block_id)
        return self._arena.get(handle) if handle is not None else None

    def status(self, block_id: str) -> BlockStatus | None:
        block = self.get(block_id)
        return block.status() if block is not None else None

    def parameters(self, block_id: str) -> list[Parameter]:
        block = self.get(block_id)
        if block is None:
            return []
        return [replace(parameter) for parameter in block.parameters]

    def block_ids(self) -> list[str]:
        return list(self._ids)

    def add_listener(self, callback: BlockListener) -> None:
        """Call ``callback(block_id, status)`` after each committed state transition."""

        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: BlockListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Content source events
    # ------------------------------------------------------------------
    def on_growth(self, block_id: str, snapshot: str) -> BlockHandle | None:
        """Accept the latest full text of *block_id*.

        Creates the block when the first start marker appears; returns its
        handle, or ``None`` while the text holds no invocation markup.
        """

        block = self.get(block_id)
        if block is None:
            if not contains_start_marker(normalize_markup(snapshot)):
                return None
            return self._create(block_id, snapshot).handle

        if block.state.settled:
            LOGGER.debug("Ignoring growth for %s block %s", block.state.name, block_id)
            return block.handle
        if snapshot == block.snapshot:
            return block.handle

        processed = block.snapshot[: block.processed_length]
        rewritten = not snapshot.startswith(processed)
        now = self._scheduler.now()
        block.snapshot = snapshot
        block.last_growth_at = now
        self._stall.record_growth(block_id, len(snapshot))

        if rewritten:
            LOGGER.debug("Block %s content was rewritten; reparsing", block_id)
            block.processed_length = len(snapshot)
            self._schedule_update(block)
            return block.handle

        detection = detect(
            normalize_markup(snapshot[block.processed_length:]),
            carry=normalize_markup(carry_tail(processed)),
            threshold=self._settings.significance_threshold,
        )
        if detection.significant:
            block.processed_length = len(snapshot)
            self._schedule_update(block)
        return block.handle

    def resync(self, block_id: str, snapshot: str) -> BlockStatus | None:
        """Reconcile a force-refreshed block with what was already rendered.

        Streaming blocks treat this as ordinary growth. Settled blocks keep
        their state; parameter values only grow.
        """

        block = self.get(block_id)
        if block is None or block.state is BlockState.STREAMING:
            self.on_growth(block_id, snapshot)
            return self.status(block_id)

        block.resyncing = True
        self._render(block)
        result = parse(snapshot)
        merge_parameters(block.parameters, result.params)
        if len(snapshot) > len(block.snapshot):
            block.snapshot = snapshot
        block.resyncing = False
        self._render(block)
        self._emit("block.resynced", block)
        return block.status()

    def destroy(self, block_id: str) -> bool:
        """Forget *block_id*; pending timers stop and in-flight results are dropped."""

        handle = self._ids.pop(block_id, None)
        if handle is None:
            return False
        block = self._arena.release(handle)
        self._stall.discard(block_id)
        self._stability.discard(block_id)
        if block is not None:
            block.cancel_timers()
            self._emit("block.destroyed", block)
        return True

    def close(self) -> None:
        for block_id in list(self._ids):
            self.destroy(block_id)

    def flush(self, block_id: str | None = None) -> None:
        """Parse pending content now instead of waiting for the debounce timer."""

        targets = [block_id] if block_id is not None else list(self._ids)
        for target in targets:
            block = self.get(target)
            if block is None or block.state.settled:
                continue
            if block.debounce_timer is not None:
                block.debounce_timer.cancel()
                block.debounce_timer = None
            block.processed_length = len(block.snapshot)
            self._run_update(block.handle)

    def force_complete(self, block_id: str) -> bool:
        """Complete a streaming block with the longest parameter values seen so far."""

        block = self.get(block_id)
        if block is None or block.state is not BlockState.STREAMING:
            return False
        result = parse(block.snapshot)
        self._absorb(block, result)
        self._complete(block, forced=True)
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def execute(self, block_id: str) -> ExecutionRecord | None:
        """Execute a completed block, reusing a cached result when possible.

        Returns the execution record, or ``None`` when the block is unknown,
        already executing, or was destroyed before the invocation finished.

        Raises:
            LifecycleError: If the block is still streaming or no invoker is configured.
        """

        block = self.get(block_id)
        if block is None:
            return None
        if block.state.terminal:
            return block.record
        if block.state is BlockState.EXECUTING or block.handle in self._inflight:
            LOGGER.debug("Block %s is already executing", block_id)
            return None
        if block.state is BlockState.STREAMING or block.invocation is None:
            raise LifecycleError(f"Block {block_id} is not complete")

        handle = block.handle
        invocation = block.invocation
        self._inflight.add(handle)
        try:
            return await self._execute(handle, invocation)
        finally:
            self._inflight.discard(handle)

    async def _execute(self, handle: BlockHandle, invocation: Invocation) -> ExecutionRecord | None:
        block = self._arena.get(handle)
        if block is None:
            return None

        pending = self._inflight_signatures.get(invocation.content_signature)
        if pending is not None:
            self._transition(block, BlockState.EXECUTING)
            await asyncio.shield(pending)
            block = self._arena.get(handle)
            if block is None:
                return None

        cached = self._cache.find(invocation)
        if cached is not None:
            return self._resolve_from_cache(block, invocation, cached)

        problems = self._validate(invocation)
        if problems:
            error = InvocationError(
                f"Invalid arguments for {invocation.function_name}: {'; '.join(problems)}",
                category=ErrorCategory.TOOL,
                tool_name=invocation.function_name,
            )
            return self._fail(block, invocation, error)

        if self._invoker is None:
            raise LifecycleError("No tool invoker configured")

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._inflight_signatures[invocation.content_signature] = future
        self._transition(block, BlockState.EXECUTING)
        result: Any = None
        failure: InvocationError | None = None
        try:
            result = await self._invoker.invoke(invocation.function_name, invocation.args)
        except InvocationError as exc:
            failure = exc
        except asyncio.CancelledError:
            current = self._arena.get(handle)
            if current is not None:
                cancelled = InvocationError(
                    "Invocation cancelled",
                    category=ErrorCategory.TOOL,
                    tool_name=invocation.function_name,
                )
                self._fail(current, invocation, cancelled)
            raise
        except Exception as exc:
            LOGGER.warning("Invoker raised %s for %s", exc.__class__.__name__, invocation.function_name)
            failure = as_invocation_error(exc, tool_name=invocation.function_name)
        finally:
            self._inflight_signatures.pop(invocation.content_signature, None)
            if not future.done():
                future.set_result(None)

        current = self._arena.get(handle)
        if current is None:
            LOGGER.debug("Block for %s was destroyed mid-invocation; dropping outcome", invocation.call_id)
            return None
        if failure is not None:
            self._connectivity.record_failure(failure)
            return self._fail(current, invocation, failure)

        self._connectivity.record_success()
        record = self._cache.record(invocation, result=result)
        current.record = record
        self._transition(current, BlockState.RESULTED)
        self._emit("block.executed", current)
        return record

    def _resolve_from_cache(
        self,
        block: Block,
        invocation: Invocation,
        cached: ExecutionRecord,
    ) -> ExecutionRecord:
        record = cached if cached.call_id == invocation.call_id else self._cache.alias(invocation.call_id, cached)
        LOGGER.info(
            "Reusing result of %s for %s (call_id=%s)",
            cached.call_id,
            invocation.function_name,
            invocation.call_id,
        )
        block.record = record
        block.from_cache = True
        self._transition(block, BlockState.RESULTED)
        self._emit("block.executed", block, extra={"from_cache": True})
        return record

    def _fail(self, block: Block, invocation: Invocation, error: InvocationError) -> ExecutionRecord:
        record = self._cache.record(
            invocation,
            error=error.message,
            error_category=error.category.value,
        )
        block.record = record
        block.error = error.message
        block.error_category = error.category.value
        self._transition(block, BlockState.ERRORED)
        self._emit("block.failed", block, extra={"category": error.category.value})
        return record

    def _validate(self, invocation: Invocation) -> list[str]:
        if self._schema_provider is None:
            return []
        schema = self._schema_provider.schema_for(invocation.function_name)
        return validate_arguments(schema, invocation.args)

    # ------------------------------------------------------------------
    # Update pipeline
    # ------------------------------------------------------------------
    def _create(self, block_id: str, snapshot: str) -> Block:
        block = self._arena.allocate(block_id, now=self._scheduler.now())
        self._ids[block_id] = block.handle
        block.snapshot = snapshot
        block.processed_length = len(snapshot)
        self._stall.track(block_id, len(snapshot))
        self._emit("block.created", block)
        self._schedule_update(block)
        return block

    def _schedule_update(self, block: Block, delay: float | None = None) -> None:
        # Trailing-edge coalescing: one pending parse per block at a time.
        if block.debounce_timer is not None and not block.debounce_timer.cancelled():
            return
        wait = self._settings.debounce_interval if delay is None else delay
        block.debounce_timer = self._scheduler.call_later(wait, self._run_update, block.handle)

    def _run_update(self, handle: BlockHandle) -> None:
        block = self._arena.get(handle)
        if block is None:
            return
        if block.debounce_timer is not None:
            # This parse reads the newest snapshot, so a queued one is redundant.
            block.debounce_timer.cancel()
            block.debounce_timer = None
        if block.state.settled:
            return
        now = self._scheduler.now()
        if not self._acquire(block, now):
            block.pending_update = True
            return
        try:
            self._update(block, now)
        finally:
            block.busy = False
        if block.pending_update and self._arena.get(handle) is block and not block.state.settled:
            block.pending_update = False
            self._schedule_update(block, delay=0.0)

    def _acquire(self, block: Block, now: float) -> bool:
        if block.busy:
            held = now - block.busy_since
            if held < self._settings.busy_timeout:
                LOGGER.debug("Block %s busy; queueing update", block.id)
                return False
            LOGGER.warning("Block %s busy flag held for %.2fs; taking over", block.id, held)
        block.busy = True
        block.busy_since = now
        return True

    def _update(self, block: Block, now: float) -> None:
        if block.confirm_timer is not None:
            block.confirm_timer.cancel()
            block.confirm_timer = None
        result = parse(block.snapshot)
        self._absorb(block, result)
        self._stall.update_balance(block.id, unbalanced=not result.is_complete)
        stable = self._stability.record(block.id, result.is_complete, now=now)
        if result.is_complete and stable:
            self._complete(block, forced=False)
            return
        if result.is_complete and block.confirm_timer is None:
            block.confirm_timer = self._scheduler.call_later(
                self._stability.min_interval,
                self._run_update,
                block.handle,
            )
        self._render(block)

    def _absorb(self, block: Block, result: Any) -> None:
        if result.invoke_name and not block.function_name:
            block.function_name = result.invoke_name
        if result.call_id and not block.call_id:
            block.call_id = result.call_id
        if result.language_tag:
            block.language_tag = result.language_tag
        merge_parameters(block.parameters, result.params)

    def _complete(self, block: Block, *, forced: bool) -> None:
        if block.state is not BlockState.STREAMING:
            return
        block.cancel_timers()
        self._stall.discard(block.id)
        self._stability.discard(block.id)
        if forced:
            block.abruptly_ended = True
            for parameter in block.parameters:
                parameter.complete = True
                parameter.streaming = False

        if not block.function_name:
            block.error = "Stream ended before a tool name was received"
            block.error_category = ErrorCategory.TOOL.value
            self._transition(block, BlockState.ERRORED)
            self._emit("block.failed", block, extra={"category": block.error_category})
            return

        if not block.call_id:
            block.call_id = f"{block.id}-{uuid.uuid4().hex[:8]}"
        sniff = self._settings.legacy_json_sniffing
        args = {parameter.name: parameter.coerced(sniff_json=sniff) for parameter in block.parameters}
        block.invocation = Invocation.create(block.function_name, block.call_id, args)
        self._transition(block, BlockState.COMPLETE)
        self._emit("block.completed", block, extra={"forced": forced})
        if self._auto_execute and self._invoker is not None:
            self._scheduler.spawn(self.execute(block.id))

    def _transition(self, block: Block, state: BlockState) -> None:
        if block.state is state:
            return
        LOGGER.debug("Block %s: %s -> %s", block.id, block.state.name, state.name)
        block.state = state
        self._render(block)
        status = block.status()
        for callback in list(self._listeners):
            try:
                callback(block.id, status)
            except Exception:
                LOGGER.exception("Block listener %s failed for %s", callback, block.id)

    def _render(self, block: Block) -> None:
        status = block.status()
        parameters = tuple(replace(parameter) for parameter in block.parameters)
        frame = (
            status,
            tuple(
                (p.name, p.value, p.complete, p.streaming, p.declared_type) for p in parameters
            ),
            block.invocation,
        )
        if frame == block.last_frame:
            return
        block.last_frame = frame
        try:
            self._renderer.apply_block_state(block.id, status, parameters, block.invocation)
        except Exception:
            LOGGER.exception("Renderer failed to apply state for block %s", block.id)

    # ------------------------------------------------------------------
    # Stall callbacks
    # ------------------------------------------------------------------
    def _handle_stalled(self, block_id: str) -> None:
        block = self.get(block_id)
        if block is None or block.state is not BlockState.STREAMING:
            return
        # A complete buffer that merely waits on confirmation is not stalled.
        if parse(block.snapshot).is_complete:
            return
        block.stalled = True
        self._render(block)
        self._emit("block.stalled", block)

    def _handle_recovered(self, block_id: str) -> None:
        block = self.get(block_id)
        if block is None or not block.stalled:
            return
        block.stalled = False
        self._render(block)
        self._emit("block.recovered", block)

    def _handle_abrupt_end(self, block_id: str) -> None:
        block = self.get(block_id)
        if block is None or block.state is not BlockState.STREAMING:
            return
        LOGGER.info("Forcing completion of block %s after abrupt end", block_id)
        self._emit("block.abrupt_end", block)
        self.force_complete(block_id)

    def _emit(self, event_name: str, block: Block, *, extra: Mapping[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {
            "block_id": block.id,
            "state": block.state.name.lower(),
            "function_name": block.function_name,
            "call_id": block.call_id,
        }
        if extra:
            payload.update(extra)
        telemetry_service.emit(event_name, payload)
