"""Execution cache that prevents the same invocation from running twice."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import replace
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict

from ..services import telemetry as telemetry_service
from .types import ExecutionRecord, Invocation, content_signature

__all__ = ["ExecutionCache", "content_signature"]

LOGGER = logging.getLogger(__name__)
_PERSIST_VERSION = 1


class ExecutionCache:
    """Records executions under both their call id and their content signature.

    Only successful executions are reused by signature; failed ones stay
    visible in :meth:`history` and by call id so a retry can still run.
    """

    def __init__(
        self,
        *,
        max_entries: int = 256,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max(1, int(max_entries))
        self._ttl_seconds = None if ttl_seconds is None else max(0.0, float(ttl_seconds))
        self._clock = clock
        self._by_call: Dict[str, ExecutionRecord] = {}
        self._by_signature: Dict[str, str] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def lookup(self, key: str) -> ExecutionRecord | None:
        """Find a record by call id, falling back to content signature."""

        record = self.lookup_call(key, emit_miss=False)
        if record is None:
            record = self.lookup_signature(key, emit_miss=False)
        if record is None:
            self._emit("execution.cache_miss", None, extra={"key": key})
        return record

    def lookup_call(self, call_id: str, *, emit_miss: bool = True) -> ExecutionRecord | None:
        with self._lock:
            record = self._live_locked(call_id)
        if record is None:
            if emit_miss:
                self._emit("execution.cache_miss", None, extra={"call_id": call_id})
            return None
        self._emit("execution.cache_hit", record, extra={"index": "call_id"})
        return record

    def lookup_signature(self, signature: str, *, emit_miss: bool = True) -> ExecutionRecord | None:
        with self._lock:
            call_id = self._by_signature.get(signature)
            record = self._live_locked(call_id) if call_id is not None else None
            if record is None and call_id is not None:
                self._by_signature.pop(signature, None)
        if record is None:
            if emit_miss:
                self._emit("execution.cache_miss", None, extra={"content_signature": signature})
            return None
        self._emit("execution.cache_hit", record, extra={"index": "content_signature"})
        return record

    def find(self, invocation: Invocation) -> ExecutionRecord | None:
        """Return a reusable record for *invocation*: a success with the same content signature."""

        record = self.lookup_signature(invocation.content_signature)
        if record is not None and record.succeeded:
            return record
        return None

    def was_executed(self, call_id: str | None = None, signature: str | None = None) -> bool:
        with self._lock:
            if call_id is not None and self._live_locked(call_id) is not None:
                return True
            if signature is not None and signature in self._by_signature:
                return self._live_locked(self._by_signature[signature]) is not None
        return False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def record(
        self,
        invocation: Invocation,
        *,
        result: Any = None,
        error: str | None = None,
        error_category: str | None = None,
    ) -> ExecutionRecord:
        """Store the outcome of *invocation* and return the new record."""

        entry = ExecutionRecord(
            call_id=invocation.call_id,
            function_name=invocation.function_name,
            content_signature=invocation.content_signature,
            args=dict(invocation.args),
            result=result,
            error=error,
            error_category=error_category,
            timestamp=self._clock(),
        )
        self._store(entry)
        return entry

    def alias(self, call_id: str, record: ExecutionRecord) -> ExecutionRecord:
        """Make *record* reachable under another call id (a deduplicated block)."""

        aliased = replace(record, call_id=call_id, timestamp=self._clock())
        with self._lock:
            self._purge_expired_locked()
            self._by_call[call_id] = aliased
            self._enforce_capacity_locked()
        self._emit("execution.cache_alias", aliased, extra={"source_call_id": record.call_id})
        return aliased

    def remove(self, call_id: str) -> bool:
        with self._lock:
            return self._evict_locked(call_id)

    def clear(self) -> None:
        with self._lock:
            self._by_call.clear()
            self._by_signature.clear()

    def history(self, *, function_name: str | None = None, limit: int | None = None) -> list[ExecutionRecord]:
        """Return records newest first, optionally filtered by function name."""

        with self._lock:
            self._purge_expired_locked()
            records = sorted(self._by_call.values(), key=lambda entry: entry.timestamp, reverse=True)
        if function_name is not None:
            records = [entry for entry in records if entry.function_name == function_name]
        if limit is not None:
            records = records[: max(0, limit)]
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_call)

    def __contains__(self, key: str) -> bool:
        return self.was_executed(call_id=key, signature=key)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, path: str | Path) -> Path:
        """Write every live record to *path* as JSON."""

        target = Path(path)
        with self._lock:
            self._purge_expired_locked()
            records = [entry.to_dict() for entry in self._by_call.values()]
        body = json.dumps({"version": _PERSIST_VERSION, "records": records}, indent=2, default=str)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(target)
        LOGGER.debug("Saved %d execution records to %s", len(records), target)
        return target

    def load(self, path: str | Path) -> int:
        """Merge records from *path*; returns how many were loaded."""

        source = Path(path)
        if not source.exists():
            return 0
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Execution history %s is not valid JSON: %s", source, exc)
            return 0
        entries = payload.get("records") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            LOGGER.warning("Execution history %s has no record list", source)
            return 0
        loaded = 0
        for raw in entries:
            try:
                entry = ExecutionRecord.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed execution record in %s: %s", source, exc)
                continue
            self._store(entry, emit=False)
            loaded += 1
        return loaded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _store(self, entry: ExecutionRecord, *, emit: bool = True) -> None:
        with self._lock:
            self._purge_expired_locked()
            self._by_call[entry.call_id] = entry
            if entry.succeeded:
                self._by_signature[entry.content_signature] = entry.call_id
            self._enforce_capacity_locked()
        if emit:
            self._emit("execution.cache_store", entry)

    def _live_locked(self, call_id: str) -> ExecutionRecord | None:
        entry = self._by_call.get(call_id)
        if entry is None:
            return None
        if self._expired(entry):
            self._evict_locked(call_id)
            return None
        return entry

    def _expired(self, entry: ExecutionRecord) -> bool:
        return bool(self._ttl_seconds) and self._clock() - entry.timestamp >= self._ttl_seconds

    def _purge_expired_locked(self) -> None:
        if not self._ttl_seconds:
            return
        stale = [call_id for call_id, entry in self._by_call.items() if self._expired(entry)]
        for call_id in stale:
            self._evict_locked(call_id)

    def _enforce_capacity_locked(self) -> None:
        surplus = len(self._by_call) - self._max_entries
        if surplus <= 0:
            return
        order = sorted(self._by_call.values(), key=lambda entry: entry.timestamp)
        for entry in order[:surplus]:
            self._evict_locked(entry.call_id)

    def _evict_locked(self, call_id: str) -> bool:
        entry = self._by_call.pop(call_id, None)
        if entry is None:
            return False
        if self._by_signature.get(entry.content_signature) == call_id:
            self._by_signature.pop(entry.content_signature, None)
        self._emit("execution.cache_evicted", entry)
        return True

    def _emit(
        self,
        event_name: str,
        record: ExecutionRecord | None,
        *,
        extra: dict[str, object] | None = None,
    ) -> None:
        payload: dict[str, object] = dict(extra or {})
        if record is not None:
            payload.setdefault("call_id", record.call_id)
            payload.setdefault("function_name", record.function_name)
            payload.setdefault("content_signature", record.content_signature)
        telemetry_service.emit(event_name, payload)
