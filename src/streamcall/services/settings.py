"""Settings dataclass and JSON persistence with environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = ["StreamSettings", "SettingsStore", "default_settings_path"]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".streamcall"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "STREAMCALL_TOOL_ENDPOINT": "tool_endpoint",
    "STREAMCALL_LOG_LEVEL": "log_level",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "STREAMCALL_DEBUG_LOGGING": "debug_logging",
    "STREAMCALL_LEGACY_JSON_SNIFFING": "legacy_json_sniffing",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "STREAMCALL_DEBOUNCE_INTERVAL": "debounce_interval",
    "STREAMCALL_STABILITY_INTERVAL": "stability_interval",
    "STREAMCALL_STALL_TIMEOUT": "stall_timeout",
    "STREAMCALL_STALL_CHECK_INTERVAL": "stall_check_interval",
    "STREAMCALL_INVOKE_TIMEOUT": "invoke_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "STREAMCALL_SIGNIFICANCE_THRESHOLD": "significance_threshold",
    "STREAMCALL_CACHE_SIZE": "execution_cache_size",
    "STREAMCALL_MAX_RETRIES": "max_retries",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True, frozen=True)
class StreamSettings:
    """Tunables for the streaming pipeline.

    Time values are in seconds.

    Attributes:
        debounce_interval: Delay before a significant growth event is parsed.
        significance_threshold: Content-only deltas longer than this count as significant.
        stability_checks: Consecutive positive completeness checks required.
        stability_interval: Minimum spacing between counted positive checks.
        stability_max_gap: A gap longer than this restarts the stability count.
        stall_check_interval: Tick period of the stall detector.
        stall_stale_ticks: Ticks without growth (while unbalanced) before an abrupt end.
        stall_timeout: Absolute no-growth time before a block shows as stalled.
        busy_timeout: A per-block busy flag older than this is considered stale.
        legacy_json_sniffing: Parse untyped bracket-shaped values as JSON.
        execution_cache_size: Maximum records kept by the execution cache.
        execution_cache_ttl: Optional record lifetime; ``None`` keeps records until evicted.
        invoke_timeout: Per-invocation timeout for in-process tools and HTTP requests.
        max_retries: Attempts made by the HTTP invoker on connection errors.
        retry_min_seconds: Backoff multiplier for HTTP retries.
        retry_max_seconds: Backoff ceiling for HTTP retries.
        tool_endpoint: Base URL of a remote tool server, if any.
        debug_logging: Force DEBUG level in :func:`streamcall.utils.logging.configure_from_settings`.
        log_level: Default log level name.
    """

    debounce_interval: float = 0.05
    significance_threshold: int = 20
    stability_checks: int = 2
    stability_interval: float = 0.2
    stability_max_gap: float = 1.0
    stall_check_interval: float = 1.0
    stall_stale_ticks: int = 3
    stall_timeout: float = 3.0
    busy_timeout: float = 1.0
    legacy_json_sniffing: bool = False
    execution_cache_size: int = 256
    execution_cache_ttl: float | None = None
    invoke_timeout: float | None = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    tool_endpoint: str = ""
    debug_logging: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.debounce_interval < 0:
            raise ValueError("debounce_interval must be >= 0")
        if self.stability_checks < 1:
            raise ValueError("stability_checks must be >= 1")
        if self.stall_check_interval <= 0:
            raise ValueError("stall_check_interval must be > 0")
        if self.stall_stale_ticks < 1:
            raise ValueError("stall_stale_ticks must be >= 1")
        if self.stability_max_gap < self.stability_interval:
            raise ValueError("stability_max_gap must not be shorter than stability_interval")

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_logging else self.log_level


def default_settings_path() -> Path:
    """Return the default on-disk settings location."""

    return _DEFAULT_SETTINGS_PATH


class SettingsStore:
    """Persistence adapter for :class:`StreamSettings`."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> StreamSettings:
        """Load settings from disk, applying explicit and environment overrides."""

        payload = self._read_payload()
        settings = StreamSettings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = StreamSettings(**data)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Settings payload in %s was rejected: %s", self._path, exc)
                settings = StreamSettings()

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="caller")

        return self._apply_env_overrides(settings)

    def save(self, settings: StreamSettings) -> Path:
        """Persist settings to disk with an atomic file replace."""

        data: Dict[str, Any] = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: StreamSettings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> StreamSettings:
        allowed = {field.name for field in fields(StreamSettings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        try:
            return replace(settings, **filtered)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Some %s settings overrides were rejected: %s", source, exc)
        # Keep the valid overrides and drop the rejected ones.
        for key, value in filtered.items():
            try:
                settings = replace(settings, **{key: value})
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Ignoring %s override %s=%r: %s", source, key, value, exc)
        return settings

    def _apply_env_overrides(self, settings: StreamSettings) -> StreamSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(StreamSettings)}
    return {key: value for key, value in payload.items() if key in allowed}
