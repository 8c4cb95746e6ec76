"""Logging for hosts that embed the streaming pipeline and for the replay script.

streamcall is usually a guest in someone else's process, so the handlers it
installs are tracked and only those are replaced on reconfiguration; a host's
own root handlers stay in place.

The log directory is chosen in this order: the ``log_dir`` argument, the
``STREAMCALL_LOG_DIR`` environment variable, then ``~/.streamcall/logs``.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from ..services.settings import StreamSettings

__all__ = ["configure_from_settings", "default_log_dir", "get_log_path", "resolve_level", "setup_logging"]

LOG_DIR_ENV = "STREAMCALL_LOG_DIR"
_DEFAULT_LOG_NAME = "streamcall.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
# Transport chatter that drowns out block transitions at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore")
_CONFIGURED = False
_LOG_PATH: Path | None = None
_INSTALLED: list[logging.Handler] = []


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    log_name: str = _DEFAULT_LOG_NAME,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    levels: Mapping[str, int | str] | None = None,
    force: bool = False,
) -> Path:
    """Attach a rotating file handler (and optionally stderr) to the root logger.

    Args:
        level: Root level, as a number or a name such as ``"debug"``.
        log_dir: Directory for *log_name*; see the module docstring for defaults.
        console: Also log to stderr.
        levels: Per-logger levels, e.g. ``{"streamcall.streaming.renderer": "WARNING"}``.
        force: Replace a previous configuration; otherwise repeated calls
            return the existing log path untouched.

    Returns:
        Path of the log file.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    numeric_level = resolve_level(level)
    target_dir = default_log_dir() if log_dir is None else Path(log_dir).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / log_name

    root = logging.getLogger()
    _remove_installed(root)
    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    _install(
        root,
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
        numeric_level,
        formatter,
    )
    if console:
        _install(root, logging.StreamHandler(), numeric_level, formatter)
    root.setLevel(numeric_level)
    logging.captureWarnings(True)

    quiet_level = max(logging.WARNING, numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    for name, value in (levels or {}).items():
        logging.getLogger(name).setLevel(resolve_level(value))

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def configure_from_settings(
    settings: StreamSettings,
    *,
    level: int | str | None = None,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Apply ``settings.effective_log_level`` unless *level* overrides it.

    Rendered frames are only logged at DEBUG so a replay at INFO shows
    transitions and results without one line per growth event.
    """

    chosen = level if level is not None else settings.effective_log_level
    numeric_level = resolve_level(chosen)
    frames = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    levels = {"streamcall.streaming.renderer": frames}
    return setup_logging(numeric_level, log_dir=log_dir, console=console, levels=levels, force=force)


def resolve_level(level: int | str) -> int:
    """Translate ``"debug"``/``"INFO"``/``10`` style values into a logging level."""

    if isinstance(level, int):
        return level
    candidate = logging.getLevelName(str(level).strip().upper())
    if isinstance(candidate, int):
        return candidate
    raise ValueError(f"Unknown log level: {level!r}")


def default_log_dir() -> Path:
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".streamcall" / "logs"


def get_log_path() -> Path | None:
    """Return the log file chosen by the last :func:`setup_logging` call."""

    return _LOG_PATH


def _install(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    _INSTALLED.append(handler)


def _remove_installed(root: logging.Logger) -> None:
    while _INSTALLED:
        handler = _INSTALLED.pop()
        root.removeHandler(handler)
        handler.close()
