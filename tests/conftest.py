"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from streamcall.services.settings import StreamSettings
from streamcall.streaming import ManualScheduler

from tests.helpers import RecordingRenderer


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def settings() -> StreamSettings:
    return StreamSettings()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer STREAMCALL_* variables out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("STREAMCALL_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by ``setup_logging``."""
    import logging

    from streamcall.utils import logging as logging_utils

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    touched = ("asyncio", "httpx", "httpcore", "streamcall.streaming.renderer", "streamcall.chatty")
    levels = {name: logging.getLogger(name).level for name in touched}
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    for name, value in levels.items():
        logging.getLogger(name).setLevel(value)
    logging_utils._CONFIGURED = False
    logging_utils._LOG_PATH = None
    logging_utils._INSTALLED.clear()
