"""Tests for utils/logging.py."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import pytest

from streamcall.services.settings import StreamSettings
from streamcall.utils import logging as logging_utils


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_writes_rotating_log_file(self, tmp_path: Path) -> None:
        path = logging_utils.setup_logging("debug", log_dir=tmp_path, console=False, force=True)
        assert path == tmp_path / "streamcall.log"
        assert logging_utils.get_log_path() == path
        logging.getLogger("streamcall.test").info("hello log")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello log" in path.read_text(encoding="utf-8")

    def test_repeated_calls_are_no_ops(self, tmp_path: Path) -> None:
        first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)
        second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)
        assert first == second

    def test_env_log_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAMCALL_LOG_DIR", str(tmp_path / "env"))
        path = logging_utils.setup_logging(console=False, force=True)
        assert path.parent == tmp_path / "env"
        assert logging_utils.default_log_dir() == tmp_path / "env"

    def test_explicit_dir_beats_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAMCALL_LOG_DIR", str(tmp_path / "env"))
        path = logging_utils.setup_logging(log_dir=tmp_path / "arg", console=False, force=True)
        assert path.parent == tmp_path / "arg"

    def test_noisy_loggers_are_quieted(self, tmp_path: Path) -> None:
        logging_utils.setup_logging("DEBUG", log_dir=tmp_path, console=False, force=True)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_host_handlers_survive_reconfiguration(self, tmp_path: Path) -> None:
        host = logging.NullHandler()
        root = logging.getLogger()
        root.addHandler(host)
        try:
            logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)
            logging_utils.setup_logging(log_dir=tmp_path / "b", console=False, force=True)
            assert host in root.handlers
            installed = [h for h in root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
            assert [Path(h.baseFilename).parent for h in installed] == [tmp_path / "b"]
        finally:
            root.removeHandler(host)

    def test_per_logger_levels(self, tmp_path: Path) -> None:
        logging_utils.setup_logging(
            log_dir=tmp_path, console=False, levels={"streamcall.chatty": "error"}, force=True
        )
        assert logging.getLogger("streamcall.chatty").level == logging.ERROR


@pytest.mark.usefixtures("restore_logging")
class TestConfigureFromSettings:
    """Tests for configure_from_settings()."""

    def test_uses_effective_level(self, tmp_path: Path) -> None:
        logging_utils.configure_from_settings(StreamSettings(debug_logging=True), log_dir=tmp_path, console=False)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("streamcall.streaming.renderer").level == logging.NOTSET

    def test_frames_hidden_above_debug(self, tmp_path: Path) -> None:
        logging_utils.configure_from_settings(
            StreamSettings(log_level="DEBUG"), level="INFO", log_dir=tmp_path, console=False, force=True
        )
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("streamcall.streaming.renderer").level == logging.WARNING


def test_resolve_level() -> None:
    assert logging_utils.resolve_level("info") == logging.INFO
    assert logging_utils.resolve_level(10) == logging.DEBUG
    with pytest.raises(ValueError):
        logging_utils.resolve_level("chatty")
