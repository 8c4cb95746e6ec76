"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from streamcall.services.settings import SettingsStore, StreamSettings


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = SettingsStore(tmp_path / "settings.json").load()
    assert settings == StreamSettings()
    assert settings.debounce_interval == 0.05
    assert settings.stall_timeout == 3.0
    assert settings.legacy_json_sniffing is False


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    original = StreamSettings(
        debounce_interval=0.1,
        significance_threshold=40,
        stall_timeout=5.0,
        tool_endpoint="http://localhost:9000",
        execution_cache_ttl=60.0,
    )
    SettingsStore(path).save(original)
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert SettingsStore(path).load() == original


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"stall_timeout": 4.0, "theme": "dark"}), encoding="utf-8")
    assert SettingsStore(path).load().stall_timeout == 4.0


def test_invalid_payload_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"stability_checks": 0}), encoding="utf-8")
    assert SettingsStore(path).load() == StreamSettings()
    path.write_text("{broken", encoding="utf-8")
    assert SettingsStore(path).load() == StreamSettings()
    path.write_text("[1, 2]", encoding="utf-8")
    assert SettingsStore(path).load() == StreamSettings()


def test_caller_overrides(tmp_path: Path) -> None:
    settings = SettingsStore(tmp_path / "settings.json").load(overrides={"stall_timeout": 9.0, "bogus": 1})
    assert settings.stall_timeout == 9.0


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(StreamSettings(tool_endpoint="http://file", stall_timeout=5.0))
    monkeypatch.setenv("STREAMCALL_TOOL_ENDPOINT", "http://env")
    monkeypatch.setenv("STREAMCALL_STALL_TIMEOUT", "7.5")
    monkeypatch.setenv("STREAMCALL_CACHE_SIZE", "12")
    monkeypatch.setenv("STREAMCALL_LEGACY_JSON_SNIFFING", "yes")

    settings = SettingsStore(path).load(overrides={"stall_timeout": 6.0})

    assert settings.tool_endpoint == "http://env"
    assert settings.stall_timeout == 7.5
    assert settings.execution_cache_size == 12
    assert settings.legacy_json_sniffing is True


def test_bad_env_values_are_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STREAMCALL_MAX_RETRIES", "many")
    monkeypatch.setenv("STREAMCALL_DEBOUNCE_INTERVAL", "soon")
    settings = SettingsStore(tmp_path / "settings.json").load()
    assert settings.max_retries == 3
    assert settings.debounce_interval == 0.05


def test_out_of_range_env_values_are_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STREAMCALL_STALL_CHECK_INTERVAL", "0")
    monkeypatch.setenv("STREAMCALL_STALL_TIMEOUT", "4.5")
    settings = SettingsStore(tmp_path / "settings.json").load()
    assert settings.stall_check_interval == 1.0
    assert settings.stall_timeout == 4.5


def test_out_of_range_caller_overrides_are_ignored(tmp_path: Path) -> None:
    settings = SettingsStore(tmp_path / "settings.json").load(overrides={"stability_checks": 0, "busy_timeout": 2.0})
    assert settings.stability_checks == 2
    assert settings.busy_timeout == 2.0


def test_debug_logging_forces_debug_level(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STREAMCALL_DEBUG_LOGGING", "1")
    settings = SettingsStore(tmp_path / "settings.json").load()
    assert settings.effective_log_level == "DEBUG"
    assert StreamSettings(log_level="WARNING").effective_log_level == "WARNING"


@pytest.mark.parametrize(
    "overrides",
    [
        {"debounce_interval": -1.0},
        {"stability_checks": 0},
        {"stall_check_interval": 0.0},
        {"stall_stale_ticks": 0},
        {"stability_interval": 2.0, "stability_max_gap": 1.0},
    ],
)
def test_validation(overrides: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        StreamSettings(**overrides)  # type: ignore[arg-type]
