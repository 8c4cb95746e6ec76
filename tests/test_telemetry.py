"""Tests for the services.telemetry helpers."""

from __future__ import annotations

from typing import Any

from streamcall.services import telemetry as telemetry_service


def test_emit_reaches_registered_listener() -> None:
    received: list[dict[str, Any]] = []
    telemetry_service.register_event_listener("demo.event", received.append)
    try:
        telemetry_service.emit("demo.event", {"value": 1})
    finally:
        assert telemetry_service.unregister_event_listener("demo.event", received.append)
    telemetry_service.emit("demo.event", {"value": 2})
    assert received == [{"event": "demo.event", "value": 1}]


def test_listener_receives_a_copy() -> None:
    def mutate(payload: dict[str, Any]) -> None:
        payload["value"] = "changed"

    seen: list[dict[str, Any]] = []
    telemetry_service.register_event_listener("demo.copy", mutate)
    telemetry_service.register_event_listener("demo.copy", seen.append)
    try:
        telemetry_service.emit("demo.copy", {"value": "original"})
    finally:
        telemetry_service.unregister_event_listener("demo.copy", mutate)
        telemetry_service.unregister_event_listener("demo.copy", seen.append)
    assert seen[0]["value"] == "original"


def test_failing_listener_does_not_break_emit() -> None:
    def boom(payload: dict[str, Any]) -> None:
        raise RuntimeError("listener failed")

    seen: list[dict[str, Any]] = []
    telemetry_service.register_event_listener("demo.fail", boom)
    telemetry_service.register_event_listener("demo.fail", seen.append)
    try:
        telemetry_service.emit("demo.fail")
    finally:
        telemetry_service.unregister_event_listener("demo.fail", boom)
        telemetry_service.unregister_event_listener("demo.fail", seen.append)
    assert seen == [{"event": "demo.fail"}]


def test_unregister_unknown_listener() -> None:
    assert telemetry_service.unregister_event_listener("demo.none", print) is False


def test_in_memory_sink_is_bounded() -> None:
    sink = telemetry_service.InMemoryEventSink(["demo.sink"], capacity=10)
    try:
        for index in range(15):
            telemetry_service.emit("demo.sink", {"index": index})
    finally:
        sink.close()
    assert len(sink) == 10
    assert sink.tail(2) == [{"event": "demo.sink", "index": 13}, {"event": "demo.sink", "index": 14}]
    assert sink.names() == ["demo.sink"] * 10
    telemetry_service.emit("demo.sink", {"index": 99})
    assert len(sink) == 10
