"""Configuration and telemetry services."""

from .settings import SettingsStore, StreamSettings
from .telemetry import InMemoryEventSink, emit, register_event_listener, unregister_event_listener

__all__ = [
    "InMemoryEventSink",
    "SettingsStore",
    "StreamSettings",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
