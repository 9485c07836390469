"""Metrics module."""

from .registry import (
    record_connection_state,
    record_directory_size,
    record_events_emitted,
    record_malformed_payload,
    record_message,
    record_publish,
    record_reconnect_scheduled,
    start_metrics_server,
)

__all__ = [
    "record_connection_state",
    "record_directory_size",
    "record_events_emitted",
    "record_malformed_payload",
    "record_message",
    "record_publish",
    "record_reconnect_scheduled",
    "start_metrics_server",
]
