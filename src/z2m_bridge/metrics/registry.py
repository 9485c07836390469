"""Prometheus metrics registry for the broker bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

z2m_bridge_connection_state: Final = Gauge(  # type: ignore[assignment]
    "z2m_bridge_connection_state",
    "Current broker session state",
    ["session_id", "state"],
)

z2m_bridge_reconnect_scheduled_total: Final = Counter(  # type: ignore[assignment]
    "z2m_bridge_reconnect_scheduled_total",
    "Total reconnects scheduled, by delay",
    ["session_id", "delay"],
)

z2m_bridge_reconnect_delay_seconds: Final = Gauge(  # type: ignore[assignment]
    "z2m_bridge_reconnect_delay_seconds",
    "Delay of the most recently scheduled reconnect",
    ["session_id"],
)

z2m_bridge_messages_received_total: Final = Counter(  # type: ignore[assignment]
    "z2m_bridge_messages_received_total",
    "Total inbound broker messages by routing outcome",
    ["session_id", "route"],
)

z2m_bridge_events_emitted_total: Final = Counter(  # type: ignore[assignment]
    "z2m_bridge_events_emitted_total",
    "Total attribute events delivered to child devices",
    ["session_id"],
)

z2m_bridge_publish_total: Final = Counter(  # type: ignore[assignment]
    "z2m_bridge_publish_total",
    "Total outbound publishes",
    ["session_id", "outcome"],
)

z2m_bridge_directory_devices: Final = Gauge(  # type: ignore[assignment]
    "z2m_bridge_directory_devices",
    "Devices in the current directory snapshot (coordinator excluded)",
    ["session_id"],
)

z2m_bridge_malformed_payloads_total: Final = Counter(  # type: ignore[assignment]
    "z2m_bridge_malformed_payloads_total",
    "Total inbound payloads dropped as malformed",
    ["session_id", "kind"],
)

_STATES: Final = ("disconnected", "connecting", "connected")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_connection_state(session_id: str, state: str) -> None:
    """Record session state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in _STATES:
        value = 1 if s == state else 0
        z2m_bridge_connection_state.labels(session_id=session_id, state=s).set(value)  # type: ignore[no-untyped-call]


def record_reconnect_scheduled(session_id: str, delay: float) -> None:
    z2m_bridge_reconnect_scheduled_total.labels(session_id=session_id, delay=str(delay)).inc()  # type: ignore[no-untyped-call]
    z2m_bridge_reconnect_delay_seconds.labels(session_id=session_id).set(delay)  # type: ignore[no-untyped-call]


def record_message(session_id: str, route: str) -> None:
    """Record an inbound message and where it was routed."""
    z2m_bridge_messages_received_total.labels(session_id=session_id, route=route).inc()  # type: ignore[no-untyped-call]


def record_events_emitted(session_id: str, count: int) -> None:
    if count:
        z2m_bridge_events_emitted_total.labels(session_id=session_id).inc(count)  # type: ignore[no-untyped-call]


def record_publish(session_id: str, outcome: str) -> None:
    """Record an outbound publish ("ok", "error" or "disconnected")."""
    z2m_bridge_publish_total.labels(session_id=session_id, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_directory_size(session_id: str, size: int) -> None:
    z2m_bridge_directory_devices.labels(session_id=session_id).set(size)  # type: ignore[no-untyped-call]


def record_malformed_payload(session_id: str, kind: str) -> None:
    z2m_bridge_malformed_payloads_total.labels(session_id=session_id, kind=kind).inc()  # type: ignore[no-untyped-call]
