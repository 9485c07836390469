"""
Correlation ID tracking for inbound broker traffic.

Every MQTT message and every scheduled job (reconnect, watchdog, resubscribe)
runs inside its own correlation context, so log lines emitted while routing,
translating and emitting events for one message can be grouped together.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "get_correlation_id",
    "new_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "z2m_correlation_id",
    default=None,
)


def new_correlation_id(prefix: str | None = None) -> str:
    """Return a fresh id, optionally tagged with a short prefix (``msg``, ``job``)."""
    raw = uuid.uuid4().hex
    return f"{prefix}-{raw}" if prefix else raw


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None, prefix: str | None = None) -> Generator[str]:
    """
    Scope a correlation id to the enclosed block and restore the previous one on exit.

    Example:
        with correlation_context(prefix="msg") as corr_id:
            bridge_logger.debug("routing %s", topic)
    """
    token = _correlation_id.set(correlation_id or new_correlation_id(prefix))
    try:
        yield _correlation_id.get() or ""
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current id, creating one for task entry points that have none."""
    current_id = _correlation_id.get()
    if current_id is None:
        current_id = new_correlation_id()
        _ = _correlation_id.set(current_id)
    return current_id
