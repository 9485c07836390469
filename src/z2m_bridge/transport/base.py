"""Callback-driven transport contract the connection manager drives."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

__all__ = ["MQTTTransport", "MessageCallback", "StatusCallback", "TransportStatus"]

CONNECTION_SUCCEEDED = "Status: Connection succeeded"


@dataclass(frozen=True, slots=True)
class TransportStatus:
    """Status notification from the transport layer."""

    succeeded: bool
    message: str

    @classmethod
    def connection_succeeded(cls) -> TransportStatus:
        return cls(succeeded=True, message=CONNECTION_SUCCEEDED)

    @classmethod
    def connection_failed(cls, reason: str) -> TransportStatus:
        return cls(succeeded=False, message=f"Error: {reason}")


type StatusCallback = Callable[[TransportStatus], Awaitable[None]]
type MessageCallback = Callable[[str, str], Awaitable[None]]


class MQTTTransport(Protocol):
    """A connected, callback-driven MQTT client.

    ``open`` returns once the attempt has started; success or failure arrives
    later through the status callback. Inbound messages arrive one at a time
    through the message callback as ``(topic, payload)``.
    """

    @property
    def is_connected(self) -> bool:
        """Live connected flag of the underlying connection."""
        ...

    def bind(self, on_status: StatusCallback, on_message: MessageCallback) -> None:
        """Register the status and message callbacks."""
        ...

    async def open(self, uri: str, client_id: str, username: str | None, password: str | None) -> None:
        """Start connecting; any previous connection must already be closed."""
        ...

    async def close(self) -> None:
        """Close the connection without emitting a status callback."""
        ...

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        """Subscribe to a topic filter."""
        ...

    async def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        """Publish a message. Raises TransportError when not connected."""
        ...
