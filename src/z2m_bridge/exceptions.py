"""Exception hierarchy for the broker bridge.

None of these are allowed to terminate the process: the message and timer
entry points catch them and degrade to "skip and log" or "retry with backoff".
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge errors."""


class TransportError(BridgeError):
    """Broker connection refused, dropped or unusable.

    Always recovered through a scheduled reconnect.

    Attributes:
        reason: Specific failure reason
        state: Session state when the error occurred

    """

    def __init__(self, reason: str, state: str = "unknown") -> None:
        self.reason: str = reason
        self.state: str = state
        super().__init__(f"Transport error: {reason} (state: {state})")


class MalformedPayloadError(BridgeError):
    """Payload is not JSON, or lacks the shape the topic implies.

    Attributes:
        topic: Topic the payload arrived on
        reason: What was wrong with it

    """

    def __init__(self, topic: str, reason: str) -> None:
        self.topic: str = topic
        self.reason: str = reason
        super().__init__(f"Malformed payload on {topic}: {reason}")


class UnresolvedDeviceError(BridgeError):
    """State message names a friendly name absent from the current directory.

    The directory may simply be stale and self-corrects on the next refresh.
    """

    def __init__(self, friendly_name: str) -> None:
        self.friendly_name: str = friendly_name
        super().__init__(f"No directory entry for friendly name {friendly_name!r}")


class UnknownCapabilityError(BridgeError):
    """No specific profile rule matched a device's exposes."""

    def __init__(self, capability_names: list[str]) -> None:
        self.capability_names: list[str] = capability_names
        super().__init__(f"No profile matches capabilities {capability_names}")
