"""Broker transport and session connection management."""

from .aiomqtt_transport import AiomqttTransport
from .base import MQTTTransport, TransportStatus
from .connection_manager import ConnectionManager, next_retry_delay

__all__ = [
    "AiomqttTransport",
    "ConnectionManager",
    "MQTTTransport",
    "TransportStatus",
    "next_retry_delay",
]
