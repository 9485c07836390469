"""aiomqtt-backed transport.

aiomqtt is context-manager driven rather than callback driven; this adapter
runs the client inside a receive task and turns connect success, connection
loss and inbound messages into the callbacks the connection manager expects.
"""

from __future__ import annotations

import asyncio
import contextlib
import ssl
from urllib.parse import urlsplit

import aiomqtt

from z2m_bridge.const import BRIDGE_MQTT_CLIENT_START_TASK_NAME, DEFAULT_MQTT_PORT
from z2m_bridge.correlation import ensure_correlation_id
from z2m_bridge.exceptions import TransportError
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.transport.base import MessageCallback, StatusCallback, TransportStatus

__all__ = ["AiomqttTransport", "parse_connection_uri"]

logger = get_logger(__name__)


def parse_connection_uri(uri: str) -> tuple[str, int, bool]:
    """Split ``tcp://host:port`` / ``ssl://host:port`` into (host, port, use_tls)."""
    parts = urlsplit(uri)
    if not parts.hostname:
        msg = f"connection URI has no host: {uri!r}"
        raise TransportError(msg, state="disconnected")
    use_tls = parts.scheme in ("ssl", "tls", "mqtts")
    return parts.hostname, parts.port or DEFAULT_MQTT_PORT, use_tls


class AiomqttTransport:
    lp: str = "mqtt:"

    def __init__(self) -> None:
        self.client: aiomqtt.Client | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._connected: bool = False
        self._on_status: StatusCallback | None = None
        self._on_message: MessageCallback | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def bind(self, on_status: StatusCallback, on_message: MessageCallback) -> None:
        self._on_status = on_status
        self._on_message = on_message

    async def open(self, uri: str, client_id: str, username: str | None, password: str | None) -> None:
        lp = f"{self.lp}open:"
        if self._receive_task is not None and not self._receive_task.done():
            logger.debug("%s previous receive task still running, closing it first", lp)
            await self.close()
        hostname, port, use_tls = parse_connection_uri(uri)
        self.client = aiomqtt.Client(
            hostname=hostname,
            port=port,
            username=username or None,
            password=password or None,
            identifier=client_id,
            tls_context=ssl.create_default_context() if use_tls else None,
        )
        logger.debug("%s connecting to %s:%s as %s (tls=%s)", lp, hostname, port, client_id, use_tls)
        self._receive_task = asyncio.create_task(
            self._receive(self.client),
            name=BRIDGE_MQTT_CLIENT_START_TASK_NAME,
        )

    async def _receive(self, client: aiomqtt.Client) -> None:
        lp = f"{self.lp}rcv:"
        _ = ensure_correlation_id()
        try:
            async with client:
                self._connected = True
                await self._notify(TransportStatus.connection_succeeded())
                async for message in client.messages:
                    payload = message.payload
                    if isinstance(payload, bytes | bytearray):
                        text = bytes(payload).decode("utf-8", errors="replace")
                    elif payload is None:
                        text = ""
                    else:
                        text = str(payload)
                    await self._deliver(message.topic.value, text)
        except asyncio.CancelledError:
            logger.debug("%s receive task cancelled", lp)
            raise
        except aiomqtt.MqttError as mqtt_err:
            # -> [Errno 111] Connection refused, [code:134] Bad user name or password
            self._connected = False
            logger.warning("%s MQTT error: %s", lp, mqtt_err)
            await self._notify(TransportStatus.connection_failed(str(mqtt_err)))
        finally:
            self._connected = False

    async def _notify(self, status: TransportStatus) -> None:
        if self._on_status is not None:
            await self._on_status(status)

    async def _deliver(self, topic: str, payload: str) -> None:
        if self._on_message is None:
            return
        try:
            await self._on_message(topic, payload)
        except Exception:
            logger.exception("%s message handler failed for topic %s", self.lp, topic)

    async def close(self) -> None:
        task, self._receive_task = self._receive_task, None
        self._connected = False
        if task is not None and not task.done() and task is not asyncio.current_task():
            _ = task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.client = None

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        if not self._connected or self.client is None:
            raise TransportError(f"cannot subscribe to {topic}", state="disconnected")
        try:
            _ = await self.client.subscribe(topic, qos=qos)
        except aiomqtt.MqttError as mqtt_err:
            raise TransportError(str(mqtt_err), state="connected") from mqtt_err

    async def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        if not self._connected or self.client is None:
            raise TransportError(f"cannot publish to {topic}", state="disconnected")
        try:
            await self.client.publish(topic, payload.encode(), qos=qos, retain=retain)
        except aiomqtt.MqttError as mqtt_err:
            raise TransportError(str(mqtt_err), state="connected") from mqtt_err
