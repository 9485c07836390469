"""Zigbee2MQTT broker bridge: one broker session and the devices behind it.

Inbound messages flow transport -> TopicRouter -> DeviceRegistry (directory
topics) or PayloadTranslator (device state) -> device sink. Nothing raised
while handling a message or a timer is allowed out of this module.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from z2m_bridge.capabilities import EFFECTS_BULB_PROFILE, CapabilityClassifier
from z2m_bridge.config import BridgeSettings
from z2m_bridge.const import DEBUG_AUTO_DISABLE_SECONDS
from z2m_bridge.correlation import correlation_context
from z2m_bridge.devices import DeviceRegistry
from z2m_bridge.exceptions import MalformedPayloadError, TransportError, UnresolvedDeviceError
from z2m_bridge.logging_abstraction import get_logger, set_package_debug
from z2m_bridge.metrics import registry as metrics
from z2m_bridge.mqtt import ComponentCommands, PayloadTranslator, RouteKind, TopicRouter
from z2m_bridge.scheduler import TaskScheduler
from z2m_bridge.session import BrokerSession, MemorySessionStateStore, SessionStateStore
from z2m_bridge.structs import (
    AttributeEvent,
    AttributeKind,
    DeviceDescriptor,
    DeviceHandle,
    DeviceInventory,
    DeviceSink,
    DriverAssignment,
    GroupDescriptor,
    SessionState,
)
from z2m_bridge.transport import AiomqttTransport, ConnectionManager, MQTTTransport
from z2m_bridge.utils import broker_key, device_key, ieee_from_key

__all__ = ["DEBUG_OFF_JOB", "Zigbee2MQTTBridge"]

logger = get_logger(__name__)

DEBUG_OFF_JOB = "debug_off"


class Zigbee2MQTTBridge:
    """Coordinates one broker session for a hub-side device sink."""

    lp: str = "bridge:"

    def __init__(
        self,
        settings: BridgeSettings,
        sink: DeviceSink,
        *,
        session_id: str = "1",
        transport: MQTTTransport | None = None,
        state_store: SessionStateStore | None = None,
        classifier: CapabilityClassifier | None = None,
        display_name: str = "Zigbee2MQTT Broker",
    ) -> None:
        self.settings: BridgeSettings = settings
        self.sink: DeviceSink = sink
        self.session_id: str = session_id
        self.display_name: str = display_name
        self.broker_key: str = broker_key(session_id)
        self.lp = f"bridge[{session_id}]:"

        self.session: BrokerSession = BrokerSession(
            session_id=session_id,
            connection_uri=settings.connection_uri,
            client_id=settings.client_id,
            username=settings.username,
            password=settings.password,
            state_store=state_store or MemorySessionStateStore(),
        )
        self.scheduler: TaskScheduler = TaskScheduler(owner=f"session{session_id}")
        self.transport: MQTTTransport = transport or AiomqttTransport()
        self.registry: DeviceRegistry = DeviceRegistry(session_id)
        self.router: TopicRouter = TopicRouter(settings.topic)
        self.translator: PayloadTranslator = PayloadTranslator(settings.temperature_scale)
        self.classifier: CapabilityClassifier = classifier or CapabilityClassifier()
        self.commands: ComponentCommands = ComponentCommands(self)
        self.assignments: dict[str, DriverAssignment] = {}
        self.connection: ConnectionManager = ConnectionManager(
            self.session,
            self.transport,
            self.scheduler,
            on_connected=self.subscribe_to_topic,
            on_state_change=self._on_state_change,
            on_initialize=self._arm_debug_auto_disable,
            watchdog_enabled=settings.watchdog_enabled,
        )
        self.transport.bind(self.connection.on_transport_status, self.handle_message)

    @property
    def base_topic(self) -> str:
        return self.router.base_topic

    @property
    def state(self) -> SessionState:
        return self.session.state

    # Lifecycle

    async def start(self) -> bool:
        """Initialize the session; returns False when broker settings are incomplete."""
        lp = f"{self.lp}start:"
        if not self.settings.is_complete:
            logger.warning("%s broker host/port not configured; not connecting", lp)
            return False
        logger.info("%s starting session for %s (client id %s)", lp, self.session.connection_uri, self.session.client_id)
        await self.connection.initialize()
        return True

    async def stop(self) -> None:
        logger.info("%s stopping", self.lp)
        await self.connection.shutdown()

    async def initialize(self, force_reconnect: bool = True) -> None:
        await self.connection.initialize(force_reconnect)

    async def connect(self) -> None:
        await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def reconnect(self, not_if_already_connected: bool = True) -> None:
        await self.connection.reconnect(not_if_already_connected)

    def _arm_debug_auto_disable(self) -> None:
        if self.settings.enable_debug:
            set_package_debug(True)
            logger.debug("%s debug logging will be disabled in %s minutes", self.lp, DEBUG_AUTO_DISABLE_SECONDS // 60)
            _ = self.scheduler.schedule(DEBUG_OFF_JOB, DEBUG_AUTO_DISABLE_SECONDS, self.debug_off)
        else:
            _ = self.scheduler.cancel(DEBUG_OFF_JOB)

    def debug_off(self) -> None:
        logger.warning("%s Disabling debug logging", self.lp)
        self.settings.enable_debug = False
        set_package_debug(False)

    def _on_state_change(self, state: SessionState) -> None:
        value = state.value
        description = f"{self.display_name} status is {value}"
        if self.settings.enable_desc:
            logger.info("%s %s", self.lp, description)
        self.sink.emit(self.broker_key, [AttributeEvent(AttributeKind.STATUS, value, None, description)])

    # Inbound

    async def handle_message(self, topic: str, payload: str) -> list[AttributeEvent]:
        """Route one inbound message; returns the events delivered to a child device (if any)."""
        with correlation_context(prefix="msg"):
            lp = f"{self.lp}handle_message:"
            route = self.router.classify(topic)
            metrics.record_message(self.session_id, route.kind.value)
            try:
                if route.kind is RouteKind.DEVICES:
                    self._refresh_devices(topic, payload)
                elif route.kind is RouteKind.GROUPS:
                    _ = self.registry.refresh_groups(topic, payload)
                elif route.kind is RouteKind.DEVICE_STATE and route.friendly_name is not None:
                    return self._dispatch_state(route.friendly_name, payload)
            except MalformedPayloadError as exc:
                logger.warning("%s dropping message: %s", lp, exc)
                metrics.record_malformed_payload(self.session_id, route.kind.value)
            except UnresolvedDeviceError as exc:
                logger.debug("%s %s", lp, exc)
            except Exception:
                logger.exception("%s unexpected error handling %s", lp, topic)
            return []

    def _refresh_devices(self, topic: str, payload: str) -> None:
        _ = self.registry.refresh_devices(topic, payload)
        devices = self.registry.devices_without_coordinator()
        metrics.record_directory_size(self.session_id, len(devices))
        logger.debug("%s directory refreshed: %s device(s)", self.lp, len(devices))

    def _dispatch_state(self, friendly_name: str, payload: str) -> list[AttributeEvent]:
        descriptor = self.registry.by_friendly_name(friendly_name)
        if descriptor is None:
            raise UnresolvedDeviceError(friendly_name)
        key = device_key(self.session_id, descriptor.ieee_address)
        if self.sink.find_device_by_key(key) is None:
            logger.debug("%s %s is not claimed; ignoring state", self.lp, friendly_name)
            return []
        events = self.translator.translate(friendly_name, payload, descriptor)
        if events:
            self.emit_to(key, events)
        return events

    def emit_to(self, device_key: str, events: list[AttributeEvent]) -> None:
        if self.settings.enable_desc:
            self._describe_changes(device_key, events)
        self.sink.emit(device_key, events)
        metrics.record_events_emitted(self.session_id, len(events))

    def _describe_changes(self, device_key: str, events: list[AttributeEvent]) -> None:
        device = self.sink.find_device_by_key(device_key)
        if device is None:
            return
        for event in events:
            name = str(event.name)
            if not event.description_text or not device.has_attribute(name):
                continue
            if device.current_value(name) == event.value:
                continue
            logger.info("%s %s", self.lp, event.description_text)

    # Outbound

    async def _publish(self, topic: str, payload: str, qos: int, retained: bool) -> bool:
        lp = f"{self.lp}publish:"
        if not self.transport.is_connected:
            logger.debug("%s not connected; dropping publish to %s", lp, topic)
            metrics.record_publish(self.session_id, "disconnected")
            return False
        try:
            await self.transport.publish(topic, payload, qos, retained)
        except TransportError as exc:
            logger.warning("%s [TransportError] -> %s", lp, exc.reason)
            metrics.record_publish(self.session_id, "error")
            return False
        metrics.record_publish(self.session_id, "ok")
        return True

    async def publish(self, topic: str, payload: str = "", qos: int = 0, retained: bool = False) -> bool:
        """Publish under the base topic (``topic`` is relative to it)."""
        logger.debug(
            "%s publish(topic = %s, payload = %s, qos = %s, retained = %s)",
            self.lp,
            topic,
            payload,
            qos,
            retained,
        )
        return await self._publish(f"{self.base_topic}/{topic}", payload, qos, retained)

    async def publish_for_ieee(
        self,
        ieee: str,
        sub_topic: str | None = None,
        payload: Any = "",
        qos: int = 0,
        retained: bool = False,
    ) -> bool:
        """Publish to ``<base>/<friendlyName>[/<sub_topic>]`` for a device's IEEE address.

        Non-string payloads are sent as JSON. Unknown addresses are a logged no-op.
        """
        lp = f"{self.lp}publish_for_ieee:"
        descriptor = self.registry.by_ieee(ieee)
        if descriptor is None:
            logger.debug("%s not publishing; no device found for IEEE %s", lp, ieee)
            return False
        full_topic = f"{self.base_topic}/{descriptor.friendly_name}"
        if sub_topic:
            full_topic = f"{full_topic}/{sub_topic}"
        string_payload = payload if isinstance(payload, str) else json.dumps(payload)
        logger.debug("%s publishing: topic = %s, payload = %s", lp, full_topic, string_payload)
        return await self._publish(full_topic, string_payload, qos, retained)

    async def subscribe_to_topic(self, topic: str | None = None) -> bool:
        lp = f"{self.lp}subscribe:"
        to_topic = topic or self.router.subscription
        logger.debug("%s subscribe(%s)", lp, to_topic)
        try:
            await self.transport.subscribe(to_topic)
        except TransportError as exc:
            logger.warning("%s could not subscribe to %s: %s", lp, to_topic, exc.reason)
            return False
        return True

    # Directory and device management

    def list_devices(self) -> list[DeviceDescriptor]:
        return self.registry.devices()

    def list_groups(self) -> list[GroupDescriptor]:
        return self.registry.groups()

    def log_devices(self, pretty: bool = True, include_groups: bool = False) -> str:
        raw = self.registry.as_raw(include_groups)
        dump = json.dumps(raw, indent=2 if pretty else None)
        logger.info("%s %s", self.lp, dump)
        return dump

    def definition_for(self, device: DeviceHandle | str) -> dict[str, Any] | None:
        """Log and return the broker's definition for a child device (or IEEE address)."""
        ieee = device if isinstance(device, str) else ieee_from_key(device.key)
        descriptor = self.registry.by_ieee(ieee)
        if descriptor is None:
            name = device if isinstance(device, str) else device.display_name
            logger.info("%s No device found on Zigbee2MQTT broker for %s", self.lp, name)
            return None
        definition = descriptor.definition.model_dump(mode="json", exclude_none=True) if descriptor.definition else {}
        logger.info("%s DEFINITION: %s", self.lp, json.dumps(definition, indent=2))
        return definition

    def claim_devices(self, ieee_addresses: Iterable[str]) -> list[DeviceHandle]:
        """Create child devices for unclaimed directory entries; returns the devices created."""
        lp = f"{self.lp}claim:"
        created: list[DeviceHandle] = []
        for ieee in ieee_addresses:
            key = device_key(self.session_id, ieee)
            if self.sink.find_device_by_key(key) is not None:
                logger.debug("%s not creating device for %s; already exists", lp, ieee)
                continue
            descriptor = self.registry.by_ieee(ieee)
            if descriptor is None:
                logger.warning("%s Unable to find device on Zigbee2MQTT for IEEE %s", lp, ieee)
                continue
            assignment = self.classifier.assign(descriptor, self.assignments.get(ieee))
            try:
                handle = self.sink.create_device(assignment, key, {"name": descriptor.friendly_name})
            except Exception:
                logger.exception("%s Unable to create device for IEEE %s (%s)", lp, ieee, descriptor.friendly_name)
                continue
            self.assignments[ieee] = assignment
            if descriptor.vendor:
                handle.update_data_value("vendor", descriptor.vendor)
            if descriptor.model:
                handle.update_data_value("model", descriptor.model)
            if assignment.profile_name == EFFECTS_BULB_PROFILE:
                effect = descriptor.find_expose("effect")
                if effect is not None and effect.values is not None:
                    handle.set_light_effects([str(v) for v in effect.values])
            logger.info("%s created %s as %s", lp, descriptor.friendly_name, assignment.profile_name)
            created.append(handle)
        return created

    def device_inventory(self) -> DeviceInventory:
        """Split the directory and child devices into claimed, unclaimed and abandoned."""
        inventory = DeviceInventory()
        claimed_keys: set[str] = set()
        for descriptor in self.registry.devices_without_coordinator():
            handle = self.sink.find_device_by_key(device_key(self.session_id, descriptor.ieee_address))
            if handle is not None:
                inventory.claimed.append(handle)
                claimed_keys.add(handle.key)
            else:
                inventory.unclaimed.append(descriptor)
        inventory.abandoned = [
            d
            for d in self.sink.list_claimed_devices()
            if d.key.startswith(f"{self.broker_key}/") and d.key not in claimed_keys
        ]
        return inventory
