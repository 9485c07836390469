"""Unit tests for Zigbee2MQTTBridge message handling, publishing and device management."""

from __future__ import annotations

import json
import logging

import pytest

from tests.helpers.fakes import (
    BULB_IEEE,
    CONTACT_IEEE,
    COORDINATOR_IEEE,
    MOTION_IEEE,
    THERMO_IEEE,
    FakeTransport,
    JSONDict,
)
from z2m_bridge.bridge import DEBUG_OFF_JOB, Zigbee2MQTTBridge
from z2m_bridge.capabilities import EFFECTS_BULB_PROFILE
from z2m_bridge.config import BridgeSettings
from z2m_bridge.const import DEBUG_AUTO_DISABLE_SECONDS
from z2m_bridge.devices import ChildDevice, InMemoryDeviceSink
from z2m_bridge.structs import AttributeKind, DriverAssignment, SessionState
from z2m_bridge.transport.connection_manager import RECONNECT_JOB, RESUBSCRIBE_JOB, WATCHDOG_JOB
from z2m_bridge.utils import broker_key, device_key

DEVICES_TOPIC = "zigbee2mqtt/bridge/devices"
BULB_KEY = device_key("1", BULB_IEEE)


async def _load_directory(bridge: Zigbee2MQTTBridge, payload: str) -> None:
    _ = await bridge.handle_message(DEVICES_TOPIC, payload)


def _bulb(sink: InMemoryDeviceSink) -> ChildDevice:
    device = sink.find_device_by_key(BULB_KEY)
    assert device is not None
    return device


class TestLifecycle:
    """Tests for start/stop and broker status events."""

    @pytest.mark.asyncio
    async def test_start_without_host(self, sink: InMemoryDeviceSink, fake_transport: FakeTransport):
        bridge = Zigbee2MQTTBridge(BridgeSettings(host=None), sink, transport=fake_transport)
        assert await bridge.start() is False
        assert fake_transport.opened == []

    @pytest.mark.asyncio
    async def test_start_connects_and_arms_watchdog(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, sink: InMemoryDeviceSink
    ):
        assert await bridge.start() is True
        assert fake_transport.opened == [("tcp://broker.local:1883", "home_z2m_1", "bridge", None)]
        assert bridge.state is SessionState.CONNECTING
        assert bridge.scheduler.is_pending(WATCHDOG_JOB)

        await fake_transport.succeed()
        assert bridge.state is SessionState.CONNECTED
        assert bridge.scheduler.is_pending(RESUBSCRIBE_JOB)
        status = sink.last_event(broker_key("1"), AttributeKind.STATUS)
        assert status is not None
        assert status.value == "connected"
        assert status.description_text == "Zigbee2MQTT Broker status is connected"

    @pytest.mark.asyncio
    async def test_drop_reports_disconnected_and_retries(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, sink: InMemoryDeviceSink
    ):
        _ = await bridge.start()
        await fake_transport.succeed()
        await fake_transport.drop()
        status = sink.last_event(broker_key("1"), AttributeKind.STATUS)
        assert status is not None
        assert status.value == "disconnected"
        assert bridge.scheduler.delay_of(RECONNECT_JOB) == 15

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport):
        _ = await bridge.start()
        await fake_transport.succeed()
        await bridge.stop()
        assert bridge.scheduler.pending == []
        assert bridge.state is SessionState.DISCONNECTED
        assert not fake_transport.connected

    @pytest.mark.asyncio
    async def test_subscribe_after_connect(self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport):
        assert await bridge.subscribe_to_topic() is False
        fake_transport.connected = True
        assert await bridge.subscribe_to_topic() is True
        assert fake_transport.subscriptions == ["zigbee2mqtt/#"]

    @pytest.mark.asyncio
    async def test_debug_auto_disable(self, bridge: Zigbee2MQTTBridge):
        bridge.settings.enable_debug = True
        bridge._arm_debug_auto_disable()  # pyright: ignore[reportPrivateUsage]
        assert bridge.scheduler.delay_of(DEBUG_OFF_JOB) == DEBUG_AUTO_DISABLE_SECONDS

        bridge.debug_off()
        assert bridge.settings.enable_debug is False
        bridge._arm_debug_auto_disable()  # pyright: ignore[reportPrivateUsage]
        assert not bridge.scheduler.is_pending(DEBUG_OFF_JOB)


class TestHandleMessage:
    """Tests for inbound message routing."""

    @pytest.mark.asyncio
    async def test_directory_refresh(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        assert len(bridge.list_devices()) == 5
        assert bridge.registry.by_ieee(COORDINATOR_IEEE) is not None

    @pytest.mark.asyncio
    async def test_malformed_directory_keeps_previous(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        assert await bridge.handle_message(DEVICES_TOPIC, "oops") == []
        assert len(bridge.list_devices()) == 5

    @pytest.mark.asyncio
    async def test_groups_refresh(self, bridge: Zigbee2MQTTBridge):
        groups = [{"id": 7, "friendly_name": "Downstairs", "members": [{"ieee_address": BULB_IEEE}]}]
        _ = await bridge.handle_message("zigbee2mqtt/bridge/groups", json.dumps(groups))
        assert [g.friendly_name for g in bridge.list_groups()] == ["Downstairs"]

    @pytest.mark.asyncio
    async def test_state_for_claimed_device(
        self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        events = await bridge.handle_message("zigbee2mqtt/Kitchen Bulb", '{"state": "ON", "brightness": 128}')
        assert [(e.name, e.value) for e in events] == [(AttributeKind.SWITCH, "on"), (AttributeKind.LEVEL, 50)]
        assert _bulb(sink).current_value("level") == 50

    @pytest.mark.asyncio
    async def test_state_for_unclaimed_device_ignored(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        assert await bridge.handle_message("zigbee2mqtt/Front Door", '{"contact": true}') == []

    @pytest.mark.asyncio
    async def test_state_for_unknown_friendly_name(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        assert await bridge.handle_message("zigbee2mqtt/Garage", '{"state": "ON"}') == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("suffix", ["set", "get", "availability", "action", "click"])
    async def test_reserved_suffix_never_reaches_device(
        self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink, suffix: str
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        assert await bridge.handle_message(f"zigbee2mqtt/Kitchen Bulb/{suffix}", '{"state": "ON"}') == []
        assert not _bulb(sink).events

    @pytest.mark.asyncio
    async def test_non_json_state_ignored(
        self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        assert await bridge.handle_message("zigbee2mqtt/Kitchen Bulb", "online") == []
        assert not _bulb(sink).events

    @pytest.mark.asyncio
    async def test_state_after_rename(
        self, bridge: Zigbee2MQTTBridge, directory: list[JSONDict], sink: InMemoryDeviceSink
    ):
        await _load_directory(bridge, json.dumps(directory))
        _ = bridge.claim_devices([BULB_IEEE])
        for entry in directory:
            if entry["ieee_address"] == BULB_IEEE:
                entry["friendly_name"] = "Pantry Bulb"
        await _load_directory(bridge, json.dumps(directory))
        assert await bridge.handle_message("zigbee2mqtt/Kitchen Bulb", '{"state": "ON"}') == []
        events = await bridge.handle_message("zigbee2mqtt/Pantry Bulb", '{"state": "OFF"}')
        assert [e.value for e in events] == ["off"]
        assert _bulb(sink).current_value("switch") == "off"

    @pytest.mark.asyncio
    async def test_delivered_through_transport(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, directory: list[JSONDict], sink: InMemoryDeviceSink
    ):
        await fake_transport.deliver(DEVICES_TOPIC, directory)
        _ = bridge.claim_devices([THERMO_IEEE])
        await fake_transport.deliver("zigbee2mqtt/Porch Thermometer", {"temperature": 70.7, "linkquality": 90})
        thermo = sink.find_device_by_key(device_key("1", THERMO_IEEE))
        assert thermo is not None
        assert thermo.current_value("temperature") == 21.5

    @pytest.mark.asyncio
    async def test_unsupported_attribute_not_recorded(
        self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        events = await bridge.handle_message("zigbee2mqtt/Kitchen Bulb", '{"state": "ON", "contact": true}')
        assert [e.name for e in events] == [AttributeKind.SWITCH, AttributeKind.CONTACT]
        assert _bulb(sink).current_value("switch") == "on"
        assert not _bulb(sink).has_attribute("contact")
        assert sink.last_event(BULB_KEY, "contact") is None

    @pytest.mark.asyncio
    async def test_description_logged_only_on_change(
        self,
        bridge: Zigbee2MQTTBridge,
        directory_payload: str,
        caplog: pytest.LogCaptureFixture,
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        bridge.settings.enable_desc = True
        with caplog.at_level(logging.INFO, logger="z2m_bridge"):
            for payload in ('{"state": "ON"}', '{"state": "ON"}', '{"state": "OFF", "contact": true}'):
                _ = await bridge.handle_message("zigbee2mqtt/Kitchen Bulb", payload)
        described = [r.getMessage() for r in caplog.records if "Kitchen Bulb switch" in r.getMessage()]
        assert [m.split(" ", 1)[1] for m in described] == ["Kitchen Bulb switch is on", "Kitchen Bulb switch is off"]


class TestPublishing:
    """Tests for outbound publishes."""

    @pytest.mark.asyncio
    async def test_publish_for_ieee_sends_json(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, directory_payload: str
    ):
        await _load_directory(bridge, directory_payload)
        fake_transport.connected = True
        assert await bridge.publish_for_ieee(BULB_IEEE, "set", {"state": "ON"}) is True
        assert fake_transport.published == [("zigbee2mqtt/Kitchen Bulb/set", '{"state": "ON"}', 0, False)]

    @pytest.mark.asyncio
    async def test_publish_for_unknown_ieee(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, directory_payload: str
    ):
        await _load_directory(bridge, directory_payload)
        fake_transport.connected = True
        assert await bridge.publish_for_ieee("0xffffffffffffffff", "set", {"state": "ON"}) is False
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_publish_while_disconnected(
        self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport, directory_payload: str
    ):
        await _load_directory(bridge, directory_payload)
        assert await bridge.publish_for_ieee(BULB_IEEE, "set", "ON") is False
        assert await bridge.publish("bridge/request/health_check") is False
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_publish_relative_to_base_topic(self, bridge: Zigbee2MQTTBridge, fake_transport: FakeTransport):
        fake_transport.connected = True
        assert await bridge.publish("bridge/request/permit_join", '{"value": true}', qos=1) is True
        assert fake_transport.published == [("zigbee2mqtt/bridge/request/permit_join", '{"value": true}', 1, False)]

    @pytest.mark.asyncio
    async def test_device_command_round_trip(
        self,
        bridge: Zigbee2MQTTBridge,
        fake_transport: FakeTransport,
        directory_payload: str,
        sink: InMemoryDeviceSink,
    ):
        await _load_directory(bridge, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        fake_transport.connected = True
        assert await bridge.commands.set_level(_bulb(sink), 100) is True
        assert fake_transport.published[-1][:2] == ("zigbee2mqtt/Kitchen Bulb/set", '{"brightness": 255}')

    def test_code_length_reaches_lock(self, bridge: Zigbee2MQTTBridge, sink: InMemoryDeviceSink):
        lock = sink.create_device(
            DriverAssignment(CONTACT_IEEE, "zig2m Component Lock", "Zigbee2MQTT"),
            device_key("1", CONTACT_IEEE),
            {"name": "Back Door Lock"},
        )
        bridge.commands.set_code_length(lock, 4)
        assert lock.current_value("codeLength") == 4

    def test_code_length_ignored_by_bulb(self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink):
        _ = bridge.registry.refresh_devices(DEVICES_TOPIC, directory_payload)
        _ = bridge.claim_devices([BULB_IEEE])
        bridge.commands.set_code_length(_bulb(sink), 4)
        assert _bulb(sink).current_value("codeLength") is None


class TestDeviceManagement:
    """Tests for claiming, inventory and directory dumps."""

    @pytest.mark.asyncio
    async def test_claim_devices(self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink):
        await _load_directory(bridge, directory_payload)
        created = bridge.claim_devices([BULB_IEEE, MOTION_IEEE, "0xffffffffffffffff"])
        assert [d.key for d in created] == [BULB_KEY, device_key("1", MOTION_IEEE)]
        bulb = _bulb(sink)
        assert bulb.profile_name == EFFECTS_BULB_PROFILE
        assert bulb.data_values == {"vendor": "Philips", "model": "9290022166"}
        assert bulb.light_effects == ["blink", "breathe", "okay"]
        assert bulb.display_name == "Kitchen Bulb"

    @pytest.mark.asyncio
    async def test_claim_is_idempotent(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        assert len(bridge.claim_devices([CONTACT_IEEE])) == 1
        assert bridge.claim_devices([CONTACT_IEEE]) == []

    @pytest.mark.asyncio
    async def test_claim_keeps_existing_assignment(
        self, bridge: Zigbee2MQTTBridge, directory_payload: str, sink: InMemoryDeviceSink
    ):
        await _load_directory(bridge, directory_payload)
        bridge.assignments[BULB_IEEE] = DriverAssignment(BULB_IEEE, "Generic Component Switch", "hubitat")
        _ = bridge.claim_devices([BULB_IEEE])
        assert _bulb(sink).profile_name == "Generic Component Switch"
        assert _bulb(sink).light_effects == []

    @pytest.mark.asyncio
    async def test_inventory(self, bridge: Zigbee2MQTTBridge, directory: list[JSONDict]):
        await _load_directory(bridge, json.dumps(directory))
        _ = bridge.claim_devices([BULB_IEEE, CONTACT_IEEE])
        remaining = [d for d in directory if d["ieee_address"] != CONTACT_IEEE]
        await _load_directory(bridge, json.dumps(remaining))

        inventory = bridge.device_inventory()
        assert [d.key for d in inventory.claimed] == [BULB_KEY]
        assert sorted(d.ieee_address for d in inventory.unclaimed) == sorted([MOTION_IEEE, THERMO_IEEE])
        assert [d.key for d in inventory.abandoned] == [device_key("1", CONTACT_IEEE)]

    @pytest.mark.asyncio
    async def test_log_devices_and_definition(self, bridge: Zigbee2MQTTBridge, directory_payload: str):
        await _load_directory(bridge, directory_payload)
        dump = json.loads(bridge.log_devices(pretty=False))
        assert len(dump["devices"]) == 5
        definition = bridge.definition_for(BULB_IEEE)
        assert definition is not None
        assert definition["vendor"] == "Philips"
        assert bridge.definition_for("0xffffffffffffffff") is None
