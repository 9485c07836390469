"""Shared fixtures for bridge unit tests."""

from __future__ import annotations

import json
from collections.abc import Iterator
from unittest.mock import patch

import pytest

from tests.helpers.fakes import BASE_TOPIC, FakeTransport, JSONDict, make_directory
from z2m_bridge.bridge import Zigbee2MQTTBridge
from z2m_bridge.config import BridgeSettings
from z2m_bridge.devices import InMemoryDeviceSink
from z2m_bridge.transport import ConnectionManager
from z2m_bridge.utils import broker_key


@pytest.fixture
def directory() -> list[JSONDict]:
    return make_directory()


@pytest.fixture
def directory_payload(directory: list[JSONDict]) -> str:
    return json.dumps(directory)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(
        host="broker.local",
        port=1883,
        topic=BASE_TOPIC,
        client_id="home_z2m_1",
        username="bridge",
        enable_desc=False,
        watchdog_enabled=True,
    )


@pytest.fixture
def sink() -> InMemoryDeviceSink:
    return InMemoryDeviceSink(broker_key=broker_key("1"))


@pytest.fixture
def no_pauses() -> Iterator[None]:
    """Zero every bounded pause so state machine tests run instantly."""
    with (
        patch.object(ConnectionManager, "reinitialize_pause", 0),
        patch.object(ConnectionManager, "force_reconnect_pause", 0),
        patch.object(ConnectionManager, "connect_settle_delay", 0),
    ):
        yield


@pytest.fixture
def bridge(
    settings: BridgeSettings,
    sink: InMemoryDeviceSink,
    fake_transport: FakeTransport,
    no_pauses: None,
) -> Iterator[Zigbee2MQTTBridge]:
    bridge = Zigbee2MQTTBridge(settings, sink, session_id="1", transport=fake_transport)
    yield bridge
    for name in bridge.scheduler.pending:
        _ = bridge.scheduler.cancel(name)
