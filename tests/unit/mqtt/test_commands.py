"""Unit tests for outbound device commands."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.helpers.fakes import BULB_IEEE
from z2m_bridge.devices import ChildDevice
from z2m_bridge.mqtt import ComponentCommands
from z2m_bridge.mqtt.commands import BRIGHTNESS_MOVE_RATE
from z2m_bridge.structs import AttributeEvent, AttributeKind, DriverAssignment
from z2m_bridge.utils import device_key


@pytest.fixture
def publisher() -> MagicMock:
    mock = MagicMock()
    mock.publish_for_ieee = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def commands(publisher: MagicMock):
    with patch.object(ComponentCommands, "refresh_pause", 0):
        yield ComponentCommands(publisher)


@pytest.fixture
def bulb() -> ChildDevice:
    assignment = DriverAssignment(BULB_IEEE, "Generic Component RGBW", "hubitat")
    return ChildDevice(device_key("1", BULB_IEEE), assignment, {"name": "Kitchen Bulb"})


def _sent(publisher: MagicMock) -> dict[str, object]:
    args = publisher.publish_for_ieee.await_args.args
    assert args[0] == BULB_IEEE
    assert args[1] == "set"
    return args[2]


class TestSwitchAndLevel:
    """Tests for on/off and level commands."""

    @pytest.mark.asyncio
    async def test_on_off(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        assert await commands.on(bulb) is True
        assert _sent(publisher) == {"state": "ON"}
        _ = await commands.off(bulb)
        assert _sent(publisher) == {"state": "OFF"}

    @pytest.mark.asyncio
    async def test_set_level_scales_to_brightness(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        _ = await commands.set_level(bulb, 50)
        assert _sent(publisher) == {"brightness": 128}

    @pytest.mark.asyncio
    async def test_set_level_with_transition(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        _ = await commands.set_level(bulb, 100, 2)
        assert _sent(publisher) == {"brightness": 255, "transition": 2}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("direction", "rate"), [("up", BRIGHTNESS_MOVE_RATE), ("down", -BRIGHTNESS_MOVE_RATE)])
    async def test_level_change(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice, direction: str, rate: int
    ):
        _ = await commands.start_level_change(bulb, direction)
        assert _sent(publisher) == {"brightness_move": rate}
        _ = await commands.stop_level_change(bulb)
        assert _sent(publisher) == {"brightness_move": 0}

    @pytest.mark.asyncio
    async def test_publish_failure_is_returned(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        publisher.publish_for_ieee.return_value = False
        assert await commands.on(bulb) is False


class TestColor:
    """Tests for colour and colour temperature commands."""

    @pytest.mark.asyncio
    async def test_color_temperature_turns_light_on(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        _ = await commands.set_color_temperature(bulb, 2700)
        assert _sent(publisher) == {"color_temp": 370, "state": "ON"}

    @pytest.mark.asyncio
    async def test_color_temperature_when_already_on(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        bulb.apply([AttributeEvent(AttributeKind.SWITCH, "on")])
        _ = await commands.set_color_temperature(bulb, 4000, level=20, transition_time=1)
        assert _sent(publisher) == {"color_temp": 250, "brightness": 51, "transition": 1}

    @pytest.mark.asyncio
    async def test_set_color_sends_rgb(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        bulb.apply([AttributeEvent(AttributeKind.SWITCH, "on")])
        _ = await commands.set_color(bulb, {"hue": 0, "saturation": 100, "level": 100})
        assert _sent(publisher) == {"color": {"rgb": "255,0,0"}}

    @pytest.mark.asyncio
    async def test_set_color_uses_current_level(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        bulb.apply([AttributeEvent(AttributeKind.LEVEL, 50), AttributeEvent(AttributeKind.SWITCH, "on")])
        _ = await commands.set_color(bulb, {"hue": 0, "saturation": 0, "rate": 3})
        assert _sent(publisher) == {"color": {"rgb": "128,128,128"}, "transition": 3}

    @pytest.mark.asyncio
    async def test_set_color_hs(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        _ = await commands.set_color_hs(bulb, {"hue": 36, "saturation": 80, "level": 60})
        assert _sent(publisher) == {"color": {"h": 10, "s": 80, "v": 60}, "state": "ON"}

    @pytest.mark.asyncio
    async def test_set_hue_keeps_saturation(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        bulb.apply(
            [
                AttributeEvent(AttributeKind.SWITCH, "on"),
                AttributeEvent(AttributeKind.SATURATION, 100),
                AttributeEvent(AttributeKind.LEVEL, 100),
            ]
        )
        _ = await commands.set_hue(bulb, 0)
        assert _sent(publisher) == {"color": {"rgb": "255,0,0"}}
        _ = await commands.set_saturation(bulb, 0)
        assert _sent(publisher) == {"color": {"rgb": "255,255,255"}}

    @pytest.mark.asyncio
    async def test_set_effect(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        assert await commands.set_effect(bulb, "breathe") is True
        assert _sent(publisher) == {"effect": "breathe"}

    @pytest.mark.asyncio
    async def test_effect_number_rejected(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        assert await commands.set_effect(bulb, 2) is False
        publisher.publish_for_ieee.assert_not_awaited()


class TestRefresh:
    """Tests for refresh()."""

    @pytest.mark.asyncio
    async def test_refresh_asks_for_supported_attributes(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        assert await commands.refresh(bulb) == 4
        payloads = [c.args[2] for c in publisher.publish_for_ieee.await_args_list]
        assert payloads == [{"state": ""}, {"brightness": ""}, {"color": {"x": "", "y": ""}}, {"color_temp": ""}]
        assert {c.args[1] for c in publisher.publish_for_ieee.await_args_list} == {"get"}

    @pytest.mark.asyncio
    async def test_refresh_counts_successful_publishes(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        publisher.publish_for_ieee.side_effect = [True, False]
        assert await commands.refresh(bulb, [{"state": ""}, {"brightness": ""}]) == 1


class TestLocksAndRaw:
    """Tests for lock commands and raw publishes."""

    @pytest.mark.asyncio
    async def test_lock_unlock(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        _ = await commands.lock(bulb)
        assert _sent(publisher) == {"state": "LOCK"}
        _ = await commands.unlock(bulb)
        assert _sent(publisher) == {"state": "UNLOCK"}

    @pytest.mark.asyncio
    async def test_set_and_delete_code(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        _ = await commands.set_code(bulb, 2, "1234", "guest")
        assert _sent(publisher) == {"pin_code": {"user": 2, "user_enabled": True, "pin_code": 1234}}
        _ = await commands.delete_code(bulb, 2)
        assert _sent(publisher) == {"pin_code": {"user": 2, "user_enabled": False, "pin_code": None}}

    @pytest.mark.asyncio
    async def test_non_numeric_code_rejected(
        self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice
    ):
        assert await commands.set_code(bulb, 1, "12ab") is False
        publisher.publish_for_ieee.assert_not_awaited()

    def test_code_length_is_local(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        commands.set_code_length(bulb, 6)
        publisher.emit_to.assert_called_once_with(bulb.key, [AttributeEvent(AttributeKind.CODE_LENGTH, 6)])

    @pytest.mark.asyncio
    async def test_raw_publish(self, commands: ComponentCommands, publisher: MagicMock, bulb: ChildDevice):
        _ = await commands.publish(bulb, "set/state", "ON")
        publisher.publish_for_ieee.assert_awaited_once_with(BULB_IEEE, "set/state", "ON")
