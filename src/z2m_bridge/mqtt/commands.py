"""Outbound commands for claimed child devices.

Each command resolves the device's IEEE address from its key and publishes a
JSON payload to ``<base>/<friendlyName>/set`` (or ``/get`` for refreshes).
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol

from z2m_bridge.const import REFRESH_PUBLISH_PAUSE
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import AttributeEvent, AttributeKind, DeviceHandle
from z2m_bridge.utils import hsv_to_rgb, ieee_from_key, kelvin_to_mireds, level_to_brightness

__all__ = ["BRIGHTNESS_MOVE_RATE", "ComponentCommands", "CommandPublisher"]

logger = get_logger(__name__)

BRIGHTNESS_MOVE_RATE = 85


class CommandPublisher(Protocol):
    async def publish_for_ieee(
        self,
        ieee: str,
        sub_topic: str | None = None,
        payload: Any = "",
        qos: int = 0,
        retained: bool = False,
    ) -> bool: ...

    def emit_to(self, device_key: str, events: list[AttributeEvent]) -> None: ...


def _number(value: Any, fallback: float = 0) -> float:
    return fallback if value is None else float(value)


class ComponentCommands:
    """Command surface the hub's child devices call back into."""

    lp: str = "commands:"
    refresh_pause: float = REFRESH_PUBLISH_PAUSE

    def __init__(self, publisher: CommandPublisher) -> None:
        self.publisher: CommandPublisher = publisher

    async def _set(self, device: DeviceHandle, payload: Mapping[str, Any]) -> bool:
        return await self.publisher.publish_for_ieee(ieee_from_key(device.key), "set", dict(payload))

    @staticmethod
    def _turn_on_if_off(device: DeviceHandle, payload: dict[str, Any]) -> dict[str, Any]:
        if device.current_value("switch") != "on":
            payload["state"] = "ON"
        return payload

    async def refresh(self, device: DeviceHandle, payloads: list[dict[str, Any]] | None = None) -> int:
        """Ask the broker to re-report each supported attribute; returns publishes made."""
        lp = f"{self.lp}refresh:"
        if payloads is None:
            payloads = []
            if device.has_attribute("switch"):
                payloads.append({"state": ""})
            if device.has_attribute("level"):
                payloads.append({"brightness": ""})
            if device.has_attribute("hue"):
                payloads.append({"color": {"x": "", "y": ""}})
            if device.has_attribute("colorTemperature"):
                payloads.append({"color_temp": ""})
            if device.has_attribute("lock"):
                payloads.append({"state": ""})
        logger.debug("%s %s: %s", lp, device.display_name, payloads)
        ieee = ieee_from_key(device.key)
        sent = 0
        for payload in payloads:
            if await self.publisher.publish_for_ieee(ieee, "get", payload):
                sent += 1
            await asyncio.sleep(self.refresh_pause)
        return sent

    async def on(self, device: DeviceHandle) -> bool:
        return await self._set(device, {"state": "ON"})

    async def off(self, device: DeviceHandle) -> bool:
        return await self._set(device, {"state": "OFF"})

    async def set_level(self, device: DeviceHandle, level: float, transition_time: float | None = None) -> bool:
        payload: dict[str, Any] = {"brightness": level_to_brightness(level)}
        if transition_time is not None:
            payload["transition"] = transition_time
        return await self._set(device, payload)

    async def start_level_change(self, device: DeviceHandle, direction: str) -> bool:
        rate = BRIGHTNESS_MOVE_RATE if direction.lower() == "up" else -BRIGHTNESS_MOVE_RATE
        return await self._set(device, {"brightness_move": rate})

    async def stop_level_change(self, device: DeviceHandle) -> bool:
        return await self._set(device, {"brightness_move": 0})

    async def set_color_temperature(
        self,
        device: DeviceHandle,
        color_temperature: float,
        level: float | None = None,
        transition_time: float | None = None,
    ) -> bool:
        payload: dict[str, Any] = {"color_temp": kelvin_to_mireds(color_temperature)}
        if level is not None:
            payload["brightness"] = level_to_brightness(level)
        if transition_time is not None:
            payload["transition"] = transition_time
        return await self._set(device, self._turn_on_if_off(device, payload))

    async def set_color(self, device: DeviceHandle, color: Mapping[str, Any]) -> bool:
        """Set colour from a hub colour map (``hue``/``saturation``/``level`` 0-100, optional ``rate``) as RGB."""
        level = color.get("level") or device.current_value("level")
        rgb = hsv_to_rgb(_number(color.get("hue")), _number(color.get("saturation")), _number(level, 100))
        payload: dict[str, Any] = {"color": {"rgb": ",".join(str(c) for c in rgb)}}
        if color.get("rate") is not None:
            payload["transition"] = color["rate"]
        return await self._set(device, self._turn_on_if_off(device, payload))

    async def set_color_hs(self, device: DeviceHandle, color: Mapping[str, Any]) -> bool:
        """Same as ``set_color`` but sends hue/saturation directly (not every device accepts it)."""
        level = color.get("level") or device.current_value("level")
        payload: dict[str, Any] = {
            "color": {
                "h": round(_number(color.get("hue")) / 3.6),
                "s": color.get("saturation"),
                "v": level,
            },
        }
        if color.get("rate") is not None:
            payload["transition"] = color["rate"]
        return await self._set(device, self._turn_on_if_off(device, payload))

    async def set_hue(self, device: DeviceHandle, hue: float) -> bool:
        rgb = hsv_to_rgb(
            hue,
            _number(device.current_value("saturation"), 100),
            _number(device.current_value("level"), 100),
        )
        payload: dict[str, Any] = {"color": {"rgb": ",".join(str(c) for c in rgb)}}
        return await self._set(device, self._turn_on_if_off(device, payload))

    async def set_saturation(self, device: DeviceHandle, saturation: float) -> bool:
        rgb = hsv_to_rgb(
            _number(device.current_value("hue")),
            saturation,
            _number(device.current_value("level"), 100),
        )
        payload: dict[str, Any] = {"color": {"rgb": ",".join(str(c) for c in rgb)}}
        return await self._set(device, self._turn_on_if_off(device, payload))

    async def set_effect(self, device: DeviceHandle, effect: str | int) -> bool:
        if not isinstance(effect, str):
            logger.warning("%s effect numbers are not supported; use the effect name", self.lp)
            return False
        return await self._set(device, {"effect": effect})

    async def publish(self, device: DeviceHandle, topic: str | None = None, payload: str | None = None) -> bool:
        """Raw publish under the device's topic."""
        return await self.publisher.publish_for_ieee(ieee_from_key(device.key), topic, payload or "")

    async def lock(self, device: DeviceHandle) -> bool:
        return await self._set(device, {"state": "LOCK"})

    async def unlock(self, device: DeviceHandle) -> bool:
        return await self._set(device, {"state": "UNLOCK"})

    async def delete_code(self, device: DeviceHandle, code_position: int) -> bool:
        return await self._set(
            device,
            {"pin_code": {"user": code_position, "user_enabled": False, "pin_code": None}},
        )

    async def set_code(self, device: DeviceHandle, code_position: int, pin_code: str, name: str | None = None) -> bool:
        try:
            pin = int(pin_code)
        except ValueError:
            logger.warning("%s PIN code for %s must be numeric", self.lp, device.display_name)
            return False
        logger.debug("%s set_code(%s, %s, name=%s)", self.lp, device.display_name, code_position, name)
        return await self._set(device, {"pin_code": {"user": code_position, "user_enabled": True, "pin_code": pin}})

    def set_code_length(self, device: DeviceHandle, code_length: int) -> None:
        """Record the code length locally; nothing is sent to the broker."""
        self.publisher.emit_to(device.key, [AttributeEvent(AttributeKind.CODE_LENGTH, code_length)])
