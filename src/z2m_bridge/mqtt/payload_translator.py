"""Translate Zigbee2MQTT device state payloads into attribute events."""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from z2m_bridge.exceptions import MalformedPayloadError
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import AttributeEvent, AttributeKind, AttributeValue, DeviceDescriptor
from z2m_bridge.utils import (
    celsius_to_fahrenheit,
    color_temperature_name,
    fahrenheit_to_celsius,
    hue_color_name,
    round_half_up,
)

__all__ = ["PayloadTranslator", "native_temperature_unit", "parse_state_payload"]

logger = get_logger(__name__)

SUPPRESSED_FIELDS: frozenset[str] = frozenset({"linkquality", "update"})

type TemperatureScale = Literal["C", "F"]
type _Events = list[tuple[AttributeKind, AttributeValue, str | None]]


def parse_state_payload(topic: str, payload: str) -> dict[str, Any]:
    """Decode a device state payload. Raises MalformedPayloadError unless it is a JSON object."""
    if not payload.lstrip().startswith("{"):
        raise MalformedPayloadError(topic, "probably not JSON")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedPayloadError(topic, f"not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedPayloadError(topic, f"expected a JSON object, got {type(data).__name__}")
    return data


def native_temperature_unit(device: DeviceDescriptor | None) -> TemperatureScale:
    """Unit a device reports temperature in, from its ``temperature`` capability."""
    if device is None:
        return "C"
    expose = device.find_expose("temperature")
    if expose is None:
        expose = next(
            (f for e in device.exposes for f in e.features if f.name == "temperature"),
            None,
        )
    unit = expose.unit if expose is not None else None
    return "F" if unit and unit.endswith("F") else "C"


def _rounded(value: Any) -> int:
    return int(round_half_up(float(value)))


class PayloadTranslator:
    """Field-by-field mapping from broker JSON to normalized events.

    Each field is handled on its own; unknown fields produce no events.
    """

    lp: str = "translator:"

    def __init__(self, temperature_scale: TemperatureScale = "C") -> None:
        self.temperature_scale: TemperatureScale = temperature_scale
        self._handlers: dict[str, Callable[[Any, dict[str, Any], DeviceDescriptor | None], _Events]] = {
            "state": self._state,
            "brightness": self._brightness,
            "color_temp": self._color_temp,
            "color": self._color,
            "battery": self._battery,
            "contact": self._contact,
            "humidity": self._humidity,
            "illuminance_lux": self._illuminance,
            "moving": self._moving,
            "occupancy": self._occupancy,
            "temperature": self._temperature,
            "water_leak": self._water_leak,
            "action": self._action,
        }

    def translate(
        self,
        friendly_name: str,
        payload: str,
        device: DeviceDescriptor | None = None,
    ) -> list[AttributeEvent]:
        """Return the events for one state message (empty for non-JSON payloads)."""
        lp = f"{self.lp}translate:"
        try:
            data = parse_state_payload(friendly_name, payload)
        except MalformedPayloadError as exc:
            logger.debug("%s not parsing payload to events: %s (%r)", lp, exc.reason, payload[:120])
            return []
        return self.translate_fields(friendly_name, data, device)

    def translate_fields(
        self,
        friendly_name: str,
        data: dict[str, Any],
        device: DeviceDescriptor | None = None,
    ) -> list[AttributeEvent]:
        lp = f"{self.lp}translate:"
        collected: _Events = []
        for key, value in data.items():
            handler = self._handlers.get(key)
            if handler is not None:
                try:
                    collected.extend(handler(value, data, device))
                except (TypeError, ValueError, ArithmeticError):
                    logger.debug("%s skipping unparseable %s = %r", lp, key, value)
            elif key.endswith("_axis") and len(key) == 6:
                collected.append((AttributeKind.THREE_AXIS, {key[0].lower(): value}, None))
            elif key not in SUPPRESSED_FIELDS:
                logger.debug("%s ignoring %s = %s", lp, key, value)
        events = [
            AttributeEvent(name, value, unit, f"{friendly_name} {name} is {value}") for name, value, unit in collected
        ]
        logger.debug("%s %s -> %s event(s)", lp, friendly_name, len(events))
        return events

    # Actuators

    def _state(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        return [(AttributeKind.SWITCH, "on" if value == "ON" else "off", None)]

    def _brightness(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if value is None:
            return []
        return [(AttributeKind.LEVEL, _rounded(float(value) / 255 * 100), "%")]

    def _color_temp(self, value: Any, data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if not value:
            return []
        kelvin = _rounded(1_000_000 / float(value))
        events: _Events = [(AttributeKind.COLOR_TEMPERATURE, kelvin, "K")]
        if data.get("color_mode") == "ct":
            name = color_temperature_name(kelvin)
            if name is not None:
                events.append((AttributeKind.COLOR_NAME, name, None))
        return events

    def _color(self, value: Any, data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if not isinstance(value, dict):
            return []
        events: _Events = []
        hue: int | None = None
        saturation: int | None = None
        if value.get("hue") is not None:
            hue = _rounded(float(value["hue"]) / 3.6)
            events.append((AttributeKind.HUE, hue, "%"))
        if value.get("saturation") is not None:
            saturation = _rounded(value["saturation"])
            events.append((AttributeKind.SATURATION, saturation, "%"))
        if not events:
            logger.debug("%s not parsing color because hue/sat not provided (may be xy-only?)", self.lp)
        elif data.get("color_mode") != "ct":
            color_name = hue_color_name(hue or 0, 100 if saturation is None else saturation)
            events.append((AttributeKind.COLOR_NAME, color_name, None))
        return events

    # Sensors

    def _battery(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if not value:
            return []
        return [(AttributeKind.BATTERY, _rounded(value), "%")]

    def _contact(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        return [(AttributeKind.CONTACT, "closed" if value is True else "open", None)]

    def _humidity(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if value is None:
            return []
        return [(AttributeKind.HUMIDITY, _rounded(value), "%")]

    def _illuminance(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        if value is None:
            return []
        return [(AttributeKind.ILLUMINANCE, _rounded(value), "lux")]

    def _moving(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        return [(AttributeKind.ACCELERATION, "active" if value is True else "inactive", None)]

    def _occupancy(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        return [(AttributeKind.MOTION, "active" if value is True else "inactive", None)]

    def _temperature(self, value: Any, _data: dict[str, Any], device: DeviceDescriptor | None) -> _Events:
        if value is None:
            return []
        try:
            reading = Decimal(str(value))
        except InvalidOperation:
            logger.debug("%s ignoring non-numeric temperature %r", self.lp, value)
            return []
        if not reading.is_finite():
            logger.debug("%s ignoring non-finite temperature %r", self.lp, value)
            return []
        native = native_temperature_unit(device)
        if native == "C" and self.temperature_scale == "F":
            reading = celsius_to_fahrenheit(reading)
        elif native == "F" and self.temperature_scale == "C":
            reading = fahrenheit_to_celsius(reading)
        converted = float(round_half_up(reading, 1))
        return [(AttributeKind.TEMPERATURE, converted, f"°{self.temperature_scale}")]

    def _water_leak(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        return [(AttributeKind.WATER, "wet" if value is True else "dry", None)]

    # Buttons

    def _action(self, value: Any, _data: dict[str, Any], _device: DeviceDescriptor | None) -> _Events:
        # mapped to pushed/held/released by the device-specific handler downstream
        return [(AttributeKind.ACTION, value, None)]
