"""In-process device sink used by the CLI and the tests."""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Mapping, Sequence
from typing import Any, override

from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import AttributeEvent, AttributeKind, DriverAssignment

__all__ = ["ChildDevice", "InMemoryDeviceSink"]

logger = get_logger(__name__)

EVENT_HISTORY_SIZE = 50

# Attributes each profile supports, by the profile name prefix keywords
_PROFILE_ATTRIBUTES: tuple[tuple[str, frozenset[str]], ...] = (
    ("Motion", frozenset({"motion"})),
    ("Temperature", frozenset({"temperature"})),
    ("Humidity", frozenset({"humidity"})),
    ("Lux", frozenset({"illuminance"})),
    ("Battery", frozenset({"battery"})),
    ("Contact", frozenset({"contact", "battery"})),
    ("Acceleration", frozenset({"acceleration", "threeAxis"})),
    ("RGBW", frozenset({"switch", "level", "hue", "saturation", "colorTemperature", "colorName"})),
    ("RGB", frozenset({"switch", "level", "hue", "saturation", "colorName"})),
    ("CT", frozenset({"switch", "level", "colorTemperature", "colorName"})),
    ("Effects", frozenset({"effectName"})),
    ("Button", frozenset({"action", "pushed", "held", "released"})),
    ("Switch", frozenset({"switch"})),
    ("Water", frozenset({"water", "battery"})),
    ("Lock", frozenset({"lock", "codeLength"})),
)


def _attributes_for(profile_name: str) -> frozenset[str]:
    words = set(re.findall(r"[A-Za-z]+", profile_name))
    supported: set[str] = set()
    for keyword, attributes in _PROFILE_ATTRIBUTES:
        if keyword in words:
            supported |= attributes
    return frozenset(supported)


class ChildDevice:
    """A child device held in memory."""

    def __init__(self, key: str, assignment: DriverAssignment, properties: Mapping[str, Any] | None = None) -> None:
        properties = dict(properties or {})
        self.key: str = key
        self.assignment: DriverAssignment = assignment
        self.display_name: str = str(properties.get("name") or properties.get("label") or key)
        self.properties: dict[str, Any] = properties
        self.data_values: dict[str, str] = {}
        self.light_effects: list[str] = []
        self.attributes: dict[str, Any] = {}
        self.events: deque[AttributeEvent] = deque(maxlen=EVENT_HISTORY_SIZE)
        # profiles with no known attributes (the generic device) pass everything through
        self._supported: frozenset[str] = _attributes_for(assignment.profile_name)

    @property
    def profile_name(self) -> str:
        return self.assignment.profile_name

    @property
    def ieee_address(self) -> str:
        return self.assignment.ieee_address

    def current_value(self, attribute: str) -> Any:
        return self.attributes.get(attribute)

    def has_attribute(self, attribute: str) -> bool:
        return not self._supported or attribute in self._supported or attribute in self.attributes

    def update_data_value(self, name: str, value: str) -> None:
        self.data_values[name] = value

    def set_light_effects(self, effects: Sequence[str]) -> None:
        self.light_effects = list(effects)

    def apply(self, events: Sequence[AttributeEvent]) -> list[AttributeEvent]:
        """Record events for supported attributes; returns the ones that changed a value."""
        changed: list[AttributeEvent] = []
        for event in events:
            name = str(event.name)
            if not self.has_attribute(name):
                continue
            self.events.append(event)
            if self.attributes.get(name) != event.value:
                changed.append(event)
            self.attributes[name] = event.value
        return changed

    @override
    def __repr__(self) -> str:
        return f"ChildDevice(key={self.key!r}, profile={self.profile_name!r})"


class InMemoryDeviceSink:
    """Keeps child devices in a dict and logs every event that changes a value.

    Events sent to the broker key itself (``status``) are recorded in
    ``broker_events``.
    """

    lp: str = "sink:"

    def __init__(self, broker_key: str | None = None) -> None:
        self.broker_key: str | None = broker_key
        self.devices: dict[str, ChildDevice] = {}
        self.broker_events: deque[AttributeEvent] = deque(maxlen=EVENT_HISTORY_SIZE)

    def emit(self, device_key: str, events: Sequence[AttributeEvent]) -> None:
        if device_key == self.broker_key:
            self.broker_events.extend(events)
            return
        device = self.devices.get(device_key)
        if device is None:
            logger.debug("%s no child device %s; dropping %s event(s)", self.lp, device_key, len(events))
            return
        changed = device.apply(events)
        for event in changed:
            logger.debug("%s %s <- %s", self.lp, device.display_name, event.as_dict())
        dropped = [str(e.name) for e in events if not device.has_attribute(str(e.name))]
        if dropped:
            logger.debug("%s %s does not support %s; dropped", self.lp, device.display_name, dropped)

    def find_device_by_key(self, key: str) -> ChildDevice | None:
        return self.devices.get(key)

    def create_device(self, profile: DriverAssignment, key: str, properties: Mapping[str, Any]) -> ChildDevice:
        if key in self.devices:
            return self.devices[key]
        device = ChildDevice(key, profile, properties)
        self.devices[key] = device
        logger.info(
            "%s created %s (%s:%s)",
            self.lp,
            device.display_name,
            profile.profile_namespace,
            profile.profile_name,
        )
        return device

    def list_claimed_devices(self) -> list[ChildDevice]:
        return list(self.devices.values())

    def last_event(self, device_key: str, name: AttributeKind | str) -> AttributeEvent | None:
        events = self.broker_events if device_key == self.broker_key else getattr(self.devices.get(device_key), "events", [])
        return next((e for e in reversed(events) if str(e.name) == str(name)), None)
