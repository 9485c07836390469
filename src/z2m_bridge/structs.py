"""Core data structures and typing protocols for the broker bridge."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


class SessionState(Enum):
    """Broker session state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class CapabilityDescriptor(BaseModel):
    """One entry of a device's ``exposes`` list.

    Composite exposes (``light``, ``switch``, ``lock``) carry no ``name`` of
    their own; their sub-capabilities live in ``features``.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    type: str | None = None
    property: str | None = None
    unit: str | None = None
    values: list[Any] | None = None
    features: list[CapabilityDescriptor] = Field(default_factory=list)

    def feature_names(self) -> set[str]:
        return {f.name for f in self.features if f.name}


class DeviceDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vendor: str | None = None
    model: str | None = None
    description: str | None = None
    exposes: list[CapabilityDescriptor] = Field(default_factory=list)


class DeviceDescriptor(BaseModel):
    """One device entry from ``<base>/bridge/devices``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ieee_address: str
    friendly_name: str
    type: str = "device"
    definition: DeviceDefinition | None = None

    @property
    def is_coordinator(self) -> bool:
        return self.type.casefold() == "coordinator"

    @property
    def exposes(self) -> list[CapabilityDescriptor]:
        return self.definition.exposes if self.definition else []

    @property
    def vendor(self) -> str | None:
        return self.definition.vendor if self.definition else None

    @property
    def model(self) -> str | None:
        return self.definition.model if self.definition else None

    def find_expose(self, name: str) -> CapabilityDescriptor | None:
        return next((e for e in self.exposes if e.name == name), None)


class GroupMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ieee_address: str
    endpoint: int | None = None


class GroupDescriptor(BaseModel):
    """One group entry from ``<base>/bridge/groups``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    friendly_name: str
    members: list[GroupMember] = Field(default_factory=list)


class AttributeKind(StrEnum):
    """Closed set of attribute names the translator can emit."""

    SWITCH = "switch"
    LEVEL = "level"
    COLOR_TEMPERATURE = "colorTemperature"
    COLOR_NAME = "colorName"
    HUE = "hue"
    SATURATION = "saturation"
    BATTERY = "battery"
    CONTACT = "contact"
    HUMIDITY = "humidity"
    ILLUMINANCE = "illuminance"
    ACCELERATION = "acceleration"
    MOTION = "motion"
    TEMPERATURE = "temperature"
    WATER = "water"
    THREE_AXIS = "threeAxis"
    ACTION = "action"
    STATUS = "status"
    CODE_LENGTH = "codeLength"


type AttributeValue = str | int | float | dict[str, Any]


@dataclass(frozen=True, slots=True)
class AttributeEvent:
    """A normalized attribute change, produced transiently and never persisted."""

    name: AttributeKind
    value: AttributeValue
    unit: str | None = None
    description_text: str | None = None

    def as_dict(self) -> dict[str, Any]:
        event: dict[str, Any] = {"name": str(self.name), "value": self.value}
        if self.unit is not None:
            event["unit"] = self.unit
        if self.description_text is not None:
            event["descriptionText"] = self.description_text
        return event


@dataclass(frozen=True, slots=True)
class DriverAssignment:
    """Profile chosen for a device at claim time."""

    ieee_address: str
    profile_name: str
    profile_namespace: str


@dataclass(slots=True)
class DeviceInventory:
    """Directory entries split by claim status (abandoned = claimed but no longer reported)."""

    claimed: list[DeviceHandle] = field(default_factory=list)
    unclaimed: list[DeviceDescriptor] = field(default_factory=list)
    abandoned: list[DeviceHandle] = field(default_factory=list)


class DeviceHandle(Protocol):
    """A hub-side child device, as handed out by the device sink."""

    key: str
    display_name: str
    profile_name: str

    def current_value(self, attribute: str) -> Any:
        """Return the last value recorded for an attribute, or None."""
        ...

    def has_attribute(self, attribute: str) -> bool:
        """Return True if the device's profile supports the attribute."""
        ...

    def update_data_value(self, name: str, value: str) -> None:
        """Store a free-form data value (vendor, model) on the device."""
        ...

    def set_light_effects(self, effects: Sequence[str]) -> None:
        """Hand the list of supported effect names to the device."""
        ...


class DeviceSink(Protocol):
    """Hub-side collaborator that owns child devices and receives events."""

    def emit(self, device_key: str, events: Sequence[AttributeEvent]) -> None:
        """Deliver events to a device (or to the broker device itself)."""
        ...

    def find_device_by_key(self, key: str) -> DeviceHandle | None:
        """Look up a child device by its key."""
        ...

    def create_device(self, profile: DriverAssignment, key: str, properties: Mapping[str, Any]) -> DeviceHandle:
        """Create a child device with the given profile."""
        ...

    def list_claimed_devices(self) -> list[DeviceHandle]:
        """Return every child device created for this session."""
        ...


class SettingsStore(Protocol):
    """Read-only key/value access to connection parameters and feature flags."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return a setting value, or ``default`` when unset."""
        ...
