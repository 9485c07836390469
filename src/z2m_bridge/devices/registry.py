"""Last-known Zigbee2MQTT device and group directory for one session."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from z2m_bridge.exceptions import MalformedPayloadError
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import DeviceDescriptor, GroupDescriptor

__all__ = ["DeviceRegistry", "DirectorySnapshot", "GroupSnapshot", "parse_directory", "parse_groups"]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DirectorySnapshot:
    """Immutable device directory built from a single ``bridge/devices`` message."""

    devices: tuple[DeviceDescriptor, ...] = ()
    by_ieee: MappingProxyType[str, DeviceDescriptor] = field(default_factory=lambda: MappingProxyType({}))
    by_friendly_name: MappingProxyType[str, DeviceDescriptor] = field(default_factory=lambda: MappingProxyType({}))
    generation: int = 0

    @classmethod
    def build(cls, devices: Iterable[DeviceDescriptor], generation: int) -> DirectorySnapshot:
        entries = tuple(devices)
        return cls(
            devices=entries,
            by_ieee=MappingProxyType({d.ieee_address: d for d in entries}),
            by_friendly_name=MappingProxyType({d.friendly_name: d for d in entries}),
            generation=generation,
        )


@dataclass(frozen=True, slots=True)
class GroupSnapshot:
    groups: tuple[GroupDescriptor, ...] = ()
    generation: int = 0


def _load_json_array(topic: str, payload: str) -> list[Any]:
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedPayloadError(topic, f"not JSON: {exc}") from exc
    if not isinstance(data, list):
        raise MalformedPayloadError(topic, f"expected a JSON array, got {type(data).__name__}")
    return data


def parse_directory(topic: str, payload: str) -> list[DeviceDescriptor]:
    """Parse a ``bridge/devices`` payload; any invalid entry rejects the whole message."""
    data = _load_json_array(topic, payload)
    try:
        return [DeviceDescriptor.model_validate(entry) for entry in data]
    except ValidationError as exc:
        raise MalformedPayloadError(topic, f"invalid device entry: {exc.error_count()} error(s)") from exc


def parse_groups(topic: str, payload: str) -> list[GroupDescriptor]:
    data = _load_json_array(topic, payload)
    try:
        return [GroupDescriptor.model_validate(entry) for entry in data]
    except ValidationError as exc:
        raise MalformedPayloadError(topic, f"invalid group entry: {exc.error_count()} error(s)") from exc


class DeviceRegistry:
    """Directory snapshots, replaced wholesale on every refresh.

    Readers grab ``self._snapshot`` once and work on that object; a refresh
    builds a complete new snapshot before swapping the reference, so a lookup
    never sees entries from two different refresh messages.
    """

    lp: str = "registry:"

    def __init__(self, session_id: str = "1") -> None:
        self.session_id: str = session_id
        self._snapshot: DirectorySnapshot = DirectorySnapshot()
        self._groups: GroupSnapshot = GroupSnapshot()

    @property
    def snapshot(self) -> DirectorySnapshot:
        return self._snapshot

    @property
    def group_snapshot(self) -> GroupSnapshot:
        return self._groups

    def replace_devices(self, devices: Iterable[DeviceDescriptor]) -> DirectorySnapshot:
        snapshot = DirectorySnapshot.build(devices, self._snapshot.generation + 1)
        self._snapshot = snapshot
        logger.debug(
            "%s directory generation %s: %s entries",
            self.lp,
            snapshot.generation,
            len(snapshot.devices),
        )
        return snapshot

    def replace_groups(self, groups: Iterable[GroupDescriptor]) -> GroupSnapshot:
        snapshot = GroupSnapshot(groups=tuple(groups), generation=self._groups.generation + 1)
        self._groups = snapshot
        logger.debug("%s group generation %s: %s entries", self.lp, snapshot.generation, len(snapshot.groups))
        return snapshot

    def refresh_devices(self, topic: str, payload: str) -> DirectorySnapshot:
        """Parse and swap in a new device directory. Raises MalformedPayloadError."""
        return self.replace_devices(parse_directory(topic, payload))

    def refresh_groups(self, topic: str, payload: str) -> GroupSnapshot:
        return self.replace_groups(parse_groups(topic, payload))

    def by_ieee(self, ieee_address: str) -> DeviceDescriptor | None:
        return self._snapshot.by_ieee.get(ieee_address)

    def by_friendly_name(self, friendly_name: str) -> DeviceDescriptor | None:
        return self._snapshot.by_friendly_name.get(friendly_name)

    def devices(self) -> list[DeviceDescriptor]:
        """All directory entries, coordinator included, in broker order."""
        return list(self._snapshot.devices)

    def devices_without_coordinator(self) -> list[DeviceDescriptor]:
        return [d for d in self._snapshot.devices if not d.is_coordinator]

    def groups(self) -> list[GroupDescriptor]:
        return list(self._groups.groups)

    def as_raw(self, include_groups: bool = False) -> dict[str, Any]:
        """Directory in broker wire shape, for debug dumps."""
        raw: dict[str, Any] = {
            "devices": [d.model_dump(mode="json", exclude_none=True) for d in self._snapshot.devices],
        }
        if include_groups:
            raw["groups"] = [g.model_dump(mode="json", exclude_none=True) for g in self._groups.groups]
        return raw
