"""Device directory and child device sink."""

from .registry import DeviceRegistry, DirectorySnapshot, GroupSnapshot
from .sink import ChildDevice, InMemoryDeviceSink

__all__ = ["ChildDevice", "DeviceRegistry", "DirectorySnapshot", "GroupSnapshot", "InMemoryDeviceSink"]
