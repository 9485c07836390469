"""Bridge settings: settings stores and the validated settings model."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, override

import yaml
from pydantic import BaseModel, Field, field_validator

from z2m_bridge.const import (
    DEFAULT_BASE_TOPIC,
    DEFAULT_MQTT_PORT,
    YES_ANSWER,
    Z2M_CLIENT_ID,
    Z2M_DEBUG,
    Z2M_ENABLE_DESC,
    Z2M_MQTT_HOST,
    Z2M_MQTT_PASS,
    Z2M_MQTT_PORT,
    Z2M_MQTT_USER,
    Z2M_TEMPERATURE_SCALE,
    Z2M_TOPIC,
    Z2M_USE_TLS,
    Z2M_WATCHDOG_ENABLED,
)
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import SettingsStore

__all__ = [
    "BridgeSettings",
    "EnvSettingsStore",
    "MappingSettingsStore",
    "default_client_id",
    "load_settings_file",
]

logger = get_logger(__name__)


class MappingSettingsStore:
    """Settings held in a plain mapping (typically loaded from YAML)."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        return default if value is None else value

    def update(self, key: str, value: Any) -> None:
        self._values[key] = value

    @override
    def __repr__(self) -> str:
        redacted = {k: ("***" if k == "password" and v else v) for k, v in self._values.items()}
        return f"MappingSettingsStore({redacted})"


class EnvSettingsStore:
    """Settings read from ``Z2M_*`` environment variables at lookup time."""

    _ENV_KEYS: dict[str, str] = {
        "host": "Z2M_MQTT_HOST",
        "port": "Z2M_MQTT_PORT",
        "topic": "Z2M_TOPIC",
        "client_id": "Z2M_CLIENT_ID",
        "username": "Z2M_MQTT_USER",
        "password": "Z2M_MQTT_PASS",
        "use_tls": "Z2M_USE_TLS",
        "enable_debug": "Z2M_DEBUG",
        "enable_desc": "Z2M_ENABLE_DESC",
        "temperature_scale": "Z2M_TEMPERATURE_SCALE",
        "watchdog_enabled": "Z2M_WATCHDOG_ENABLED",
    }
    _DEFAULTS: dict[str, Any] = {
        "host": Z2M_MQTT_HOST,
        "port": Z2M_MQTT_PORT,
        "topic": Z2M_TOPIC,
        "client_id": Z2M_CLIENT_ID,
        "username": Z2M_MQTT_USER,
        "password": Z2M_MQTT_PASS,
        "use_tls": Z2M_USE_TLS,
        "enable_debug": Z2M_DEBUG,
        "enable_desc": Z2M_ENABLE_DESC,
        "temperature_scale": Z2M_TEMPERATURE_SCALE,
        "watchdog_enabled": Z2M_WATCHDOG_ENABLED,
    }

    def get(self, key: str, default: Any = None) -> Any:
        env_name = self._ENV_KEYS.get(key)
        if env_name is not None:
            raw = os.environ.get(env_name)
            if raw:
                return raw
        value = self._DEFAULTS.get(key)
        return default if value is None else value


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.casefold() in YES_ANSWER
    return value in YES_ANSWER


class BridgeSettings(BaseModel):
    """Validated connection parameters and feature flags for one bridge session."""

    host: str | None = None
    port: int = DEFAULT_MQTT_PORT
    topic: str = DEFAULT_BASE_TOPIC
    client_id: str = ""
    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    use_tls: bool = False
    enable_debug: bool = False
    enable_desc: bool = True
    temperature_scale: Literal["C", "F"] = "C"
    watchdog_enabled: bool = True

    @field_validator("use_tls", "enable_debug", "enable_desc", "watchdog_enabled", mode="before")
    @classmethod
    def _coerce_flags(cls, value: object) -> bool:
        return _as_bool(value)

    @field_validator("topic", mode="after")
    @classmethod
    def _strip_topic(cls, value: str) -> str:
        return value.strip().rstrip("/") or DEFAULT_BASE_TOPIC

    @field_validator("temperature_scale", mode="before")
    @classmethod
    def _normalize_scale(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def connection_uri(self) -> str:
        scheme = "ssl" if self.use_tls else "tcp"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def is_complete(self) -> bool:
        """True once both broker host and port are known."""
        return bool(self.host) and bool(self.port)

    @classmethod
    def from_store(cls, store: SettingsStore, session_id: str = "1") -> BridgeSettings:
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            value = store.get(name)
            if value is not None:
                values[name] = value
        if not values.get("client_id"):
            values["client_id"] = default_client_id(str(store.get("location_name", "")), session_id)
        return cls.model_validate(values)


def default_client_id(location_name: str, session_id: str) -> str:
    """Build a broker-unique client id from the hub location name and session id."""
    client_id = re.sub(r"[^a-zA-Z0-9]+", "", location_name).lower() or "hubitat"
    return f"{client_id[:16]}_z2m_{session_id}"


def load_settings_file(path: Path) -> MappingSettingsStore:
    """Load a YAML settings file into a MappingSettingsStore.

    The file may nest settings under a top-level ``broker`` key.
    """
    logger.debug("Loading settings file: %s", path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        logger.exception("Failed to read settings file: %s", path)
        raise
    if not isinstance(data, dict):
        msg = f"Settings file {path} must contain a mapping, got {type(data).__name__}"
        raise TypeError(msg)
    broker = data.get("broker", data)
    return MappingSettingsStore(broker if isinstance(broker, dict) else {})
