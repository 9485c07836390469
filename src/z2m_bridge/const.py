import logging
import os

from z2m_bridge import __version__

__all__ = [
    "BRIDGE_MQTT_CLIENT_START_TASK_NAME",
    "CONNECT_SETTLE_DELAY",
    "CUSTOM_DRIVER_NAMESPACE",
    "DEBUG_AUTO_DISABLE_SECONDS",
    "DEFAULT_BASE_TOPIC",
    "DEFAULT_MQTT_PORT",
    "FOREIGN_LOG_FORMATTER",
    "FORCE_RECONNECT_PAUSE",
    "MAX_RECONNECT_DELAY",
    "REFRESH_PUBLISH_PAUSE",
    "REINITIALIZE_PAUSE",
    "RESERVED_TOPIC_SUFFIXES",
    "RESUBSCRIBE_DELAY",
    "STARTING_RECONNECT_DELAY",
    "STOCK_DRIVER_NAMESPACE",
    "WATCHDOG_INTERVAL",
    "YES_ANSWER",
    "Z2M_BRIDGE_VERSION",
    "Z2M_CLIENT_ID",
    "Z2M_DEBUG",
    "Z2M_ENABLE_DESC",
    "Z2M_LOG_FORMAT",
    "Z2M_LOG_HUMAN_OUTPUT",
    "Z2M_LOG_JSON_FILE",
    "Z2M_METRICS_PORT",
    "Z2M_MQTT_HOST",
    "Z2M_MQTT_PASS",
    "Z2M_MQTT_PORT",
    "Z2M_MQTT_USER",
    "Z2M_PERSISTENT_BASE_DIR",
    "Z2M_SESSION_STATE_PATH",
    "Z2M_TEMPERATURE_SCALE",
    "Z2M_TOPIC",
    "Z2M_USE_TLS",
    "Z2M_WATCHDOG_ENABLED",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

FOREIGN_LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s <%(name)s> [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)
Z2M_BRIDGE_VERSION: str = __version__

DEFAULT_MQTT_PORT: int = 1883
DEFAULT_BASE_TOPIC: str = "zigbee2mqtt"

Z2M_MQTT_HOST: str | None = os.environ.get("Z2M_MQTT_HOST") or None
_port = os.environ.get("Z2M_MQTT_PORT", str(DEFAULT_MQTT_PORT))
try:
    _port_value: int = int(_port) if _port else DEFAULT_MQTT_PORT
except ValueError:
    _port_value = DEFAULT_MQTT_PORT
Z2M_MQTT_PORT: int = _port_value
Z2M_MQTT_USER: str | None = os.environ.get("Z2M_MQTT_USER") or None
Z2M_MQTT_PASS: str | None = os.environ.get("Z2M_MQTT_PASS") or None
Z2M_TOPIC: str = os.environ.get("Z2M_TOPIC", DEFAULT_BASE_TOPIC) or DEFAULT_BASE_TOPIC
Z2M_CLIENT_ID: str | None = os.environ.get("Z2M_CLIENT_ID") or None
Z2M_USE_TLS: bool = os.environ.get("Z2M_USE_TLS", "false").casefold() in YES_ANSWER

Z2M_DEBUG: bool = os.environ.get("Z2M_DEBUG", "0").casefold() in YES_ANSWER
Z2M_ENABLE_DESC: bool = os.environ.get("Z2M_ENABLE_DESC", "true").casefold() in YES_ANSWER
Z2M_WATCHDOG_ENABLED: bool = os.environ.get("Z2M_WATCHDOG_ENABLED", "true").casefold() in YES_ANSWER
_scale = os.environ.get("Z2M_TEMPERATURE_SCALE", "C").strip().upper()
Z2M_TEMPERATURE_SCALE: str = _scale if _scale in ("C", "F") else "C"

Z2M_PERSISTENT_BASE_DIR: str = os.environ.get("Z2M_PERSISTENT_BASE_DIR", "~/.config/z2m-bridge")
Z2M_SESSION_STATE_PATH: str = f"{Z2M_PERSISTENT_BASE_DIR}/sessions.yaml"

_metrics_port = os.environ.get("Z2M_METRICS_PORT", "")
Z2M_METRICS_PORT: int | None = int(_metrics_port) if _metrics_port.isdigit() else None

# Logging Configuration
Z2M_LOG_FORMAT: str = os.environ.get("Z2M_LOG_FORMAT", "human")  # "json", "human", or "both"
Z2M_LOG_JSON_FILE: str | None = os.environ.get("Z2M_LOG_JSON_FILE") or None
Z2M_LOG_HUMAN_OUTPUT: str = os.environ.get("Z2M_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Reconnect schedule (seconds)
STARTING_RECONNECT_DELAY: int = 5
MAX_RECONNECT_DELAY: int = 300
# Directory resubscription after a successful connect, to avoid racing transport setup
RESUBSCRIBE_DELAY: float = 4.0
WATCHDOG_INTERVAL: float = 60.0
DEBUG_AUTO_DISABLE_SECONDS: int = 1800

# Bounded pauses used to serialize against systems without synchronous acks
REINITIALIZE_PAUSE: float = 2.0
FORCE_RECONNECT_PAUSE: float = 0.75
CONNECT_SETTLE_DELAY: float = 1.0
REFRESH_PUBLISH_PAUSE: float = 0.05

# Legacy/echo traffic under a device sub-path
RESERVED_TOPIC_SUFFIXES: frozenset[str] = frozenset({"click", "action", "get", "set", "availability"})

STOCK_DRIVER_NAMESPACE: str = "hubitat"
CUSTOM_DRIVER_NAMESPACE: str = "Zigbee2MQTT"

BRIDGE_MQTT_CLIENT_START_TASK_NAME = "Z2MTransport_RECEIVE"
