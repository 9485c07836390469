from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import dotenv
import uvloop
import yaml

from z2m_bridge.bridge import Zigbee2MQTTBridge
from z2m_bridge.config import BridgeSettings, EnvSettingsStore, load_settings_file
from z2m_bridge.const import FOREIGN_LOG_FORMATTER, Z2M_BRIDGE_VERSION, Z2M_METRICS_PORT, Z2M_SESSION_STATE_PATH
from z2m_bridge.correlation import correlation_context
from z2m_bridge.devices import InMemoryDeviceSink
from z2m_bridge.logging_abstraction import get_logger, set_package_debug
from z2m_bridge.metrics import start_metrics_server
from z2m_bridge.session import YamlSessionStateStore
from z2m_bridge.structs import SettingsStore
from z2m_bridge.utils import broker_key

logger = get_logger(__name__)

foreign_handler = logging.StreamHandler(sys.stderr)
foreign_handler.setLevel(logging.WARNING)
foreign_handler.setFormatter(FOREIGN_LOG_FORMATTER)

# Suppress verbose MQTT library output
mqtt_logger = logging.getLogger("aiomqtt")
mqtt_logger.setLevel(logging.WARNING)
mqtt_logger.addHandler(foreign_handler)
mqtt_logger.propagate = False


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Zigbee2MQTT broker bridge")
    _ = parser.add_argument("--config", help="Path to a YAML settings file", default=None, type=Path)
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--session-id", default="1", help="Bridge session id (keys devices and state)")
    _ = parser.add_argument(
        "--state-file",
        default=Path(Z2M_SESSION_STATE_PATH),
        type=Path,
        help="YAML file that persists per-session state",
    )
    _ = parser.add_argument(
        "--metrics-port",
        default=Z2M_METRICS_PORT,
        type=int,
        help="Serve Prometheus metrics on this port",
    )
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> bool:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def build_settings(args: argparse.Namespace) -> BridgeSettings:
    store: SettingsStore = load_settings_file(args.config) if args.config else EnvSettingsStore()
    settings = BridgeSettings.from_store(store, session_id=args.session_id)
    if args.debug:
        settings.enable_debug = True
    return settings


async def run(settings: BridgeSettings, args: argparse.Namespace) -> None:
    sink = InMemoryDeviceSink(broker_key=broker_key(args.session_id))
    bridge = Zigbee2MQTTBridge(
        settings,
        sink,
        session_id=args.session_id,
        state_store=YamlSessionStateStore(args.state_file),
    )
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    if not await bridge.start():
        logger.error("Broker host is not configured (set Z2M_MQTT_HOST or use --config)")
        return
    try:
        _ = await stop_event.wait()
    finally:
        await bridge.stop()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the broker bridge."""
    with correlation_context():
        logger.info("Starting Zigbee2MQTT bridge", extra={"version": Z2M_BRIDGE_VERSION})
        args = parse_cli(argv)
        if args.env:
            _ = load_env_file(args.env)
        try:
            settings = build_settings(args)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
            logger.error("Invalid settings: %s", exc)
            return 1
        if settings.enable_debug:
            set_package_debug(True)
            logger.info("Debug mode enabled")
        if args.metrics_port:
            start_metrics_server(args.metrics_port)
            logger.info("Metrics served on port %s", args.metrics_port)

        try:
            uvloop.run(run(settings, args))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
            return 1
        logger.info("Zigbee2MQTT bridge shutdown complete")
        return 0


if __name__ == "__main__":
    sys.exit(main())
