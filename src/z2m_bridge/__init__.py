"""Zigbee2MQTT broker bridge for hub device models."""

__version__ = "1.0.0"
