"""Classify inbound broker topics.

Precedence is fixed, first match wins: structural bridge topics, then
reserved echo suffixes under a device path, then plain device state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from z2m_bridge.const import RESERVED_TOPIC_SUFFIXES
from z2m_bridge.logging_abstraction import get_logger

__all__ = ["RouteKind", "TopicRoute", "TopicRouter"]

logger = get_logger(__name__)


class RouteKind(StrEnum):
    DEVICES = "devices"
    GROUPS = "groups"
    BRIDGE_OTHER = "bridge_other"
    RESERVED = "reserved"
    DEVICE_STATE = "device_state"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class TopicRoute:
    kind: RouteKind
    friendly_name: str | None = None
    suffix: str | None = None


class TopicRouter:
    """Routes topics under one base topic."""

    lp: str = "router:"

    def __init__(self, base_topic: str) -> None:
        self.base_topic: str = base_topic.rstrip("/")

    @property
    def subscription(self) -> str:
        return f"{self.base_topic}/#"

    def classify(self, topic: str) -> TopicRoute:
        lp = f"{self.lp}classify:"
        base = f"{self.base_topic}/"
        if topic == f"{base}bridge/devices":
            return TopicRoute(RouteKind.DEVICES)
        if topic.startswith(f"{base}bridge/groups"):
            return TopicRoute(RouteKind.GROUPS)
        if topic.startswith(f"{base}bridge/"):
            logger.debug("%s ignoring bridge topic %s", lp, topic)
            return TopicRoute(RouteKind.BRIDGE_OTHER)
        if not topic.startswith(base):
            logger.debug("%s ignoring topic outside %s: %s", lp, self.base_topic, topic)
            return TopicRoute(RouteKind.IGNORED)

        relative = topic[len(base) :]
        if not relative:
            return TopicRoute(RouteKind.IGNORED)
        if "/" in relative:
            parent, _, suffix = relative.rpartition("/")
            if suffix in RESERVED_TOPIC_SUFFIXES and parent:
                logger.debug("%s ignoring /%s echo for %s", lp, suffix, parent)
                return TopicRoute(RouteKind.RESERVED, friendly_name=parent, suffix=suffix)
            logger.debug("%s ignoring nested topic %s", lp, topic)
            return TopicRoute(RouteKind.IGNORED)
        return TopicRoute(RouteKind.DEVICE_STATE, friendly_name=relative)
