"""Pick a handler profile for a device from its declared capabilities.

Rules are evaluated in order and the first satisfied one wins. Capability
sets often fit several profiles (a motion sensor that also reports
temperature), so the order is the tie-breaker.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from z2m_bridge.const import CUSTOM_DRIVER_NAMESPACE, STOCK_DRIVER_NAMESPACE
from z2m_bridge.exceptions import UnknownCapabilityError
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import CapabilityDescriptor, DeviceDescriptor, DriverAssignment

__all__ = [
    "EFFECTS_BULB_PROFILE",
    "FALLBACK_PROFILE",
    "PROFILE_RULES",
    "CapabilityClassifier",
    "CapabilitySet",
    "ProfileRule",
    "classify",
]

logger = get_logger(__name__)

COLOR_FEATURES: frozenset[str] = frozenset({"color_xy", "color_hs"})


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    """Names found in an exposes list, split by nesting level."""

    top_level: frozenset[str]
    # feature names of each composite expose (light, switch, lock...)
    composites: tuple[frozenset[str], ...]

    @classmethod
    def from_exposes(cls, exposes: Iterable[CapabilityDescriptor]) -> CapabilitySet:
        exposes = list(exposes)
        return cls(
            top_level=frozenset(e.name for e in exposes if e.name),
            composites=tuple(frozenset(e.feature_names()) for e in exposes if e.features),
        )

    def has(self, *names: str) -> bool:
        return all(n in self.top_level for n in names)

    def has_axis(self) -> bool:
        return any(n.endswith("_axis") for n in self.top_level)

    def any_composite(self, predicate: Callable[[frozenset[str]], bool]) -> bool:
        return any(predicate(features) for features in self.composites)

    def names(self) -> list[str]:
        nested = sorted({f for c in self.composites for f in c})
        return sorted(self.top_level) + nested


@dataclass(frozen=True, slots=True)
class ProfileRule:
    name: str
    matches: Callable[[CapabilitySet], bool]
    profile_name: str
    namespace: str = STOCK_DRIVER_NAMESPACE


def _color_and_ct(features: frozenset[str]) -> bool:
    return bool(features & COLOR_FEATURES) and "color_temp" in features


def _color(features: frozenset[str]) -> bool:
    return bool(features & COLOR_FEATURES)


def _ct(features: frozenset[str]) -> bool:
    return "color_temp" in features


EFFECTS_BULB_PROFILE = "zig2m Component RGBW Effects Bulb"
FALLBACK_PROFILE = "zig2m Generic Device"

PROFILE_RULES: tuple[ProfileRule, ...] = (
    ProfileRule(
        "motion_temperature_humidity",
        lambda c: c.has("occupancy", "temperature", "humidity"),
        "Generic Component Motion Temperature Humidity Sensor",
    ),
    ProfileRule(
        "motion_temperature_lux",
        lambda c: c.has("occupancy", "temperature", "illuminance_lux"),
        "Generic Component Motion Temperature/Lux Sensor",
    ),
    ProfileRule(
        "motion_temperature",
        lambda c: c.has("occupancy", "temperature"),
        "Generic Component Motion Temperature Sensor",
    ),
    ProfileRule(
        "motion_battery",
        lambda c: c.has("occupancy", "battery"),
        "Generic Component Motion (with Battery) Sensor",
    ),
    ProfileRule("motion", lambda c: c.has("occupancy"), "Generic Component Motion Sensor"),
    ProfileRule(
        "contact_acceleration",
        lambda c: c.has("contact") and c.has_axis(),
        "zig2m Component Acceleration/Axis/Contact Sensor",
        CUSTOM_DRIVER_NAMESPACE,
    ),
    ProfileRule(
        "contact_battery",
        lambda c: c.has("contact", "battery"),
        "zig2m Component Contact Sensor",
        CUSTOM_DRIVER_NAMESPACE,
    ),
    ProfileRule("contact", lambda c: c.has("contact"), "Generic Component Contact Sensor"),
    ProfileRule(
        "temperature_humidity",
        lambda c: c.has("temperature"),
        "zig2m Component Temperature Humidity Sensor",
        CUSTOM_DRIVER_NAMESPACE,
    ),
    ProfileRule(
        "rgbw_effects",
        lambda c: c.any_composite(_color_and_ct) and c.has("effect"),
        EFFECTS_BULB_PROFILE,
        CUSTOM_DRIVER_NAMESPACE,
    ),
    ProfileRule("rgbw", lambda c: c.any_composite(_color_and_ct), "Generic Component RGBW"),
    ProfileRule("rgb", lambda c: c.any_composite(_color), "Generic Component RGB"),
    ProfileRule("ct", lambda c: c.any_composite(_ct), "Generic Component CT"),
    ProfileRule("button", lambda c: c.has("action"), "zig2m Component Button", CUSTOM_DRIVER_NAMESPACE),
    ProfileRule(
        "switch",
        lambda c: c.any_composite(lambda f: "state" in f) or c.has("state"),
        "Generic Component Switch",
    ),
    ProfileRule(
        "water_leak",
        lambda c: c.has("water_leak"),
        "zig2m Component Water Sensor",
        CUSTOM_DRIVER_NAMESPACE,
    ),
)

FALLBACK_RULE = ProfileRule("generic", lambda _c: True, FALLBACK_PROFILE, CUSTOM_DRIVER_NAMESPACE)


def match_rule(exposes: Iterable[CapabilityDescriptor], rules: Sequence[ProfileRule] = PROFILE_RULES) -> ProfileRule:
    """Return the first rule satisfied by ``exposes``. Raises UnknownCapabilityError."""
    capabilities = CapabilitySet.from_exposes(exposes)
    for rule in rules:
        if rule.matches(capabilities):
            return rule
    raise UnknownCapabilityError(capabilities.names())


def classify(
    exposes: Iterable[CapabilityDescriptor],
    rules: Sequence[ProfileRule] = PROFILE_RULES,
) -> tuple[str, str]:
    """Return ``(profile_name, namespace)``; unmatched capability sets get the generic profile."""
    try:
        rule = match_rule(exposes, rules)
    except UnknownCapabilityError as exc:
        logger.debug("classifier: %s; using %s", exc, FALLBACK_PROFILE)
        rule = FALLBACK_RULE
    return rule.profile_name, rule.namespace


class CapabilityClassifier:
    """Assigns profiles to devices once, at claim time."""

    lp: str = "classifier:"

    def __init__(self, rules: Sequence[ProfileRule] = PROFILE_RULES) -> None:
        self.rules: tuple[ProfileRule, ...] = tuple(rules)

    def classify(self, exposes: Iterable[CapabilityDescriptor]) -> tuple[str, str]:
        return classify(exposes, self.rules)

    def assign(self, device: DeviceDescriptor, current: DriverAssignment | None = None) -> DriverAssignment:
        """Profile for ``device``; an existing assignment is returned unchanged."""
        if current is not None:
            logger.debug("%s %s already assigned %s; keeping it", self.lp, device.ieee_address, current.profile_name)
            return current
        profile_name, namespace = self.classify(device.exposes)
        logger.debug("%s %s -> %s:%s", self.lp, device.friendly_name, namespace, profile_name)
        return DriverAssignment(device.ieee_address, profile_name, namespace)
