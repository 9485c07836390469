"""Utility helpers for colour names, unit conversions and device keys."""

from __future__ import annotations

import colorsys
from decimal import ROUND_HALF_UP, Decimal

__all__ = [
    "broker_key",
    "celsius_to_fahrenheit",
    "color_temperature_name",
    "device_key",
    "fahrenheit_to_celsius",
    "hsv_to_rgb",
    "hue_color_name",
    "ieee_from_key",
    "kelvin_to_mireds",
    "level_to_brightness",
    "round_half_up",
]

DEVICE_KEY_PREFIX = "Zig2M"

# (upper bound in degrees, inclusive) -> name
_HUE_NAMES: tuple[tuple[int, str], ...] = (
    (15, "Red"),
    (45, "Orange"),
    (75, "Yellow"),
    (105, "Chartreuse"),
    (135, "Green"),
    (165, "Spring"),
    (195, "Cyan"),
    (225, "Azure"),
    (255, "Blue"),
    (285, "Violet"),
    (315, "Magenta"),
    (345, "Rose"),
    (360, "Red"),
)


def hue_color_name(hue: float, saturation: float | None = 100, hi_rez_hue: bool = False) -> str:
    """Return the generic colour name for a hue.

    ``hue`` is a 0-100 percentage unless ``hi_rez_hue`` is set, in which case it
    is already in degrees. Saturation below 1 is always "White".
    """
    degrees = int(hue) if hi_rez_hue else int(int(hue) * 3.6)
    degrees %= 360
    name = next((n for upper, n in _HUE_NAMES if degrees <= upper), "undefined")
    if saturation is not None and saturation < 1:
        name = "White"
    return name


def color_temperature_name(kelvin: float) -> str | None:
    """Return the generic name for a colour temperature in Kelvin (None for 0/None)."""
    if not kelvin:
        return None
    value = int(kelvin)
    if value <= 2000:
        return "Sodium"
    if value <= 2100:
        return "Starlight"
    if value < 2400:
        return "Sunrise"
    if value < 2800:
        return "Incandescent"
    if value < 3300:
        return "Soft White"
    if value < 3500:
        return "Warm White"
    if value < 4150:
        return "Moonlight"
    if value <= 5000:
        return "Horizon"
    if value < 5500:
        return "Daylight"
    if value < 6000:
        return "Electronic"
    if value <= 6500:
        return "Skylight"
    if value < 20000:
        return "Polar"
    return "undefined"


def round_half_up(value: float | Decimal, places: int = 0) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def celsius_to_fahrenheit(value: Decimal) -> Decimal:
    return value * Decimal(9) / Decimal(5) + Decimal(32)


def fahrenheit_to_celsius(value: Decimal) -> Decimal:
    return (value - Decimal(32)) * Decimal(5) / Decimal(9)


def kelvin_to_mireds(kelvin: float) -> int:
    return round(1_000_000 / kelvin)


def level_to_brightness(level: float) -> int:
    """Hub level (0-100) to Zigbee brightness (0-255)."""
    return round(float(level) * 2.55)


def hsv_to_rgb(hue: float, saturation: float, level: float) -> tuple[int, int, int]:
    """Convert hub-scale HSV (each 0-100) to 0-255 RGB."""
    h = max(0.0, min(float(hue), 100.0)) / 100
    s = max(0.0, min(float(saturation), 100.0)) / 100
    v = max(0.0, min(float(level), 100.0)) / 100
    r, g, b = colorsys.hsv_to_rgb(h, s, v)
    return round(r * 255), round(g * 255), round(b * 255)


def device_key(session_id: str, ieee_address: str) -> str:
    """Child device key for an IEEE address in one bridge session."""
    return f"{DEVICE_KEY_PREFIX}/{session_id}/{ieee_address}"


def ieee_from_key(key: str) -> str:
    """IEEE address is the last '/'-separated token of a device key."""
    return key.rstrip("/").rsplit("/", 1)[-1]


def broker_key(session_id: str) -> str:
    """Key of the broker device itself (parent of every child device key)."""
    return f"{DEVICE_KEY_PREFIX}/{session_id}"
