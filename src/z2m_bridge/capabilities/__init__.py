"""Device capability classification."""

from .classifier import (
    EFFECTS_BULB_PROFILE,
    FALLBACK_PROFILE,
    PROFILE_RULES,
    CapabilityClassifier,
    CapabilitySet,
    ProfileRule,
    classify,
)

__all__ = [
    "EFFECTS_BULB_PROFILE",
    "FALLBACK_PROFILE",
    "PROFILE_RULES",
    "CapabilityClassifier",
    "CapabilitySet",
    "ProfileRule",
    "classify",
]
