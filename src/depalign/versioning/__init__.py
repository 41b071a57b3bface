"""Version ordering and selector parsing."""

from .models import SelectorMode, Version, VersionKind, VersionSpec
from .parser import matches, parse_selector, pick_highest

__all__ = [
    "SelectorMode",
    "Version",
    "VersionKind",
    "VersionSpec",
    "matches",
    "parse_selector",
    "pick_highest",
]
