"""Data models for versions and version selectors."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Tuple, Union

_SEPARATORS = re.compile(r"[.\-_+]")
_PARTS = re.compile(r"\d+|\D+")


class VersionKind(Enum):
    """How a requested version was declared."""
    EXACT = "exact"
    DYNAMIC = "dynamic"
    CHANGING = "changing"


class SelectorMode(Enum):
    """Selector strategy derived from the declared version string."""
    EXACT = "exact"
    PREFIX = "prefix"
    LATEST = "latest"
    RANGE = "range"


def _split(text: str) -> Tuple[str, ...]:
    parts = []
    for chunk in _SEPARATORS.split(text):
        if chunk:
            parts.extend(_PARTS.findall(chunk))
    return tuple(parts)


def _compare_parts(left: str, right: str) -> int:
    left_num, right_num = left.isdigit(), right.isdigit()
    if left_num and right_num:
        a, b = int(left), int(right)
        return (a > b) - (a < b)
    if left_num:
        return 1
    if right_num:
        return -1
    a, b = left.lower(), right.lower()
    return (a > b) - (a < b)


def _key_part(part: str) -> Union[int, str]:
    if part.isdigit():
        return int(part)
    return part.lower()


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A concrete, totally ordered version.

    Parts are split on ``.``, ``-``, ``_`` and ``+`` and on digit/letter
    boundaries. Numeric parts compare numerically, other parts compare
    lexically ignoring case, and a numeric part ranks above a non-numeric one.
    A shorter sequence is less than a longer one with an otherwise equal
    prefix (``2.9 < 2.9.5``, ``1.0 < 1.0-rc1``).
    """
    raw: str
    parts: Tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        raw = str(self.raw).strip()
        if not raw:
            raise ValueError("Version string must not be empty")
        object.__setattr__(self, "raw", raw)
        object.__setattr__(self, "parts", _split(raw))

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse a concrete version string."""
        return cls(text)

    @property
    def is_snapshot(self) -> bool:
        """True for ``-SNAPSHOT`` labels, whose content may change."""
        return self.raw.upper().endswith("SNAPSHOT")

    def compare(self, other: "Version") -> int:
        """Return -1, 0 or 1 comparing this version to ``other``."""
        for left, right in zip(self.parts, other.parts):
            result = _compare_parts(left, right)
            if result:
                return result
        return (len(self.parts) > len(other.parts)) - (len(self.parts) < len(other.parts))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash(tuple(_key_part(p) for p in self.parts))

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class VersionSpec:
    """Normalized representation of a declared version and derived behavior flags."""
    raw: str
    mode: SelectorMode
    changing: bool = False

    @property
    def kind(self) -> VersionKind:
        """Reproducibility class of the declaration."""
        if self.mode != SelectorMode.EXACT:
            return VersionKind.DYNAMIC
        if self.changing:
            return VersionKind.CHANGING
        return VersionKind.EXACT

    @property
    def is_dynamic(self) -> bool:
        return self.mode != SelectorMode.EXACT
