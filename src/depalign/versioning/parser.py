"""Version selector parsing and candidate matching.

Selectors understood:

* exact versions (``2.8.9``), optionally changing (``1.0-SNAPSHOT``)
* prefix selectors (``1.+``) and ``+``
* ``latest.release`` / ``latest.integration``
* Maven-style ranges (``[1.0,2.0)``, ``(,1.5]``, ``[1.2]``) and unions of them
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from .models import SelectorMode, Version, VersionSpec

_RANGE_CHARS = "[]()"


@dataclass(frozen=True)
class _Bound:
    version: Version
    inclusive: bool


_Range = Tuple[Optional[_Bound], Optional[_Bound]]


def _determine_mode(raw: str) -> SelectorMode:
    """Determine selector mode from the raw version string."""
    if raw == "+" or raw.lower().startswith("latest."):
        return SelectorMode.LATEST
    if any(ch in raw for ch in _RANGE_CHARS):
        return SelectorMode.RANGE
    if raw.endswith("+"):
        return SelectorMode.PREFIX
    return SelectorMode.EXACT


def parse_selector(raw: str, changing: bool = False) -> VersionSpec:
    """Parse a declared version string into a VersionSpec.

    Args:
        raw: Declared version, e.g. "2.8.9", "1.+", "[1.0,2.0)".
        changing: Whether the declaration is explicitly marked as changing.

    Returns:
        VersionSpec describing the selector.
    """
    text = (raw or "").strip()
    if not text:
        raise ValueError("Version selector must not be empty")
    mode = _determine_mode(text)
    if mode == SelectorMode.EXACT:
        changing = changing or Version(text).is_snapshot
    elif mode == SelectorMode.RANGE:
        # Validate eagerly so bad ranges fail at declaration time
        _parse_ranges(text)
    return VersionSpec(raw=text, mode=mode, changing=changing)


def _parse_bracket_range(range_spec: str) -> _Range:
    """Parse one bracket range like [1.0,2.0), (1.0,] or [1.2]."""
    spec = range_spec.strip()
    if len(spec) < 2 or spec[0] not in "[(" or spec[-1] not in "])":
        raise ValueError(f"Invalid version range '{range_spec}'")
    inner = spec[1:-1]
    parts = inner.split(",")
    if len(parts) == 1:
        base = parts[0].strip()
        if not base or spec[0] != "[" or spec[-1] != "]":
            raise ValueError(f"Invalid version range '{range_spec}'")
        bound = _Bound(Version(base), True)
        return bound, bound
    if len(parts) != 2:
        raise ValueError(f"Invalid version range '{range_spec}'")

    lower_str, upper_str = parts[0].strip(), parts[1].strip()
    lower = _Bound(Version(lower_str), spec[0] == "[") if lower_str else None
    upper = _Bound(Version(upper_str), spec[-1] == "]") if upper_str else None
    return lower, upper


def _split_union(range_spec: str) -> List[str]:
    """Split comma-separated ranges like [1.0,2.0),[3.0,4.0]."""
    ranges = []
    current = ""
    depth = 0
    for char in range_spec:
        if char in "[(":
            if depth == 0:
                current = char
            else:
                current += char
            depth += 1
        elif char in "])":
            depth -= 1
            current += char
            if depth == 0:
                ranges.append(current)
                current = ""
        elif depth > 0:
            current += char
        elif char not in ", ":
            raise ValueError(f"Invalid version range '{range_spec}'")
    if depth != 0 or current:
        raise ValueError(f"Invalid version range '{range_spec}'")
    return ranges


def _parse_ranges(range_spec: str) -> List[_Range]:
    return [_parse_bracket_range(r) for r in _split_union(range_spec)]


def _in_range(version: Version, bounds: _Range) -> bool:
    lower, upper = bounds
    if lower is not None:
        if lower.inclusive and version < lower.version:
            return False
        if not lower.inclusive and version <= lower.version:
            return False
    if upper is not None:
        if upper.inclusive and version > upper.version:
            return False
        if not upper.inclusive and version >= upper.version:
            return False
    return True


def matches(spec: VersionSpec, version: Version) -> bool:
    """Return True when ``version`` satisfies the selector."""
    if spec.mode == SelectorMode.EXACT:
        return version == Version(spec.raw)
    if spec.mode == SelectorMode.LATEST:
        if spec.raw.lower() == "latest.release":
            return not version.is_snapshot
        return True
    if spec.mode == SelectorMode.PREFIX:
        prefix = spec.raw[:-1]
        return version.raw.startswith(prefix)
    return any(_in_range(version, r) for r in _parse_ranges(spec.raw))


def pick_highest(
    spec: VersionSpec,
    candidates: Iterable[str],
    exclude: Optional[Callable[[Version], bool]] = None,
) -> Optional[Version]:
    """Pick the highest candidate satisfying the selector.

    Args:
        spec: Parsed selector.
        candidates: Available version strings.
        exclude: Optional predicate removing candidates (e.g. rejected versions).

    Returns:
        Highest matching Version, or None when nothing matches.
    """
    best: Optional[Version] = None
    for raw in candidates:
        try:
            version = Version(raw)
        except ValueError:
            continue  # Skip blank entries
        if not matches(spec, version):
            continue
        if exclude is not None and exclude(version):
            continue
        if best is None or version > best:
            best = version
    return best
