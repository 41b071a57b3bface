"""Dependency notation parsing shared by metadata sources and request loading.

Accepted forms:

* ``"group:name:version"`` (the version may use the ``1.2!!`` strict shorthand)
* a mapping with ``module`` plus one of ``version``/``require``/``strictly``/``prefer``,
  and optional ``reject`` (string or list) and ``changing`` keys.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from .models import ConstraintKind, Coordinate, VersionConstraint


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule."""
    s = s.strip()
    if s.count(":") < 2:
        return s, None
    identifier, spec = s.rsplit(":", 1)
    return identifier.strip(), spec.strip() or None


def parse_constraint(data: Any) -> VersionConstraint:
    """Build a VersionConstraint from a version string or a constraint mapping."""
    if not isinstance(data, Mapping):
        return VersionConstraint.parse(str(data))

    changing = bool(data.get("changing", False))
    rejects = data.get("reject") or data.get("rejects") or ()
    if isinstance(rejects, (str, int, float)):
        rejects = [rejects]
    rejects = frozenset(str(r) for r in rejects)

    if data.get("strictly") is not None:
        kind, version = ConstraintKind.STRICTLY, str(data["strictly"])
    elif data.get("require") is not None:
        kind, version = ConstraintKind.REQUIRED, str(data["require"])
    elif data.get("version") is not None:
        parsed = VersionConstraint.parse(str(data["version"]))
        kind, version = parsed.kind, parsed.version
    elif data.get("prefer") is not None:
        kind, version = ConstraintKind.PREFERRED, str(data["prefer"])
    else:
        kind, version = ConstraintKind.REQUIRED, None
    return VersionConstraint(kind, version, rejects, changing)


def parse_notation(entry: Any) -> Tuple[Coordinate, VersionConstraint]:
    """Parse one dependency entry into (Coordinate, VersionConstraint).

    Raises:
        ValueError: when the entry lacks a module or any version information.
    """
    if isinstance(entry, Mapping):
        module = entry.get("module")
        if not module:
            raise ValueError(f"Dependency entry {dict(entry)!r} has no 'module'")
        return Coordinate.parse(str(module)), parse_constraint(entry)

    identifier, spec = tokenize_rightmost_colon(str(entry))
    if spec is None:
        raise ValueError(f"Dependency '{entry}' has no version, expected 'group:name:version'")
    return Coordinate.parse(identifier), VersionConstraint.parse(spec)
