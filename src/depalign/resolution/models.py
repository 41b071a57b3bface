"""Data models for dependency graph resolution."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..constants import Constants
from ..versioning import Version, VersionKind, VersionSpec, matches, parse_selector


@dataclass(frozen=True, order=True)
class Coordinate:
    """Identity of a module independent of its version."""
    group: str
    name: str

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse a "group:name" string."""
        parts = [p.strip() for p in str(text).split(":")]
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid coordinate '{text}', expected 'group:name'")
        return cls(parts[0], parts[1])

    def __str__(self) -> str:
        return f"{self.group}:{self.name}"


class ConstraintKind(Enum):
    """Strength of a version constraint."""
    PREFERRED = "prefer"
    REQUIRED = "require"
    STRICTLY = "strictly"


@dataclass(frozen=True)
class VersionConstraint:
    """A requested version plus the rules attached to it.

    ``version`` is None for a constraint that only rejects versions.
    """
    kind: ConstraintKind
    version: Optional[str]
    rejects: FrozenSet[str] = frozenset()
    changing: bool = False

    def __post_init__(self) -> None:
        if self.version is None and not self.rejects:
            raise ValueError("A constraint needs a version or at least one rejected version")
        if self.version is not None:
            # Fail fast on malformed selectors
            parse_selector(self.version, self.changing)

    @classmethod
    def required(cls, version: str, changing: bool = False) -> "VersionConstraint":
        return cls(ConstraintKind.REQUIRED, version, changing=changing)

    @classmethod
    def strictly(cls, version: str) -> "VersionConstraint":
        return cls(ConstraintKind.STRICTLY, version)

    @classmethod
    def prefer(cls, version: str) -> "VersionConstraint":
        return cls(ConstraintKind.PREFERRED, version)

    @classmethod
    def rejecting(cls, *versions: str) -> "VersionConstraint":
        """Constraint that only forbids the given versions or ranges."""
        return cls(ConstraintKind.REQUIRED, None, rejects=frozenset(versions))

    @classmethod
    def parse(cls, text: str, changing: bool = False) -> "VersionConstraint":
        """Parse a declared version, honoring the "1.2!!" strict shorthand."""
        raw = str(text).strip()
        if raw.endswith("!!"):
            return cls(ConstraintKind.STRICTLY, raw[:-2].strip(), changing=changing)
        return cls(ConstraintKind.REQUIRED, raw, changing=changing)

    def with_rejects(self, *versions: str) -> "VersionConstraint":
        return VersionConstraint(self.kind, self.version, self.rejects | frozenset(versions), self.changing)

    @property
    def spec(self) -> Optional[VersionSpec]:
        if self.version is None:
            return None
        return parse_selector(self.version, self.changing)

    @property
    def is_hard(self) -> bool:
        """True for constraints that take part in arbitration unconditionally."""
        return self.version is not None and self.kind != ConstraintKind.PREFERRED

    def is_rejected(self, version: Version) -> bool:
        """Return True when ``version`` is excluded by this constraint's rejects."""
        return any(matches(parse_selector(r), version) for r in self.rejects)

    def __str__(self) -> str:
        text = ""
        if self.version is not None:
            text = self.version if self.kind == ConstraintKind.REQUIRED else f"{self.kind.value} {self.version}"
        if self.rejects:
            rejected = ", ".join(sorted(self.rejects))
            text = f"{text} reject {rejected}".strip()
        return text


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency declared directly in a configuration."""
    coordinate: Coordinate
    constraint: VersionConstraint
    configuration: str


ModuleKey = Tuple[Coordinate, Version]


@dataclass(eq=False)
class DependencyNode:
    """One edge of the unresolved dependency graph.

    Nodes pointing at the same module version share one ``children`` list.
    Nodes contributed by a platform are ``constraint_only``: they influence
    arbitration but never pull a module into the graph by themselves.
    """
    coordinate: Coordinate
    requested: VersionConstraint
    requester: str
    selected: Optional[Version]
    kind: VersionKind = VersionKind.EXACT
    parent: Optional[ModuleKey] = None
    constraint_only: bool = False
    children: List["DependencyNode"] = field(default_factory=list, repr=False)

    @property
    def key(self) -> Optional[ModuleKey]:
        if self.selected is None:
            return None
        return self.coordinate, self.selected

    @property
    def reproducible(self) -> bool:
        return self.kind == VersionKind.EXACT


class ConstraintSet:
    """A named collection of version constraints ("platform").

    Attached to a configuration, its constraints join arbitration for every
    coordinate that ends up in the graph, whether declared directly or pulled
    in transitively.
    """

    def __init__(self, name: str, constraints: Optional[Mapping[Coordinate, VersionConstraint]] = None):
        self.name = name
        self._constraints: Dict[Coordinate, VersionConstraint] = dict(constraints or {})

    @classmethod
    def from_catalog(cls, name: str, entries: Mapping[str, str]) -> "ConstraintSet":
        """Re-declare every catalog entry ("group:name" -> version) as a strict constraint."""
        constraints = {
            Coordinate.parse(coordinate): VersionConstraint.strictly(str(version))
            for coordinate, version in entries.items()
        }
        return cls(name, constraints)

    def constrain(self, coordinate: Coordinate, constraint: VersionConstraint) -> "ConstraintSet":
        self._constraints[coordinate] = constraint
        return self

    @property
    def constraints(self) -> Dict[Coordinate, VersionConstraint]:
        return dict(self._constraints)

    @property
    def requester(self) -> str:
        return f"platform '{self.name}'"

    def items(self) -> List[Tuple[Coordinate, VersionConstraint]]:
        return sorted(self._constraints.items())

    def __len__(self) -> int:
        return len(self._constraints)

    def __repr__(self) -> str:
        return f"ConstraintSet({self.name!r}, {len(self)} constraints)"


@dataclass(frozen=True)
class AlignmentGroup:
    """Coordinates that must always resolve to the same version."""
    group_id: str
    members: FrozenSet[Coordinate]

    @classmethod
    def of(cls, group_id: str, members: Iterable[Any]) -> "AlignmentGroup":
        coords = frozenset(m if isinstance(m, Coordinate) else Coordinate.parse(m) for m in members)
        return cls(group_id, coords)

    @property
    def requester(self) -> str:
        return f"alignment group '{self.group_id}'"


@dataclass(frozen=True)
class ResolutionPolicy:
    """Policy flags and tunables threaded through a single resolution."""
    fail_on_version_conflict: bool = False
    fail_on_non_reproducible_resolution: bool = False
    max_workers: int = Constants.MAX_WORKERS
    lookup_timeout: float = Constants.LOOKUP_TIMEOUT_SEC

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], base: Optional["ResolutionPolicy"] = None) -> "ResolutionPolicy":
        """Build a policy from a config mapping, falling back to ``base`` for missing keys."""
        base = base or cls()
        data = data or {}
        return cls(
            fail_on_version_conflict=bool(data.get("fail_on_version_conflict", base.fail_on_version_conflict)),
            fail_on_non_reproducible_resolution=bool(
                data.get("fail_on_non_reproducible_resolution", base.fail_on_non_reproducible_resolution)
            ),
            max_workers=max(1, int(data.get("max_workers", base.max_workers))),
            lookup_timeout=float(data.get("lookup_timeout", base.lookup_timeout)),
        )


@dataclass(frozen=True)
class Configuration:
    """A resolvable configuration and the declaring configurations it inherits from."""
    name: str
    extends_from: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AlignmentAdjustment:
    """A coordinate moved to its alignment group's version."""
    group_id: str
    coordinate: Coordinate
    from_version: Version
    to_version: Version

    def to_dict(self) -> Dict[str, str]:
        return {
            "group": self.group_id,
            "module": str(self.coordinate),
            "from": str(self.from_version),
            "to": str(self.to_version),
        }


@dataclass(frozen=True)
class ConflictWarning:
    """A version conflict that was resolved automatically."""
    coordinate: Coordinate
    requests: Tuple[Tuple[str, Tuple[str, ...]], ...]
    selected: Version

    @property
    def versions(self) -> Tuple[str, ...]:
        return tuple(v for v, _ in self.requests)

    @property
    def message(self) -> str:
        versions = self.versions
        joined = ", ".join(versions[:-1]) + f" and {versions[-1]}"
        requesters = ", ".join(r for _, rs in self.requests for r in rs)
        return (
            f"Conflict for {self.coordinate} between versions {joined} "
            f"(requested by {requesters}) resolved to {self.selected}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": str(self.coordinate),
            "selected": str(self.selected),
            "requests": {version: list(requesters) for version, requesters in self.requests},
        }


@dataclass
class ResolutionReport:
    """Outcome of resolving one configuration."""
    configuration: str
    resolved: Dict[Coordinate, Version]
    alignments: List[AlignmentAdjustment] = field(default_factory=list)
    warnings: List[ConflictWarning] = field(default_factory=list)
    evicted: List[Coordinate] = field(default_factory=list)

    def version_of(self, coordinate: Any) -> Optional[Version]:
        if not isinstance(coordinate, Coordinate):
            coordinate = Coordinate.parse(coordinate)
        return self.resolved.get(coordinate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configuration": self.configuration,
            "resolved": {str(c): str(v) for c, v in sorted(self.resolved.items())},
            "alignments": [a.to_dict() for a in self.alignments],
            "warnings": [w.to_dict() for w in self.warnings],
            "evicted": [str(c) for c in self.evicted],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)
