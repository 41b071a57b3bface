"""Resolution error taxonomy.

Every fatal outcome is reported as a ResolutionError carrying one or more
ResolutionIssue records, so callers always see the complete list of problems
detected in a configuration rather than only the first one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .models import Coordinate


class ResolutionErrorKind(Enum):
    """Kinds of resolution failure."""
    CYCLIC_DEPENDENCY = "CYCLIC_DEPENDENCY"
    STRICT_VIOLATION = "STRICT_VIOLATION"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    NON_REPRODUCIBLE_RESOLUTION = "NON_REPRODUCIBLE_RESOLUTION"
    METADATA_UNAVAILABLE = "METADATA_UNAVAILABLE"
    REJECTED_VERSION = "REJECTED_VERSION"
    CANCELLED = "CANCELLED"


def _join_versions(versions: Sequence[str]) -> str:
    if len(versions) == 1:
        return versions[0]
    return ", ".join(versions[:-1]) + f" and {versions[-1]}"


@dataclass(frozen=True)
class ResolutionIssue:
    """One detected problem: the coordinate, the versions involved and who asked for them.

    ``requests`` pairs each distinct version with the requesters that asked
    for it, in report order.
    """
    kind: ResolutionErrorKind
    coordinate: Optional[Coordinate]
    requests: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    detail: Optional[str] = None

    @property
    def versions(self) -> Tuple[str, ...]:
        return tuple(v for v, _ in self.requests)

    @property
    def requesters(self) -> Tuple[str, ...]:
        return tuple(r for _, rs in self.requests for r in rs)

    def describe(self) -> str:
        """Human-readable line, e.g.

        ``VERSION_CONFLICT for g:n between versions 1.0 and 2.0 (requested by a, b)``
        """
        text = self.kind.value
        if self.coordinate is not None:
            text += f" for {self.coordinate}"
        versions = self.versions
        if len(versions) > 1:
            text += f" between versions {_join_versions(versions)}"
        elif versions:
            text += f" at version {versions[0]}"
        if self.requesters:
            text += f" (requested by {', '.join(self.requesters)})"
        if self.detail:
            text += f": {self.detail}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "module": str(self.coordinate) if self.coordinate is not None else None,
            "requests": {version: list(requesters) for version, requesters in self.requests},
            "detail": self.detail,
            "message": self.describe(),
        }


class ResolutionError(Exception):
    """Base class for fatal resolution outcomes."""

    def __init__(self, issues: Sequence[ResolutionIssue]):
        self.issues: Tuple[ResolutionIssue, ...] = tuple(issues)
        super().__init__("\n".join(issue.describe() for issue in self.issues))

    @property
    def kinds(self) -> Tuple[ResolutionErrorKind, ...]:
        """Distinct issue kinds, in first-seen order."""
        seen = []
        for issue in self.issues:
            if issue.kind not in seen:
                seen.append(issue.kind)
        return tuple(seen)

    def to_dict(self) -> Dict[str, Any]:
        return {"issues": [issue.to_dict() for issue in self.issues]}


class CyclicDependencyError(ResolutionError):
    """A coordinate transitively depends on itself."""

    def __init__(self, cycle: Sequence[Coordinate]):
        self.cycle: Tuple[Coordinate, ...] = tuple(cycle)
        path = " -> ".join(str(c) for c in self.cycle)
        super().__init__([
            ResolutionIssue(ResolutionErrorKind.CYCLIC_DEPENDENCY, self.cycle[0], detail=f"cycle {path}")
        ])


class MetadataUnavailableError(ResolutionError):
    """The transitive-lookup collaborator failed, timed out or knows no matching version."""

    def __init__(self, coordinate: Coordinate, version: Optional[str] = None, reason: str = "metadata unavailable"):
        self.coordinate = coordinate
        self.version = version
        requests = ((version, ()),) if version else ()
        super().__init__([
            ResolutionIssue(ResolutionErrorKind.METADATA_UNAVAILABLE, coordinate, requests, reason)
        ])


class ResolutionCancelledError(ResolutionError):
    """The resolution of a configuration was aborted by its caller."""

    def __init__(self, configuration: str):
        self.configuration = configuration
        super().__init__([
            ResolutionIssue(
                ResolutionErrorKind.CANCELLED, None, detail=f"resolution of '{configuration}' was cancelled"
            )
        ])


class ResolutionFailure(ResolutionError):
    """Aggregate of every arbitration problem found in one configuration."""
