"""Dependency graph construction and conflict resolution."""

from .conflicts import ConflictResolver
from .errors import (
    CyclicDependencyError,
    MetadataUnavailableError,
    ResolutionCancelledError,
    ResolutionError,
    ResolutionErrorKind,
    ResolutionFailure,
    ResolutionIssue,
)
from .graph import CancellationToken, DependencyGraph, GraphBuilder
from .metadata import FileMetadataSource, InMemoryMetadataSource, MetadataSource
from .models import (
    AlignmentAdjustment,
    AlignmentGroup,
    Configuration,
    ConflictWarning,
    ConstraintKind,
    ConstraintSet,
    Coordinate,
    DependencyDeclaration,
    DependencyNode,
    ResolutionPolicy,
    ResolutionReport,
    VersionConstraint,
)
from .service import ConfigurationOutcome, ResolutionService

__all__ = [
    "AlignmentAdjustment",
    "AlignmentGroup",
    "CancellationToken",
    "Configuration",
    "ConfigurationOutcome",
    "ConflictResolver",
    "ConflictWarning",
    "ConstraintKind",
    "ConstraintSet",
    "Coordinate",
    "CyclicDependencyError",
    "DependencyDeclaration",
    "DependencyGraph",
    "DependencyNode",
    "FileMetadataSource",
    "GraphBuilder",
    "InMemoryMetadataSource",
    "MetadataSource",
    "MetadataUnavailableError",
    "ResolutionCancelledError",
    "ResolutionError",
    "ResolutionErrorKind",
    "ResolutionFailure",
    "ResolutionIssue",
    "ResolutionPolicy",
    "ResolutionReport",
    "ResolutionService",
    "VersionConstraint",
]
