"""Loading of resolution request documents.

A request document is an already-parsed description of what to resolve
(YAML or JSON)::

    configurations:            # optional, extends the defaults
      testRuntimeClasspath: [runtimeClasspath, testImplementation]
    dependencies:              # declaring configuration -> dependency notations
      implementation:
        - com.fasterxml.jackson.core:jackson-databind:2.8.9
        - module: io.vertx:vertx-core
          version: 3.5.3
    platforms:
      - name: catalog
        attach: [runtimeClasspath]
        catalog:
          com.fasterxml.jackson.core:jackson-databind: "2.8.9"
        constraints:
          io.netty:netty-all: {strictly: 4.1.19.Final}
    alignment:
      jackson:
        - com.fasterxml.jackson.core:jackson-core
        - com.fasterxml.jackson.core:jackson-databind
    metadata:                  # or metadata_dir: ./repo
      io.vertx:vertx-core:
        "3.5.3":
          - com.fasterxml.jackson.core:jackson-databind:2.9.5

Quote versions in YAML keys ("2.10") so they are not read as numbers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import load_yaml_file
from .resolution.metadata import FileMetadataSource, MetadataSource, load_in_memory_source
from .resolution.models import (
    AlignmentGroup,
    Configuration,
    ConstraintSet,
    Coordinate,
    DependencyDeclaration,
)
from .resolution.notation import parse_constraint, parse_notation
from .resolution.service import ResolutionService

logger = logging.getLogger(__name__)


class RequestError(ValueError):
    """Raised when a request document is malformed."""


@dataclass
class ResolutionRequest:
    """Everything needed to run a resolution, as read from a request document."""
    source: MetadataSource
    declarations: List[DependencyDeclaration] = field(default_factory=list)
    configurations: List[Configuration] = field(default_factory=list)
    platforms: List[Tuple[str, ConstraintSet]] = field(default_factory=list)
    alignment_groups: List[AlignmentGroup] = field(default_factory=list)

    def create_service(self, policy=None) -> ResolutionService:
        """Build a ResolutionService with this request's configurations, platforms and groups."""
        service = ResolutionService(self.source, policy=policy, alignment_groups=self.alignment_groups)
        for configuration in self.configurations:
            service.register(configuration)
        for configuration, constraint_set in self.platforms:
            service.attach(configuration, constraint_set)
        return service


def _as_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (str, Mapping)):
        return [value]
    if not isinstance(value, list):
        raise RequestError(f"'{what}' must be a list")
    return value


def _parse_declarations(data: Any) -> List[DependencyDeclaration]:
    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise RequestError("'dependencies' must map declaring configurations to dependency lists")
    declarations = []
    for configuration, entries in data.items():
        for entry in _as_list(entries, f"dependencies.{configuration}"):
            try:
                coordinate, constraint = parse_notation(entry)
            except ValueError as exc:
                raise RequestError(f"dependencies.{configuration}: {exc}") from exc
            declarations.append(DependencyDeclaration(coordinate, constraint, str(configuration)))
    return declarations


def _parse_configurations(data: Any) -> List[Configuration]:
    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise RequestError("'configurations' must map names to the configurations they extend")
    configurations = []
    for name, parents in data.items():
        if isinstance(parents, Mapping):
            parents = parents.get("extends_from")
        configurations.append(Configuration(str(name), tuple(str(p) for p in _as_list(parents, name))))
    return configurations


def _parse_platform(entry: Any, index: int) -> Tuple[List[str], ConstraintSet]:
    if not isinstance(entry, Mapping):
        raise RequestError(f"platforms[{index}] must be a mapping")
    name = str(entry.get("name") or f"platform-{index}")
    attach = [str(c) for c in _as_list(entry.get("attach"), f"platforms[{index}].attach")]
    if not attach:
        raise RequestError(f"platform '{name}' is not attached to any configuration")
    try:
        constraint_set = ConstraintSet.from_catalog(name, entry.get("catalog") or {})
        for module, constraint in (entry.get("constraints") or {}).items():
            constraint_set.constrain(Coordinate.parse(module), parse_constraint(constraint))
    except (AttributeError, ValueError) as exc:
        raise RequestError(f"platform '{name}': {exc}") from exc
    return attach, constraint_set


def _parse_alignment(data: Any) -> List[AlignmentGroup]:
    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise RequestError("'alignment' must map group ids to member lists")
    try:
        return [AlignmentGroup.of(str(gid), _as_list(members, gid)) for gid, members in data.items()]
    except ValueError as exc:
        raise RequestError(f"alignment: {exc}") from exc


def _build_source(data: Mapping[str, Any], base_dir: str) -> MetadataSource:
    metadata_dir = data.get("metadata_dir")
    if metadata_dir:
        path = metadata_dir if os.path.isabs(metadata_dir) else os.path.join(base_dir, metadata_dir)
        logger.debug("Using metadata directory %s", path)
        return FileMetadataSource(path)
    try:
        return load_in_memory_source(data.get("metadata") or {})
    except ValueError as exc:
        raise RequestError(f"metadata: {exc}") from exc


def parse_request(data: Mapping[str, Any], base_dir: str = ".") -> ResolutionRequest:
    """Build a ResolutionRequest from an already-loaded mapping."""
    request = ResolutionRequest(source=_build_source(data, base_dir))
    request.declarations = _parse_declarations(data.get("dependencies"))
    request.configurations = _parse_configurations(data.get("configurations"))
    request.alignment_groups = _parse_alignment(data.get("alignment"))
    for index, entry in enumerate(_as_list(data.get("platforms"), "platforms")):
        attach, constraint_set = _parse_platform(entry, index)
        request.platforms.extend((configuration, constraint_set) for configuration in attach)
    return request


def load_request(path: str) -> ResolutionRequest:
    """Read and parse a request document from disk.

    Raises:
        OSError: when the file cannot be read.
        RequestError: when the document is malformed.
    """
    try:
        data: Dict[str, Any] = load_yaml_file(path)
    except ValueError as exc:
        raise RequestError(str(exc)) from exc
    return parse_request(data, os.path.dirname(os.path.abspath(path)))


def requested_configurations(names: Optional[List[str]], service: ResolutionService) -> List[str]:
    """Configurations to resolve: explicit names, else every registered configuration."""
    return list(names) if names else service.configurations
