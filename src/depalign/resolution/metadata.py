"""Transitive-lookup collaborators.

A MetadataSource answers two questions for the graph builder: which versions
of a module exist, and what a given module version depends on. Sources must be
safe to call from several threads at once; they signal failure by raising
MetadataUnavailableError.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..constants import load_yaml_file
from ..versioning import Version
from .errors import MetadataUnavailableError
from .models import Coordinate, VersionConstraint
from .notation import parse_notation

logger = logging.getLogger(__name__)

Dependency = Tuple[Coordinate, VersionConstraint]

_METADATA_EXTENSIONS = (".yml", ".yaml", ".json")


class MetadataSource(ABC):
    """Base class for module metadata lookups."""

    @abstractmethod
    def list_versions(self, coordinate: Coordinate) -> List[str]:
        """Return every published version of ``coordinate``."""

    @abstractmethod
    def dependencies_of(self, coordinate: Coordinate, version: Version) -> List[Dependency]:
        """Return the declared dependencies of one module version."""

    def is_changing(self, coordinate: Coordinate, version: Version) -> bool:  # pylint: disable=unused-argument
        """Return True when the content behind ``version`` may change over time."""
        return version.is_snapshot


class InMemoryMetadataSource(MetadataSource):
    """Metadata held in a dict; the usual source for tests and request documents."""

    def __init__(self) -> None:
        self._modules: Dict[Coordinate, Dict[Version, List[Dependency]]] = {}
        self._changing: set = set()
        self._lock = threading.Lock()

    def publish(
        self,
        coordinate: Any,
        version: str,
        dependencies: Iterable[Any] = (),
        changing: bool = False,
    ) -> "InMemoryMetadataSource":
        """Register a module version and its dependencies.

        Args:
            coordinate: Coordinate or "group:name" string.
            version: Published version.
            dependencies: Entries accepted by ``parse_notation`` or (Coordinate, VersionConstraint) pairs.
            changing: Mark the published version as changing content.
        """
        if not isinstance(coordinate, Coordinate):
            coordinate = Coordinate.parse(coordinate)
        parsed = [dep if isinstance(dep, tuple) else parse_notation(dep) for dep in dependencies]
        key = Version(version)
        with self._lock:
            self._modules.setdefault(coordinate, {})[key] = parsed
            if changing:
                self._changing.add((coordinate, key))
        return self

    def list_versions(self, coordinate: Coordinate) -> List[str]:
        with self._lock:
            versions = self._modules.get(coordinate)
            if not versions:
                raise MetadataUnavailableError(coordinate, reason="module not found")
            return [str(v) for v in sorted(versions)]

    def dependencies_of(self, coordinate: Coordinate, version: Version) -> List[Dependency]:
        with self._lock:
            deps = self._modules.get(coordinate, {}).get(version)
            if deps is None:
                raise MetadataUnavailableError(coordinate, str(version), "module version not found")
            return list(deps)

    def is_changing(self, coordinate: Coordinate, version: Version) -> bool:
        with self._lock:
            if (coordinate, version) in self._changing:
                return True
        return version.is_snapshot


def _load_module_document(path: str) -> Tuple[List[Any], bool]:
    data = load_yaml_file(path)
    deps = data.get("dependencies") or []
    if not isinstance(deps, list):
        raise ValueError(f"{path}: 'dependencies' must be a list")
    return deps, bool(data.get("changing", False))


class FileMetadataSource(MetadataSource):
    """Metadata laid out on disk as ``<root>/<group>/<name>/<version>.yml``.

    Each document holds a ``dependencies`` list (dependency notation) and an
    optional ``changing`` flag. JSON documents are accepted as well.
    """

    def __init__(self, root: str) -> None:
        self.root = root

    def _module_dir(self, coordinate: Coordinate) -> str:
        return os.path.join(self.root, coordinate.group, coordinate.name)

    def _document(self, coordinate: Coordinate, version: Version) -> Optional[str]:
        for ext in _METADATA_EXTENSIONS:
            path = os.path.join(self._module_dir(coordinate), f"{version}{ext}")
            if os.path.isfile(path):
                return path
        return None

    def list_versions(self, coordinate: Coordinate) -> List[str]:
        module_dir = self._module_dir(coordinate)
        try:
            names = sorted(os.listdir(module_dir))
        except OSError as exc:
            raise MetadataUnavailableError(coordinate, reason=f"cannot list {module_dir}: {exc}") from exc
        return [os.path.splitext(n)[0] for n in names if n.endswith(_METADATA_EXTENSIONS)]

    def _read(self, coordinate: Coordinate, version: Version) -> Tuple[List[Any], bool]:
        path = self._document(coordinate, version)
        if path is None:
            raise MetadataUnavailableError(coordinate, str(version), "module version not found")
        try:
            return _load_module_document(path)
        except (OSError, ValueError) as exc:
            raise MetadataUnavailableError(coordinate, str(version), str(exc)) from exc

    def dependencies_of(self, coordinate: Coordinate, version: Version) -> List[Dependency]:
        entries, _ = self._read(coordinate, version)
        try:
            return [parse_notation(entry) for entry in entries]
        except ValueError as exc:
            raise MetadataUnavailableError(coordinate, str(version), str(exc)) from exc

    def is_changing(self, coordinate: Coordinate, version: Version) -> bool:
        if version.is_snapshot:
            return True
        if self._document(coordinate, version) is None:
            return False
        _, changing = self._read(coordinate, version)
        return changing


def load_in_memory_source(modules: Mapping[str, Mapping[Any, Any]]) -> InMemoryMetadataSource:
    """Build an InMemoryMetadataSource from a ``module -> version -> entry`` mapping.

    An entry is either a list of dependency notations or a mapping with
    ``dependencies`` and ``changing`` keys.
    """
    source = InMemoryMetadataSource()
    for module, versions in (modules or {}).items():
        if not isinstance(versions, Mapping):
            raise ValueError(f"metadata for '{module}' must map versions to dependencies")
        for version, entry in versions.items():
            changing = False
            deps: Sequence[Any] = entry or []
            if isinstance(entry, Mapping):
                deps = entry.get("dependencies") or []
                changing = bool(entry.get("changing", False))
            source.publish(str(module), str(version), deps, changing=changing)
    return source
