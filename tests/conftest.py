"""Shared fixtures for depalign tests."""

import pytest

from depalign.resolution import (
    AlignmentGroup,
    Coordinate,
    DependencyDeclaration,
    InMemoryMetadataSource,
)
from depalign.resolution.notation import parse_notation

DATABIND = Coordinate("com.fasterxml.jackson.core", "jackson-databind")
CORE = Coordinate("com.fasterxml.jackson.core", "jackson-core")
ANNOTATIONS = Coordinate("com.fasterxml.jackson.core", "jackson-annotations")
VERTX = Coordinate("io.vertx", "vertx-core")


@pytest.fixture
def declare():
    """Factory turning "group:name:version" notation into a DependencyDeclaration."""
    def _declare(notation, configuration="implementation"):
        coordinate, constraint = parse_notation(notation)
        return DependencyDeclaration(coordinate, constraint, configuration)
    return _declare


@pytest.fixture
def jackson_source():
    """vertx-core 3.5.3 pulls jackson-databind 2.9.5; databind depends on core/annotations of its own version."""
    source = InMemoryMetadataSource()
    source.publish(VERTX, "3.5.3", [f"{DATABIND}:2.9.5"])
    for version in ("2.8.9", "2.9.5"):
        source.publish(DATABIND, version, [f"{CORE}:{version}", f"{ANNOTATIONS}:{version}"])
        source.publish(CORE, version)
        source.publish(ANNOTATIONS, version)
    return source


@pytest.fixture
def flat_jackson_source():
    """Like jackson_source, but jackson modules have no dependencies of their own."""
    source = InMemoryMetadataSource()
    source.publish(VERTX, "3.5.3", [f"{DATABIND}:2.9.5"])
    for version in ("2.8.9", "2.9.5"):
        for coordinate in (DATABIND, CORE, ANNOTATIONS):
            source.publish(coordinate, version)
    return source


@pytest.fixture
def jackson_group():
    return AlignmentGroup.of("jackson", [CORE, DATABIND, ANNOTATIONS])
