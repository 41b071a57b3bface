"""Tests for alignment groups."""

import pytest

from conftest import ANNOTATIONS, CORE, DATABIND, VERTX
from depalign.resolution import (
    AlignmentGroup,
    ConflictResolver,
    ConstraintSet,
    Coordinate,
    DependencyDeclaration,
    GraphBuilder,
    InMemoryMetadataSource,
    ResolutionErrorKind,
    ResolutionFailure,
    ResolutionPolicy,
    ResolutionService,
    VersionConstraint,
)
from depalign.versioning import Version

EXTRA = Coordinate("com.example", "extra")


@pytest.fixture
def bumped_declarations(declare):
    """core, databind and annotations at 2.8.9; vertx-core bumps databind to 2.9.5."""
    return [
        declare(f"{CORE}:2.8.9"),
        declare(f"{DATABIND}:2.8.9"),
        declare(f"{ANNOTATIONS}:2.8.9"),
        declare(f"{VERTX}:3.5.3"),
    ]


class TestAlignment:
    """Members present in the graph resolve to one version."""

    def test_members_follow_highest(self, flat_jackson_source, jackson_group, bumped_declarations):
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        report = service.resolve("runtimeClasspath", bumped_declarations)

        for coordinate in (CORE, DATABIND, ANNOTATIONS):
            assert report.version_of(coordinate) == Version("2.9.5")
        moved = [(str(a.coordinate), str(a.from_version), str(a.to_version)) for a in report.alignments]
        assert moved == [
            (str(ANNOTATIONS), "2.8.9", "2.9.5"),
            (str(CORE), "2.8.9", "2.9.5"),
        ]
        assert report.alignments[0].to_dict()["group"] == "jackson"

    def test_alignment_alone_is_not_a_conflict(self, flat_jackson_source, jackson_group, bumped_declarations):
        """Only databind saw two requested versions; aligned members are not conflicts."""
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        report = service.resolve("runtimeClasspath", bumped_declarations)
        assert [w.coordinate for w in report.warnings] == [DATABIND]

    def test_without_group_members_diverge(self, flat_jackson_source, bumped_declarations):
        report = ResolutionService(flat_jackson_source).resolve("runtimeClasspath", bumped_declarations)
        assert report.version_of(CORE) == Version("2.8.9")
        assert report.version_of(DATABIND) == Version("2.9.5")
        assert report.alignments == []

    def test_absent_members_not_added(self, flat_jackson_source, jackson_group, declare):
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        report = service.resolve("runtimeClasspath", [declare(f"{VERTX}:3.5.3")])
        assert report.version_of(CORE) is None
        assert report.version_of(ANNOTATIONS) is None
        assert report.version_of(DATABIND) == Version("2.9.5")

    def test_aligned_version_brings_its_dependencies(self, flat_jackson_source, jackson_group, bumped_declarations):
        """annotations 2.9.5 is only reached through alignment; its own edges still count."""
        flat_jackson_source.publish(ANNOTATIONS, "2.9.5", [f"{EXTRA}:1.0"])
        flat_jackson_source.publish(EXTRA, "1.0")
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        report = service.resolve("runtimeClasspath", bumped_declarations)
        assert report.version_of(EXTRA) == Version("1.0")

    def test_preferred_version_above_target_is_not_looked_up_as_target(self, declare):
        """core prefers 3.0 but requires 1.0; the group settles on databind's 1.5, whose edges count."""
        source = InMemoryMetadataSource()
        source.publish(CORE, "1.0")
        source.publish(CORE, "1.5", [f"{EXTRA}:1.0"])
        source.publish(CORE, "3.0")
        source.publish(DATABIND, "1.5")
        source.publish(EXTRA, "1.0")
        group = AlignmentGroup.of("jackson", [CORE, DATABIND])
        declarations = [
            declare(f"{CORE}:1.0"),
            DependencyDeclaration(CORE, VersionConstraint.prefer("3.0"), "implementation"),
            declare(f"{DATABIND}:1.5"),
        ]

        builder = GraphBuilder(source, alignment_groups=[group])
        graph = builder.build(declarations, configuration="runtimeClasspath")
        assert graph.has_module((CORE, Version("1.5")))

        report = ConflictResolver(alignment_groups=[group]).resolve(graph)
        assert report.version_of(CORE) == Version("1.5")
        assert report.version_of(DATABIND) == Version("1.5")
        assert report.version_of(EXTRA) == Version("1.0")

    def test_target_of_evicted_request_not_used(self, declare):
        """databind 2.0 is only wanted by old-lib 1.0, which loses; the group aligns to 1.5."""
        old_lib = Coordinate("com.example", "old-lib")
        source = InMemoryMetadataSource()
        source.publish(old_lib, "1.0", [f"{DATABIND}:2.0"])
        source.publish(old_lib, "2.0")
        source.publish("com.example:app", "1.0", [f"{old_lib}:2.0"])
        for version in ("1.0", "1.5", "2.0"):
            source.publish(DATABIND, version)
        source.publish(CORE, "1.0")
        source.publish(CORE, "1.5", [f"{EXTRA}:1.0"])
        source.publish(CORE, "2.0")
        source.publish(EXTRA, "1.0")
        group = AlignmentGroup.of("jackson", [CORE, DATABIND])
        declarations = [
            declare(f"{CORE}:1.0"),
            declare(f"{DATABIND}:1.5"),
            declare(f"{old_lib}:1.0"),
            declare("com.example:app:1.0"),
        ]

        report = ResolutionService(source, alignment_groups=[group]).resolve("runtimeClasspath", declarations)
        assert report.version_of(old_lib) == Version("2.0")
        assert report.version_of(DATABIND) == Version("1.5")
        assert report.version_of(CORE) == Version("1.5")
        assert report.version_of(EXTRA) == Version("1.0")

    def test_member_missing_at_target_keeps_its_version(self, jackson_group, bumped_declarations):
        """annotations was never published at 2.9.5; it stays at 2.8.9 while core moves."""
        source = InMemoryMetadataSource()
        source.publish(VERTX, "3.5.3", [f"{DATABIND}:2.9.5"])
        for version in ("2.8.9", "2.9.5"):
            source.publish(DATABIND, version)
            source.publish(CORE, version)
        source.publish(ANNOTATIONS, "2.8.9")

        builder = GraphBuilder(source, alignment_groups=[jackson_group])
        graph = builder.build(bumped_declarations, configuration="runtimeClasspath")
        assert (ANNOTATIONS, Version("2.9.5")) in graph.unpublished

        report = ConflictResolver(alignment_groups=[jackson_group]).resolve(graph)
        assert report.version_of(ANNOTATIONS) == Version("2.8.9")
        assert report.version_of(CORE) == Version("2.9.5")
        assert [str(a.coordinate) for a in report.alignments] == [str(CORE)]

    def test_align_registered_later(self, flat_jackson_source, bumped_declarations):
        service = ResolutionService(flat_jackson_source)
        service.align(AlignmentGroup.of("jackson", [str(CORE), str(DATABIND)]))
        report = service.resolve("runtimeClasspath", bumped_declarations)
        assert report.version_of(CORE) == Version("2.9.5")
        assert report.version_of(ANNOTATIONS) == Version("2.8.9")


class TestAlignmentFailures:
    def test_strict_member_cannot_be_aligned(self, flat_jackson_source, jackson_group, bumped_declarations):
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        service.attach("implementation", ConstraintSet.from_catalog("catalog", {str(CORE): "2.8.9"}))

        with pytest.raises(ResolutionFailure) as excinfo:
            service.resolve("runtimeClasspath", bumped_declarations)

        (issue,) = excinfo.value.issues
        assert issue.kind == ResolutionErrorKind.STRICT_VIOLATION
        assert issue.coordinate == CORE
        assert issue.requests == (
            ("2.8.9", ("platform 'catalog'",)),
            ("2.9.5", ("alignment group 'jackson'",)),
        )

    def test_aligned_version_rejected(self, flat_jackson_source, jackson_group, bumped_declarations):
        service = ResolutionService(flat_jackson_source, alignment_groups=[jackson_group])
        service.attach("implementation", ConstraintSet("guard").constrain(CORE, VersionConstraint.rejecting("2.9.5")))
        with pytest.raises(ResolutionFailure) as excinfo:
            service.resolve("runtimeClasspath", bumped_declarations)
        (issue,) = excinfo.value.issues
        assert issue.kind == ResolutionErrorKind.REJECTED_VERSION
        assert "aligned version is rejected" in issue.describe()

    def test_aligned_dynamic_member_non_reproducible(self, flat_jackson_source, jackson_group, declare):
        """The group target came from a dynamic selector on another member."""
        policy = ResolutionPolicy(fail_on_non_reproducible_resolution=True)
        service = ResolutionService(flat_jackson_source, policy, alignment_groups=[jackson_group])
        declarations = [declare(f"{CORE}:2.8.9"), declare(f"{DATABIND}:2.+")]
        with pytest.raises(ResolutionFailure) as excinfo:
            service.resolve("runtimeClasspath", declarations)
        assert {str(i.coordinate) for i in excinfo.value.issues} == {str(CORE), str(DATABIND)}
        assert excinfo.value.kinds == (ResolutionErrorKind.NON_REPRODUCIBLE_RESOLUTION,)
