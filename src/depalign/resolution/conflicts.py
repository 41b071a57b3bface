"""Conflict resolution: reduce the unresolved multigraph to one version per coordinate.

Arbitration order for a coordinate is: strict constraints, then alignment
groups, then platform constraints and regular requests together (highest
version wins). Policy flags decide whether multiple requested versions and
non-reproducible selectors are tolerated.

Requests contributed by module versions that lose arbitration are evicted and
arbitration is repeated until the selection is stable, so modules pulled in
only by a losing version do not appear in the report.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..common.logging_utils import extra_context, is_debug_enabled
from ..versioning import Version
from .errors import ResolutionErrorKind, ResolutionFailure, ResolutionIssue
from .graph import DependencyGraph
from .models import (
    AlignmentAdjustment,
    AlignmentGroup,
    ConflictWarning,
    Coordinate,
    DependencyNode,
    ResolutionPolicy,
    ResolutionReport,
)
from .selection import aligned_target, considered, grouped_requests, highest, is_rejected, settle, strict_nodes

logger = logging.getLogger(__name__)

Requests = Tuple[Tuple[str, Tuple[str, ...]], ...]


def _group_requests(nodes: Iterable[DependencyNode]) -> Requests:
    """Pair each distinct selected version (ascending) with its requesters."""
    by_version: Dict[Version, List[str]] = {}
    labels: Dict[Version, str] = {}
    for node in nodes:
        if node.selected is None:
            continue
        labels.setdefault(node.selected, str(node.selected))
        requesters = by_version.setdefault(node.selected, [])
        if node.requester not in requesters:
            requesters.append(node.requester)
    return tuple((labels[v], tuple(by_version[v])) for v in sorted(by_version))


class ConflictResolver:
    """Arbitrates one version per coordinate for a DependencyGraph.

    Args:
        policy: Policy flags for this resolution.
        alignment_groups: Groups whose present members must share one version.
    """

    def __init__(self, policy: Optional[ResolutionPolicy] = None, alignment_groups: Sequence[AlignmentGroup] = ()):
        self.policy = policy or ResolutionPolicy()
        self.alignment_groups = sorted(alignment_groups, key=lambda g: g.group_id)

    def resolve(self, graph: DependencyGraph) -> ResolutionReport:
        """Resolve the graph or raise ResolutionFailure listing every issue found."""
        grouped = grouped_requests(graph, settle(graph, self.alignment_groups))
        evicted = [c for c in graph.coordinates() if c not in grouped]
        for coordinate in evicted:
            logger.debug("Evicted %s from %s: only requested by evicted versions", coordinate, graph.configuration)

        report = self._arbitrate(graph, grouped)
        report.evicted = evicted
        logger.info(
            "Resolved %d modules for %s (%d conflicts resolved, %d alignments, %d evicted).",
            len(report.resolved), graph.configuration, len(report.warnings), len(report.alignments), len(evicted),
        )
        return report

    def _arbitrate(self, graph: DependencyGraph, grouped: Dict[Coordinate, List[DependencyNode]]) -> ResolutionReport:
        configuration = graph.configuration
        issues: List[ResolutionIssue] = []
        candidates: Dict[Coordinate, Version] = {}
        strict_versions: Dict[Coordinate, DependencyNode] = {}

        for coordinate in sorted(grouped):
            nodes = grouped[coordinate]
            issue = self._check_strict(coordinate, nodes)
            if issue is not None:
                issues.append(issue)
                continue
            strict = strict_nodes(nodes)
            if strict:
                strict_versions[coordinate] = strict[0]
                version = strict[0].selected
                if is_rejected(nodes, version):
                    issues.append(self._rejected_issue(coordinate, nodes))
                    continue
                candidates[coordinate] = version
                continue
            version = highest(nodes)
            if version is None:
                issues.append(self._rejected_issue(coordinate, nodes))
                continue
            candidates[coordinate] = version

        targets = dict(candidates)
        sources: Dict[Coordinate, List[Coordinate]] = {c: [c] for c in candidates}
        alignments: List[AlignmentAdjustment] = []
        for group in self.alignment_groups:
            target = aligned_target(candidates, group)
            if target is None:
                continue
            members = [c for c in sorted(group.members) if c in candidates]
            for member in members:
                if candidates[member] == target:
                    sources[member] = members
                    continue
                strict = strict_versions.get(member)
                if strict is not None:
                    issues.append(ResolutionIssue(
                        ResolutionErrorKind.STRICT_VIOLATION,
                        member,
                        ((str(strict.selected), (strict.requester,)), (str(target), (group.requester,))),
                    ))
                    targets.pop(member, None)
                    continue
                if is_rejected(grouped[member], target):
                    issues.append(ResolutionIssue(
                        ResolutionErrorKind.REJECTED_VERSION,
                        member,
                        ((str(target), (group.requester,)),),
                        "aligned version is rejected",
                    ))
                    targets.pop(member, None)
                    continue
                if (member, target) in graph.unpublished:
                    continue
                sources[member] = members
                targets[member] = target
                alignments.append(AlignmentAdjustment(group.group_id, member, candidates[member], target))
                if is_debug_enabled(logger):
                    logger.debug(
                        "Aligned %s from %s to %s", member, candidates[member], target,
                        extra=extra_context(
                            event="decision", component="conflict_resolver", action="align",
                            configuration=configuration, target=str(member),
                        ),
                    )

        resolved: Dict[Coordinate, Version] = {}
        warnings: List[ConflictWarning] = []
        for coordinate in sorted(targets):
            nodes = grouped[coordinate]
            target = targets[coordinate]
            requests = _group_requests(considered(nodes))
            if len(requests) > 1:
                if self.policy.fail_on_version_conflict:
                    issues.append(ResolutionIssue(ResolutionErrorKind.VERSION_CONFLICT, coordinate, requests))
                    continue
                warning = ConflictWarning(coordinate, requests, target)
                warnings.append(warning)
                logger.warning("%s", warning.message)
            if self.policy.fail_on_non_reproducible_resolution:
                origin = self._non_reproducible_origin(grouped, sources[coordinate], target)
                if origin is not None:
                    issues.append(ResolutionIssue(
                        ResolutionErrorKind.NON_REPRODUCIBLE_RESOLUTION,
                        coordinate,
                        ((str(target), (origin.requester,)),),
                        f"selected by {origin.kind.value} version '{origin.requested.version}'",
                    ))
                    continue
            resolved[coordinate] = target

        if issues:
            issues.sort(key=lambda i: (str(i.coordinate), i.kind.value))
            for issue in issues:
                logger.error("%s", issue.describe())
            raise ResolutionFailure(issues)

        return ResolutionReport(
            configuration=configuration,
            resolved=dict(sorted(resolved.items())),
            alignments=alignments,
            warnings=warnings,
        )

    @staticmethod
    def _check_strict(coordinate: Coordinate, nodes: Sequence[DependencyNode]) -> Optional[ResolutionIssue]:
        """A strict request tolerates no other requested version for its coordinate, preferred ones included."""
        strict = strict_nodes(nodes)
        if not strict:
            return None
        strict_version = strict[0].selected
        offenders = [
            n for n in nodes
            if n.selected is not None and n.selected != strict_version
        ]
        if not offenders:
            return None
        strict_requests = _group_requests(n for n in strict if n.selected == strict_version)
        other_requests = _group_requests(offenders)
        return ResolutionIssue(ResolutionErrorKind.STRICT_VIOLATION, coordinate, strict_requests + other_requests)

    @staticmethod
    def _rejected_issue(coordinate: Coordinate, nodes: Sequence[DependencyNode]) -> ResolutionIssue:
        rejected = sorted({r for n in nodes for r in n.requested.rejects})
        return ResolutionIssue(
            ResolutionErrorKind.REJECTED_VERSION,
            coordinate,
            _group_requests(considered(nodes)),
            f"every requested version is rejected ({', '.join(rejected)})",
        )

    @staticmethod
    def _non_reproducible_origin(
        grouped: Dict[Coordinate, List[DependencyNode]],
        members: Sequence[Coordinate],
        target: Version,
    ) -> Optional[DependencyNode]:
        """Return a dynamic or changing request that produced the selected version, if any."""
        for member in members:
            for node in considered(grouped[member]):
                if node.selected == target and not node.reproducible:
                    return node
        return None
