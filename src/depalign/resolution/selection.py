"""Version selection shared by graph expansion and conflict resolution.

GraphBuilder uses the settled selection to decide which aligned module
versions still need a lookup; ConflictResolver uses the same selection to
evict requests made by losing versions. Both must agree, otherwise a version
could be selected whose own dependencies were never looked up.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

from ..versioning import Version
from .models import AlignmentGroup, ConstraintKind, Coordinate, DependencyNode

if TYPE_CHECKING:
    from .graph import DependencyGraph

logger = logging.getLogger(__name__)

Grouped = Dict[Coordinate, List[DependencyNode]]


def strict_nodes(nodes: Sequence[DependencyNode]) -> List[DependencyNode]:
    return [n for n in nodes if n.requested.kind == ConstraintKind.STRICTLY and n.selected is not None]


def considered(nodes: Sequence[DependencyNode]) -> List[DependencyNode]:
    """Requests that take part in version arbitration.

    Preferred versions only count when nothing stronger was requested.
    """
    hard = [n for n in nodes if n.requested.is_hard and n.selected is not None]
    if hard:
        return hard
    return [n for n in nodes if n.selected is not None]


def is_rejected(nodes: Sequence[DependencyNode], version: Version) -> bool:
    return any(n.requested.is_rejected(version) for n in nodes)


def highest(nodes: Sequence[DependencyNode]) -> Optional[Version]:
    candidates = [n.selected for n in considered(nodes) if not is_rejected(nodes, n.selected)]
    return max(candidates) if candidates else None


def aligned_target(candidates: Dict[Coordinate, Version], group: AlignmentGroup) -> Optional[Version]:
    """Highest candidate among the group members present in ``candidates``."""
    members = [c for c in group.members if c in candidates]
    if not members:
        return None
    return max(candidates[c] for c in members)


def grouped_requests(graph: "DependencyGraph", active: Set[DependencyNode]) -> Grouped:
    grouped: Grouped = {}
    for coordinate in graph.coordinates():
        nodes = [n for n in graph.requests_for(coordinate) if n in active]
        if any(not n.constraint_only for n in nodes):
            grouped[coordinate] = nodes
    return grouped


def select(
    graph: "DependencyGraph",
    grouped: Grouped,
    alignment_groups: Sequence[AlignmentGroup],
) -> Dict[Coordinate, Version]:
    """Best-effort selection; never raises.

    A member never published at its group's aligned version keeps its own
    version.
    """
    selection: Dict[Coordinate, Version] = {}
    for coordinate, nodes in grouped.items():
        strict = strict_nodes(nodes)
        if strict:
            selection[coordinate] = strict[0].selected
            continue
        candidate = highest(nodes)
        if candidate is not None:
            selection[coordinate] = candidate
    candidates = dict(selection)
    for group in alignment_groups:
        target = aligned_target(candidates, group)
        if target is None:
            continue
        for member in sorted(group.members):
            if member not in candidates or strict_nodes(grouped[member]):
                continue
            if (member, target) not in graph.unpublished:
                selection[member] = target
    return selection


def reachable(graph: "DependencyGraph", selection: Dict[Coordinate, Version]) -> Set[DependencyNode]:
    """Requests reachable from the roots through selected module versions only.

    A coordinate contributes the edges of its selected version once it is
    entered, whichever request (or alignment) produced that version.
    """
    pending: Dict[Coordinate, List[DependencyNode]] = {}
    for node in graph.constraints:
        pending.setdefault(node.coordinate, []).append(node)

    active: Set[DependencyNode] = set()
    entered: Set[Coordinate] = set()
    queue = deque(graph.roots)
    while queue:
        node = queue.popleft()
        if node in active:
            continue
        active.add(node)
        if node.constraint_only or node.coordinate in entered:
            continue
        entered.add(node.coordinate)
        queue.extend(pending.get(node.coordinate, ()))
        version = selection.get(node.coordinate)
        if version is not None:
            queue.extend(graph.children_of((node.coordinate, version)))
    return active


def settle(graph: "DependencyGraph", alignment_groups: Sequence[AlignmentGroup]) -> Set[DependencyNode]:
    """Drop requests made by evicted module versions until the selection is stable."""
    active: Set[DependencyNode] = set()
    for coordinate in graph.coordinates():
        active.update(graph.requests_for(coordinate))
    limit = len(graph) + 1
    for _ in range(limit):
        selection = select(graph, grouped_requests(graph, active), alignment_groups)
        nxt = reachable(graph, selection)
        if nxt == active:
            return active
        active = nxt
    logger.warning(
        "Eviction in %s did not reach a stable selection after %d rounds; using the last one",
        graph.configuration, limit,
    )
    return active
