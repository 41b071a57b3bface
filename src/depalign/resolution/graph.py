"""Dependency graph construction.

GraphBuilder expands declared dependencies breadth-first into an unresolved
multigraph: every coordinate keeps every request made for it, at whatever
version, until the ConflictResolver arbitrates. Each distinct module version
is looked up once; lookups of one frontier run concurrently and are merged in
frontier order so the resulting graph does not depend on thread timing.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..versioning import SelectorMode, Version, VersionKind, pick_highest
from .errors import CyclicDependencyError, MetadataUnavailableError, ResolutionCancelledError, ResolutionError
from .metadata import MetadataSource
from .models import (
    AlignmentGroup,
    ConstraintSet,
    Coordinate,
    DependencyDeclaration,
    DependencyNode,
    ModuleKey,
    ResolutionPolicy,
    VersionConstraint,
)
from .selection import grouped_requests, select, settle

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_POLL_INTERVAL_SEC = 0.05


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and one resolution."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, configuration: str) -> None:
        if self._event.is_set():
            raise ResolutionCancelledError(configuration)


class DependencyGraph:
    """Unresolved multigraph for one configuration.

    Requests are stored per coordinate in an append-only arena; module versions
    map to the (shared) list of edges they declare.
    """

    def __init__(self, configuration: str):
        self.configuration = configuration
        self.roots: List[DependencyNode] = []
        self.constraints: List[DependencyNode] = []
        # Aligned module versions that turned out not to exist
        self.unpublished: Set[ModuleKey] = set()
        self._requests: Dict[Coordinate, List[DependencyNode]] = {}
        self._children: Dict[ModuleKey, List[DependencyNode]] = {}
        self._lock = threading.Lock()

    def add_request(self, node: DependencyNode) -> None:
        with self._lock:
            self._requests.setdefault(node.coordinate, []).append(node)

    def set_children(self, key: ModuleKey, children: List[DependencyNode]) -> None:
        with self._lock:
            self._children[key] = children

    def has_module(self, key: ModuleKey) -> bool:
        return key in self._children

    def children_of(self, key: ModuleKey) -> List[DependencyNode]:
        return self._children.get(key, [])

    def requests_for(self, coordinate: Coordinate) -> List[DependencyNode]:
        return list(self._requests.get(coordinate, []))

    def coordinates(self) -> List[Coordinate]:
        """Coordinates pulled into the graph by at least one dependency edge."""
        return sorted(
            c for c, nodes in self._requests.items() if any(not n.constraint_only for n in nodes)
        )

    def modules(self) -> List[ModuleKey]:
        return list(self._children)

    def find_cycle(self) -> Optional[List[Coordinate]]:
        """Return a coordinate-level cycle (first element repeated at the end), or None."""
        edges: Dict[Coordinate, Set[Coordinate]] = {}
        for (coordinate, _), children in self._children.items():
            edges.setdefault(coordinate, set()).update(child.coordinate for child in children)

        white, grey, black = 0, 1, 2
        color: Dict[Coordinate, int] = {}
        for start in sorted(edges):
            if color.get(start, white) != white:
                continue
            path: List[Coordinate] = [start]
            stack = [iter(sorted(edges.get(start, ())))]
            color[start] = grey
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    color[path.pop()] = black
                    stack.pop()
                    continue
                state = color.get(nxt, white)
                if state == grey:
                    return path[path.index(nxt):] + [nxt]
                if state == white:
                    color[nxt] = grey
                    path.append(nxt)
                    stack.append(iter(sorted(edges.get(nxt, ()))))
        return None

    def __len__(self) -> int:
        return len(self._children)


class GraphBuilder:
    """Expands declared dependencies into a DependencyGraph.

    Args:
        source: Transitive-lookup collaborator.
        policy: Supplies ``max_workers`` and ``lookup_timeout``.
        cancel: Optional token checked between frontiers and while waiting on lookups.
        alignment_groups: Once every requested module version is expanded, the
            version each present member would be aligned to is looked up too,
            so aligned versions bring their own dependencies.
    """

    def __init__(
        self,
        source: MetadataSource,
        policy: Optional[ResolutionPolicy] = None,
        cancel: Optional[CancellationToken] = None,
        alignment_groups: Sequence[AlignmentGroup] = (),
    ):
        self.source = source
        self.policy = policy or ResolutionPolicy()
        self.cancel = cancel or CancellationToken()
        self.alignment_groups = sorted(alignment_groups, key=lambda g: g.group_id)

    def build(
        self,
        declarations: Sequence[DependencyDeclaration],
        constraint_sets: Sequence[ConstraintSet] = (),
        configuration: str = "default",
    ) -> DependencyGraph:
        """Build the unresolved graph for one configuration.

        Cycles are checked after every frontier, so a cyclic graph is rejected
        before any arbitration and expansion can never loop forever.

        Raises:
            CyclicDependencyError: a coordinate transitively depends on itself.
            MetadataUnavailableError: a lookup failed, timed out or matched nothing.
            ResolutionCancelledError: the cancellation token was triggered.
        """
        graph = DependencyGraph(configuration)
        pending = self._pending_constraints(constraint_sets)
        executor = ThreadPoolExecutor(
            max_workers=self.policy.max_workers, thread_name_prefix=f"depalign-{configuration}"
        )
        try:
            with Timer() as timer:
                self._expand(graph, declarations, pending, executor)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if is_debug_enabled(logger):
            logger.debug(
                "Graph expanded",
                extra=extra_context(
                    event="function_exit", component="graph_builder", action="build",
                    configuration=configuration, count=len(graph), duration_ms=timer.duration_ms(),
                ),
            )
        return graph

    @staticmethod
    def _pending_constraints(constraint_sets: Sequence[ConstraintSet]) -> Dict[Coordinate, List[Tuple[str, VersionConstraint]]]:
        pending: Dict[Coordinate, List[Tuple[str, VersionConstraint]]] = {}
        for constraint_set in constraint_sets:
            for coordinate, constraint in constraint_set.items():
                pending.setdefault(coordinate, []).append((constraint_set.requester, constraint))
        return pending

    def _expand(self, graph: DependencyGraph, declarations, pending, executor: ThreadPoolExecutor) -> None:
        configuration = graph.configuration
        roots = self._run(
            executor,
            lambda d: self._make_node(d.coordinate, d.constraint, d.configuration, None),
            list(declarations),
            lambda d: (d.coordinate, d.constraint.version),
            configuration,
        )
        graph.roots.extend(roots)
        seen: Set[Coordinate] = set()
        for node in roots:
            graph.add_request(node)
        frontier = roots + self._activate_constraints(graph, roots, pending, seen, executor)

        attempted: Set[ModuleKey] = set()
        while True:
            self.cancel.raise_if_cancelled(configuration)
            keys: List[ModuleKey] = []
            for node in frontier:
                key = node.key
                if key is not None and not graph.has_module(key) and key not in keys:
                    keys.append(key)
            # Alignment targets depend on the settled selection, so they are only
            # computed once every requested module version has been expanded.
            aligned = [] if keys else [k for k in self._aligned_keys(graph) if k not in attempted]
            if not keys and not aligned:
                break
            attempted.update(aligned)
            items = [(k, False) for k in keys] + [(k, True) for k in aligned]
            expanded = self._run(
                executor,
                lambda item: self._expand_aligned(item[0]) if item[1] else self._expand_module(item[0]),
                items,
                lambda item: (item[0][0], str(item[0][1])),
                configuration,
            )

            next_frontier: List[DependencyNode] = []
            for (key, _), children in zip(items, expanded):
                if children is None:
                    graph.unpublished.add(key)
                    continue
                graph.set_children(key, children)
                for child in children:
                    graph.add_request(child)
                    next_frontier.append(child)

            cycle = graph.find_cycle()
            if cycle:
                logger.error("Dependency cycle in %s: %s", configuration, " -> ".join(str(c) for c in cycle))
                raise CyclicDependencyError(cycle)

            next_frontier.extend(self._activate_constraints(graph, next_frontier, pending, seen, executor))
            frontier = next_frontier

    def _activate_constraints(
        self,
        graph: DependencyGraph,
        nodes: Iterable[DependencyNode],
        pending: Dict[Coordinate, List[Tuple[str, VersionConstraint]]],
        seen: Set[Coordinate],
        executor: ThreadPoolExecutor,
    ) -> List[DependencyNode]:
        """Materialize platform constraints for coordinates that just entered the graph."""
        newly_seen = []
        for node in nodes:
            if not node.constraint_only and node.coordinate not in seen:
                seen.add(node.coordinate)
                newly_seen.append(node.coordinate)
        items = [(c, requester, constraint) for c in newly_seen for requester, constraint in pending.get(c, ())]
        if not items:
            return []
        constraint_nodes = self._run(
            executor,
            lambda item: self._make_node(item[0], item[2], item[1], None, constraint_only=True),
            items,
            lambda item: (item[0], item[2].version),
            graph.configuration,
        )
        for node in constraint_nodes:
            graph.constraints.append(node)
            graph.add_request(node)
        return constraint_nodes

    def _aligned_keys(self, graph: DependencyGraph) -> List[ModuleKey]:
        """Aligned module versions the settled selection picks but nobody looked up yet."""
        if not self.alignment_groups:
            return []
        members = set().union(*(g.members for g in self.alignment_groups))
        active = settle(graph, self.alignment_groups)
        selection = select(graph, grouped_requests(graph, active), self.alignment_groups)
        return [
            (coordinate, version) for coordinate, version in sorted(selection.items())
            if coordinate in members and not graph.has_module((coordinate, version))
        ]

    def _expand_module(self, key: ModuleKey) -> List[DependencyNode]:
        coordinate, version = key
        return self._child_nodes(key, self.source.dependencies_of(coordinate, version))

    def _expand_aligned(self, key: ModuleKey) -> Optional[List[DependencyNode]]:
        """Like _expand_module, but returns None for a member never published at the aligned version."""
        coordinate, version = key
        try:
            declared = self.source.dependencies_of(coordinate, version)
        except MetadataUnavailableError as exc:
            logger.warning("%s has no aligned version %s, keeping its own: %s", coordinate, version, exc)
            return None
        return self._child_nodes(key, declared)

    def _child_nodes(self, key: ModuleKey, declared) -> List[DependencyNode]:
        requester = f"{key[0]}:{key[1]}"
        return [self._make_node(child, constraint, requester, key) for child, constraint in declared]

    def _make_node(
        self,
        coordinate: Coordinate,
        constraint: VersionConstraint,
        requester: str,
        parent: Optional[ModuleKey],
        constraint_only: bool = False,
    ) -> DependencyNode:
        selected, kind = self._materialize(coordinate, constraint)
        return DependencyNode(
            coordinate=coordinate,
            requested=constraint,
            requester=requester,
            selected=selected,
            kind=kind,
            parent=parent,
            constraint_only=constraint_only,
        )

    def _materialize(self, coordinate: Coordinate, constraint: VersionConstraint) -> Tuple[Optional[Version], VersionKind]:
        """Turn a requested selector into the concrete version it stands for."""
        spec = constraint.spec
        if spec is None:
            return None, VersionKind.EXACT
        if spec.mode == SelectorMode.EXACT:
            version = Version(spec.raw)
            if spec.changing or self.source.is_changing(coordinate, version):
                return version, VersionKind.CHANGING
            return version, VersionKind.EXACT

        candidates = self.source.list_versions(coordinate)
        picked = pick_highest(spec, candidates, exclude=constraint.is_rejected)
        if picked is None:
            raise MetadataUnavailableError(coordinate, reason=f"no version matching '{spec.raw}'")
        return picked, VersionKind.DYNAMIC

    def _run(
        self,
        executor: ThreadPoolExecutor,
        fn: Callable[[T], R],
        items: Sequence[T],
        describe: Callable[[T], Tuple[Coordinate, Optional[str]]],
        configuration: str,
    ) -> List[R]:
        """Run ``fn`` over ``items`` concurrently; return results in input order.

        Each lookup gets ``lookup_timeout`` seconds measured from the moment a
        worker starts it, not from when the caller gets around to waiting.
        """
        spans: List[List[Optional[float]]] = [[None, None] for _ in items]

        def timed(index: int, item: T) -> R:
            spans[index][0] = time.monotonic()
            try:
                return fn(item)
            finally:
                spans[index][1] = time.monotonic()

        futures = [executor.submit(timed, index, item) for index, item in enumerate(items)]
        waiting = {future: index for index, future in enumerate(futures)}
        while waiting:
            self.cancel.raise_if_cancelled(configuration)
            for future, index in sorted(waiting.items(), key=lambda entry: entry[1]):
                if self._overran(spans[index]):
                    future.cancel()
                    self._timed_out(*describe(items[index]))
            done, _ = wait(list(waiting), timeout=_POLL_INTERVAL_SEC, return_when=FIRST_COMPLETED)
            for future in done:
                index = waiting.pop(future)
                if self._overran(spans[index]):
                    self._timed_out(*describe(items[index]))

        results = []
        for item, future in zip(items, futures):
            coordinate, version = describe(item)
            results.append(self._result(future, coordinate, version))
        return results

    def _overran(self, span: List[Optional[float]]) -> bool:
        started, finished = span
        if started is None:
            return False
        end = finished if finished is not None else time.monotonic()
        return end - started > self.policy.lookup_timeout

    def _timed_out(self, coordinate: Coordinate, version: Optional[str]) -> None:
        logger.error("Metadata lookup for %s timed out after %s seconds", coordinate, self.policy.lookup_timeout)
        raise MetadataUnavailableError(
            coordinate, version, f"lookup timed out after {self.policy.lookup_timeout} seconds"
        )

    @staticmethod
    def _result(future: Future, coordinate: Coordinate, version: Optional[str]):
        try:
            return future.result()
        except ResolutionError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Metadata lookup for %s failed: %s", coordinate, exc)
            raise MetadataUnavailableError(coordinate, version, str(exc)) from exc
