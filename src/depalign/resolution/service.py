"""Per-configuration resolution service.

Owns the resolvable configurations, the platforms attached to them and the
alignment groups, and runs GraphBuilder + ConflictResolver once per
configuration. Every configuration gets a fresh graph; configurations can be
resolved in parallel and a failure in one never affects another.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..constants import Constants
from .conflicts import ConflictResolver
from .errors import ResolutionError
from .graph import CancellationToken, GraphBuilder
from .metadata import MetadataSource
from .models import (
    AlignmentGroup,
    Configuration,
    ConstraintSet,
    DependencyDeclaration,
    ResolutionPolicy,
    ResolutionReport,
)

logger = logging.getLogger(__name__)


def _token_for(name: str, cancel) -> Optional[CancellationToken]:
    if isinstance(cancel, Mapping):
        return cancel.get(name)
    return cancel


def default_configurations() -> List[Configuration]:
    return [Configuration(name, tuple(parents)) for name, parents in Constants.DEFAULT_CONFIGURATIONS.items()]


@dataclass
class ConfigurationOutcome:
    """Result of resolving one configuration: a report or the error that aborted it."""
    configuration: str
    report: Optional[ResolutionReport] = None
    error: Optional[ResolutionError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self):
        if self.report is not None:
            return self.report.to_dict()
        return {"configuration": self.configuration, "error": self.error.to_dict() if self.error else None}


class ResolutionService:
    """Resolves configurations against one metadata source."""

    def __init__(
        self,
        source: MetadataSource,
        policy: Optional[ResolutionPolicy] = None,
        configurations: Optional[Iterable[Configuration]] = None,
        alignment_groups: Iterable[AlignmentGroup] = (),
    ):
        self.source = source
        self.policy = policy or ResolutionPolicy()
        self._lock = threading.Lock()
        self._configurations: Dict[str, Configuration] = {}
        self._platforms: Dict[str, List[ConstraintSet]] = {}
        self._alignment_groups: List[AlignmentGroup] = list(alignment_groups)
        for configuration in default_configurations() if configurations is None else configurations:
            self.register(configuration)

    def register(self, configuration: Configuration) -> None:
        with self._lock:
            self._configurations[configuration.name] = configuration

    @property
    def configurations(self) -> List[str]:
        with self._lock:
            return list(self._configurations)

    def attach(self, configuration: str, constraint_set: ConstraintSet) -> None:
        """Register a platform for one configuration (and configurations extending it)."""
        with self._lock:
            self._platforms.setdefault(configuration, []).append(constraint_set)
        logger.debug("Attached %s to %s", constraint_set.requester, configuration)

    def align(self, group: AlignmentGroup) -> None:
        with self._lock:
            self._alignment_groups.append(group)

    def hierarchy(self, configuration: str) -> List[str]:
        """The configuration followed by every configuration it extends, transitively."""
        with self._lock:
            known = dict(self._configurations)
        order: List[str] = []
        stack = [configuration]
        while stack:
            name = stack.pop(0)
            if name in order:
                continue
            order.append(name)
            parent = known.get(name)
            if parent is not None:
                stack.extend(parent.extends_from)
        return order

    def declarations_for(self, configuration: str, declarations: Sequence[DependencyDeclaration]) -> List[DependencyDeclaration]:
        names = set(self.hierarchy(configuration))
        return [d for d in declarations if d.configuration in names]

    def platforms_for(self, configuration: str) -> List[ConstraintSet]:
        names = self.hierarchy(configuration)
        with self._lock:
            return [cs for name in names for cs in self._platforms.get(name, ())]

    def resolve(
        self,
        configuration: str,
        declarations: Sequence[DependencyDeclaration],
        policy: Optional[ResolutionPolicy] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ResolutionReport:
        """Resolve a single configuration.

        Raises:
            ResolutionError: any fatal outcome; no partial report is produced.
        """
        policy = policy or self.policy
        with self._lock:
            groups = list(self._alignment_groups)
        selected = self.declarations_for(configuration, declarations)
        logger.info("Resolving %s (%d declared dependencies).", configuration, len(selected))
        builder = GraphBuilder(self.source, policy, cancel, groups)
        graph = builder.build(selected, self.platforms_for(configuration), configuration)
        return ConflictResolver(policy, groups).resolve(graph)

    def resolve_all(
        self,
        declarations: Sequence[DependencyDeclaration],
        configurations: Optional[Sequence[str]] = None,
        policy: Optional[ResolutionPolicy] = None,
        cancel: Union[CancellationToken, Mapping[str, CancellationToken], None] = None,
    ) -> Dict[str, ConfigurationOutcome]:
        """Resolve several configurations in parallel.

        ``cancel`` is either one token shared by every configuration or a mapping
        of configuration name to its own token, so one resolution can be aborted
        while the others run to completion.

        Returns:
            Mapping of configuration name to its outcome, in requested order.
        """
        names = list(configurations) if configurations is not None else self.configurations
        if not names:
            return {}
        outcomes: Dict[str, ConfigurationOutcome] = {}
        with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="depalign-conf") as executor:
            futures = {
                name: executor.submit(self.resolve, name, declarations, policy, _token_for(name, cancel))
                for name in names
            }
            for name in names:
                try:
                    outcomes[name] = ConfigurationOutcome(name, report=futures[name].result())
                except ResolutionError as exc:
                    logger.error("Resolution of %s failed.", name)
                    outcomes[name] = ConfigurationOutcome(name, error=exc)
        return outcomes
