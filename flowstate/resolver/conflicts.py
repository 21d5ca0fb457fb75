"""Conflict detection over a working module set.

Four independent checks run over the final working set: declared
incompatibilities (``direct``), single-instance module types
(``exclusive``), requires/provides cycles (``circular``) and semantic-version
disagreements (``version``).  Results are de-duplicated on conflict type plus
the unordered set of modules involved.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from flowstate.registry.models import ModuleDescriptor
from flowstate.resolver.capabilities import CapabilityIndex
from flowstate.resolver.graph import DependencyGraph
from flowstate.resolver.models import Conflict, ConflictType
from flowstate.versions import parse_range, ranges_intersect

logger = logging.getLogger(__name__)

DEFAULT_EXCLUSIVE_TYPES: frozenset[str] = frozenset(
    {"frontend-framework", "backend-framework", "build-tool", "package-manager"}
)


def count_new_conflicts(
    candidate: ModuleDescriptor,
    working_set: Iterable[ModuleDescriptor],
    exclusive_types: frozenset[str] = DEFAULT_EXCLUSIVE_TYPES,
) -> int:
    """Number of working-set modules *candidate* would clash with if added.

    Counts incompatibilities declared in either direction and members of the
    same single-instance module type.
    """
    clashes = 0
    for other in working_set:
        if other.name == candidate.name:
            continue
        if candidate.declares_incompatible(other) or other.declares_incompatible(candidate):
            clashes += 1
        elif (
            candidate.module_type.value in exclusive_types
            and other.module_type is candidate.module_type
        ):
            clashes += 1
    return clashes


class ConflictDetector:
    """Runs every conflict check and returns the de-duplicated result."""

    def __init__(self, exclusive_types: Iterable[str] | None = None) -> None:
        self.exclusive_types = (
            frozenset(exclusive_types) if exclusive_types is not None else DEFAULT_EXCLUSIVE_TYPES
        )

    def detect(
        self,
        modules: Iterable[ModuleDescriptor],
        index: CapabilityIndex | None = None,
        graph: DependencyGraph | None = None,
    ) -> list[Conflict]:
        ordered = sorted(modules, key=lambda m: m.name)
        index = index or CapabilityIndex(ordered)
        graph = graph or DependencyGraph(ordered, index)

        found = [
            *self.detect_direct(ordered, index),
            *self.detect_exclusive(ordered),
            *self.detect_circular(graph),
            *self.detect_version(ordered, index),
        ]
        conflicts = dedupe(found)
        if conflicts:
            logger.debug("Detected %d conflict(s): %s", len(conflicts), [c.message for c in conflicts])
        return conflicts

    # -- Individual checks -------------------------------------------------

    def detect_direct(
        self, modules: list[ModuleDescriptor], index: CapabilityIndex
    ) -> list[Conflict]:
        conflicts = []
        for module in modules:
            for token in sorted(module.incompatible_with):
                for other in sorted(index.matching(token) - {module.name}):
                    pair = tuple(sorted((module.name, other)))
                    conflicts.append(
                        Conflict(
                            type=ConflictType.DIRECT,
                            modules=pair,
                            message=f"{pair[0]} is incompatible with {pair[1]}",
                        )
                    )
        return conflicts

    def detect_exclusive(self, modules: list[ModuleDescriptor]) -> list[Conflict]:
        by_type: dict[str, list[str]] = {}
        for module in modules:
            if module.module_type.value in self.exclusive_types:
                by_type.setdefault(module.module_type.value, []).append(module.name)
        return [
            Conflict(
                type=ConflictType.EXCLUSIVE,
                modules=tuple(names),
                message=f"Cannot use multiple {module_type} modules: {', '.join(names)}",
            )
            for module_type, names in sorted(by_type.items())
            if len(names) > 1
        ]

    def detect_circular(self, graph: DependencyGraph) -> list[Conflict]:
        return [
            Conflict(
                type=ConflictType.CIRCULAR,
                modules=tuple(cycle),
                message=f"Circular dependency detected: {' -> '.join(cycle)}",
            )
            for cycle in graph.find_cycles()
        ]

    def detect_version(
        self, modules: list[ModuleDescriptor], index: CapabilityIndex
    ) -> list[Conflict]:
        """Check declared version constraints against each other and the providers.

        For every constrained capability: the ranges declared by different
        modules must intersect, and every provider in the set must satisfy
        every range declared for it.
        """
        constraints: dict[str, list[tuple[str, str]]] = {}
        for module in modules:
            for capability, spec in sorted(module.version_constraints.items()):
                constraints.setdefault(capability, []).append((module.name, spec))

        conflicts: list[Conflict] = []
        for capability, declared in sorted(constraints.items()):
            if len(declared) > 1 and not ranges_intersect([parse_range(s) for _, s in declared]):
                names = tuple(sorted({name for name, _ in declared}))
                detail = ", ".join(f"{name} needs {spec}" for name, spec in declared)
                conflicts.append(
                    Conflict(
                        type=ConflictType.VERSION,
                        modules=names,
                        message=f"Incompatible version requirements for '{capability}': {detail}",
                    )
                )
            for provider in index.provider_modules(capability):
                for requirer, spec in declared:
                    if provider.name == requirer or parse_range(spec).contains(provider.version):
                        continue
                    conflicts.append(
                        Conflict(
                            type=ConflictType.VERSION,
                            modules=tuple(sorted((requirer, provider.name))),
                            message=(
                                f"{requirer} needs '{capability}' {spec} but "
                                f"{provider.name} provides version {provider.version}"
                            ),
                        )
                    )
        return conflicts


def dedupe(conflicts: Iterable[Conflict]) -> list[Conflict]:
    """Drop conflicts with the same type and unordered module set, keeping the first."""
    seen: set[tuple[ConflictType, frozenset[str]]] = set()
    unique: list[Conflict] = []
    for conflict in conflicts:
        if conflict.key in seen:
            continue
        seen.add(conflict.key)
        unique.append(conflict)
    return unique
