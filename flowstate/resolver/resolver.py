"""Module dependency resolver.

Expands a requested module list into a complete, conflict-checked and
deterministically ordered module set:

1. Seed      -- look up requested names; unknown names become issues.
2. Expand    -- satisfy every required capability (optionally auto-adding
                the best compatible provider) until a fixed point.
3. Detect    -- direct, exclusive, circular and version conflicts.
4. Decide    -- refuse to order a conflicting set unless allowed.
5. Order     -- topological sort, priority/name tie-break.
6. Cache     -- memoise the resolution under the input fingerprint.

Resolution problems are always returned as data; only a malformed registry
raises.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Optional

from flowstate.config import ResolverConfig
from flowstate.registry.models import ModuleDescriptor
from flowstate.registry.registry import ModuleRegistry
from flowstate.resolver.cache import ResolutionCache
from flowstate.resolver.capabilities import CapabilityIndex
from flowstate.resolver.conflicts import ConflictDetector, count_new_conflicts
from flowstate.resolver.graph import DependencyGraph, order_key
from flowstate.resolver.models import (
    Conflict,
    IssueCode,
    Resolution,
    ResolutionIssue,
    ResolveOptions,
    Suggestion,
)
from flowstate.resolver.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolves requested module names against a registry snapshot.

    Attributes:
        registry: Read-only module lookup; treated as immutable.
        cache: Resolution cache; pass ``NullCache()`` to disable memoisation.
        suggestions: Engine used to propose fixes when resolution fails.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        cache: Optional[ResolutionCache] = None,
        config: Optional[ResolverConfig] = None,
    ) -> None:
        self.registry = registry
        self.config = config or ResolverConfig()
        self.cache = (
            cache
            if cache is not None
            else ResolutionCache(self.config.cache_capacity, self.config.cache_ttl)
        )
        self.detector = ConflictDetector(self.config.exclusive_types)
        self.suggestions = SuggestionEngine(
            registry,
            limit=self.config.suggestion_limit,
            similarity_threshold=self.config.similarity_threshold,
            exclusive_types=self.config.exclusive_types,
            recommended_types=self.config.recommended_types,
        )

    # -- Public API --------------------------------------------------------

    def resolve(
        self,
        requested_names: Iterable[str],
        options: Optional[ResolveOptions] = None,
    ) -> Resolution:
        """Resolve *requested_names* into an ordered, conflict-checked module set."""
        options = options or ResolveOptions()
        requested = list(dict.fromkeys(requested_names))
        key = self.cache.fingerprint(requested, options)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Resolution cache hit for %s", requested)
            return cached

        resolution = self._resolve(requested, options)
        self.cache.put(key, resolution)
        logger.info(
            "Resolved %s -> %s (success=%s, %d conflict(s))",
            requested, resolution.module_names, resolution.success, len(resolution.conflicts),
        )
        return resolution

    def installation_order(self, names: Iterable[str]) -> list[ModuleDescriptor]:
        """Order already-known modules dependencies-first, without any checks.

        Unknown names are ignored.
        """
        modules = [m for m in (self.registry.get_module(n) for n in dict.fromkeys(names)) if m]
        return DependencyGraph(modules).topological_order()

    def compatibility_report(self, name: str) -> Optional[dict[str, Any]]:
        """Summarise what *name* requires, provides and gets along with."""
        module = self.registry.get_module(name)
        if module is None:
            return None
        return {
            "module": module.name,
            "version": module.version,
            "type": module.module_type.value,
            "compatible": sorted(module.compatible_with),
            "incompatible": sorted(module.incompatible_with),
            "requires": sorted(module.requires),
            "provides": sorted(module.provides),
            "version_constraints": dict(sorted(module.version_constraints.items())),
            "exclusive_type": module.module_type.value in self.detector.exclusive_types,
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    # -- Resolution steps --------------------------------------------------

    def _resolve(self, requested: list[str], options: ResolveOptions) -> Resolution:
        issues: list[ResolutionIssue] = []
        warnings: list[str] = []
        suggestions: list[Suggestion] = []

        working, unknown = self._seed(requested, issues, warnings)
        for name in unknown:
            suggestions.extend(
                self.suggestions.suggest(rejected_name=name, working_set=working.values())
            )

        self._expand(working, options, issues, warnings, suggestions)

        index = CapabilityIndex(working.values())
        graph = DependencyGraph(working.values(), index)
        conflicts = self.detector.detect(working.values(), index, graph)
        warnings.extend(self._coverage_warnings(working.values()))

        missing = any(i.code is IssueCode.MISSING_DEPENDENCY for i in issues)
        if conflicts:
            for conflict in conflicts:
                suggestions.extend(self.suggestions.alternatives_for(conflict, working.values()))
            if not options.allow_conflicts:
                return self._build(False, (), conflicts, issues, warnings, suggestions)

        return self._build(
            not missing, graph.topological_order(), conflicts, issues, warnings, suggestions
        )

    def _seed(
        self,
        requested: list[str],
        issues: list[ResolutionIssue],
        warnings: list[str],
    ) -> tuple[dict[str, ModuleDescriptor], list[str]]:
        working: dict[str, ModuleDescriptor] = {}
        unknown: list[str] = []
        for name in requested:
            module = self.registry.get_module(name)
            if module is None:
                message = f"Module '{name}' not found in registry"
                issues.append(
                    ResolutionIssue(code=IssueCode.MODULE_NOT_FOUND, module=name, message=message)
                )
                warnings.append(message)
                unknown.append(name)
                continue
            working[name] = module
        return working, unknown

    def _expand(
        self,
        working: dict[str, ModuleDescriptor],
        options: ResolveOptions,
        issues: list[ResolutionIssue],
        warnings: list[str],
        suggestions: list[Suggestion],
    ) -> None:
        """Grow *working* in place until every satisfiable capability is provided.

        Each pass adds at most one provider and restarts; the set is bounded
        by the registry so the loop terminates.  Whatever is still
        unsatisfied at the fixed point is recorded as a missing dependency.
        """
        catalogue = CapabilityIndex(self.registry.get_all_modules())
        index = CapabilityIndex(working.values())

        while options.auto_resolve:
            added = self._add_one_provider(working, index, catalogue, warnings)
            if not added:
                break
            index = CapabilityIndex(working.values())

        for module in sorted(working.values(), key=order_key):
            for capability in sorted(module.requires):
                if index.is_satisfied(capability):
                    continue
                issues.append(
                    ResolutionIssue(
                        code=IssueCode.MISSING_DEPENDENCY,
                        module=module.name,
                        capability=capability,
                        message=f"{module.name} requires '{capability}' but no selected module provides it",
                    )
                )
                suggestions.extend(
                    self.suggestions.suggest(
                        missing_capability=capability, working_set=working.values()
                    )
                )

    def _add_one_provider(
        self,
        working: dict[str, ModuleDescriptor],
        index: CapabilityIndex,
        catalogue: CapabilityIndex,
        warnings: list[str],
    ) -> bool:
        for module in sorted(working.values(), key=order_key):
            for capability in sorted(module.requires):
                if index.is_satisfied(capability):
                    continue
                provider = self._select_provider(capability, working, catalogue)
                if provider is None:
                    continue
                working[provider.name] = provider
                warnings.append(
                    f"Auto-added {provider.name} to provide '{capability}' required by {module.name}"
                )
                return True
        return False

    def _select_provider(
        self,
        capability: str,
        working: dict[str, ModuleDescriptor],
        catalogue: CapabilityIndex,
    ) -> Optional[ModuleDescriptor]:
        """Highest-priority provider not yet selected, preferring compatible ones.

        When every provider would clash with the working set the best one is
        still returned; the clash then surfaces as a conflict.
        """
        candidates = [m for m in catalogue.provider_modules(capability) if m.name not in working]
        if not candidates:
            return None
        exclusive = self.detector.exclusive_types
        compatible = [
            m for m in candidates if count_new_conflicts(m, working.values(), exclusive) == 0
        ]
        return (compatible or candidates)[0]

    def _coverage_warnings(self, modules: Iterable[ModuleDescriptor]) -> list[str]:
        present = {m.module_type.value for m in modules}
        return [
            f"No {module_type} module selected"
            for module_type in self.config.recommended_types
            if module_type not in present
        ]

    @staticmethod
    def _build(
        success: bool,
        modules: Iterable[ModuleDescriptor],
        conflicts: list[Conflict],
        issues: list[ResolutionIssue],
        warnings: list[str],
        suggestions: list[Suggestion],
    ) -> Resolution:
        best: dict[str, Suggestion] = {}
        for suggestion in suggestions:
            current = best.get(suggestion.module)
            if current is None or suggestion.score > current.score:
                best[suggestion.module] = suggestion
        ranked = sorted(best.values(), key=lambda s: (-s.score, s.module))
        return Resolution(
            success=success,
            modules=tuple(modules),
            conflicts=tuple(conflicts),
            issues=tuple(issues),
            warnings=tuple(dict.fromkeys(warnings)),
            suggestions=tuple(ranked),
        )
