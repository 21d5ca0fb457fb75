"""Suggestion engine: rank alternative modules for a failed resolution.

Given a capability nobody in the working set provides, or a module name the
registry does not know, propose registry modules that could fix it.  Scores
combine declared priority, how well the candidate fits the current working
set, and fuzzy string similarity to the original token.

The engine also knows a handful of popular stacks (``StackPreset``).  They
back ``popular_combinations()`` and lift candidates that commonly ship with
the current selection when ``recommend()`` rounds off a working set.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

from rapidfuzz import fuzz

from flowstate.config import ResolverConfig
from flowstate.registry.models import ModuleDescriptor
from flowstate.registry.registry import ModuleRegistry
from flowstate.resolver.conflicts import DEFAULT_EXCLUSIVE_TYPES, count_new_conflicts
from flowstate.resolver.models import Conflict, ConflictType, PresetMatch, StackPreset, Suggestion

logger = logging.getLogger(__name__)

# Scoring weights
BASE_SCORE = 50.0
PROVIDES_BONUS = 30.0
FILLS_REQUIREMENT_BONUS = 15.0
DECLARED_COMPATIBLE_BONUS = 10.0
CONFLICT_PENALTY = 25.0
SIMILARITY_WEIGHT = 0.4
PRIORITY_WEIGHT = 0.2
PRESET_BONUS = 20.0
REQUIRED_PROVIDER_SCORE = 90.0

DEFAULT_PRESETS: tuple[StackPreset, ...] = (
    StackPreset(
        id="vue-material",
        name="Vue + Vuetify + Supabase",
        description="Material Design Vue app on a hosted Postgres backend",
        modules=("vue-base", "vuetify", "supabase"),
        popularity=95,
        tags=("vue", "material", "fullstack"),
    ),
    StackPreset(
        id="react-tailwind",
        name="React + Tailwind + Supabase",
        description="Utility-first React app with database and auth",
        modules=("react", "tailwind", "supabase"),
        popularity=92,
        tags=("react", "css", "fullstack"),
    ),
    StackPreset(
        id="vue-tailwind",
        name="Vue + Tailwind",
        description="Lightweight Vue SPA styled with Tailwind",
        modules=("vue-base", "tailwind"),
        popularity=80,
        tags=("vue", "css"),
    ),
    StackPreset(
        id="react-vercel",
        name="React on Vercel",
        description="React SPA deployed to Vercel",
        modules=("react", "vercel"),
        popularity=75,
        tags=("react", "hosting"),
    ),
    StackPreset(
        id="supabase-auth",
        name="Supabase + Better Auth",
        description="Session auth on top of Supabase Postgres",
        modules=("supabase", "better-auth"),
        popularity=70,
        tags=("auth", "database"),
    ),
)


class SuggestionEngine:
    """Ranks registry modules as fixes for missing capabilities or bad names."""

    def __init__(
        self,
        registry: ModuleRegistry,
        *,
        limit: int = 3,
        similarity_threshold: float = 60.0,
        exclusive_types: Iterable[str] | None = None,
        presets: Iterable[StackPreset] | None = None,
        recommended_types: Iterable[str] | None = None,
    ) -> None:
        self.registry = registry
        self.limit = limit
        self.similarity_threshold = similarity_threshold
        self.exclusive_types = (
            frozenset(exclusive_types) if exclusive_types is not None else DEFAULT_EXCLUSIVE_TYPES
        )
        self.presets = tuple(presets) if presets is not None else DEFAULT_PRESETS
        self.recommended_types = tuple(
            recommended_types if recommended_types is not None else ResolverConfig().recommended_types
        )

    def suggest(
        self,
        missing_capability: Optional[str] = None,
        rejected_name: Optional[str] = None,
        working_set: Iterable[ModuleDescriptor] = (),
        limit: Optional[int] = None,
    ) -> list[Suggestion]:
        """Return at most *limit* ranked suggestions; an empty list is valid.

        Args:
            missing_capability: Capability tag nobody in the working set provides.
            rejected_name: Module name (or free token) the registry rejected.
            working_set: Modules already selected; they are never suggested.
            limit: Overrides the engine's default top-K.
        """
        working = list(working_set)
        selected = {m.name for m in working}
        token = (rejected_name or "").strip().lower()

        ranked: list[Suggestion] = []
        for candidate in self.registry.get_all_modules():
            if candidate.name in selected:
                continue
            provides = bool(missing_capability) and missing_capability in candidate.provides
            similarity = _similarity(token, candidate) if token else 0.0
            similar = bool(token) and (
                similarity >= self.similarity_threshold or token in candidate.name.lower()
            )
            if not provides and not similar:
                continue

            reasons = []
            if provides:
                reasons.append(f"Provides '{missing_capability}'")
            if similar:
                reasons.append(f"Similar to '{rejected_name}'")
            ranked.append(
                Suggestion(
                    module=candidate.name,
                    reason="; ".join(reasons),
                    score=self._score(candidate, working, provides, similarity),
                )
            )

        ranked.sort(key=lambda s: (-s.score, s.module))
        top = ranked[: self.limit if limit is None else limit]
        logger.debug(
            "Suggestions for capability=%s name=%s: %s",
            missing_capability, rejected_name, [s.module for s in top],
        )
        return top

    def alternatives_for(
        self, conflict: Conflict, working_set: Iterable[ModuleDescriptor]
    ) -> list[Suggestion]:
        """Same-type replacements for a module involved in a direct/exclusive conflict.

        The first module named by the conflict is the one proposed for
        replacement; candidates must not clash with the rest of the set.
        """
        if conflict.type not in (ConflictType.DIRECT, ConflictType.EXCLUSIVE):
            return []
        working = list(working_set)
        target_name = conflict.modules[0]
        target = next((m for m in working if m.name == target_name), None)
        if target is None:
            return []
        others = [m for m in working if m.name != target_name]
        selected = {m.name for m in working}

        alternatives = []
        for candidate in self.registry.get_all_modules():
            if candidate.name in selected or candidate.module_type is not target.module_type:
                continue
            if count_new_conflicts(candidate, others, self.exclusive_types):
                continue
            alternatives.append(
                Suggestion(
                    module=candidate.name,
                    reason=f"Replace {target_name} with {candidate.name} to resolve: {conflict.message}",
                    score=self._score(candidate, others, provides=False, similarity=0.0),
                )
            )
        alternatives.sort(key=lambda s: (-s.score, s.module))
        return alternatives[: self.limit]

    # -- Presets and recommendations ----------------------------------------

    def popular_combinations(self, selection: Iterable[str]) -> list[PresetMatch]:
        """Presets sharing at least one module with *selection*.

        Ordered by how many selected modules they contain, then popularity.
        """
        chosen = set(selection)
        matches = []
        for preset in self.presets:
            matched = tuple(name for name in preset.modules if name in chosen)
            if not matched:
                continue
            missing = tuple(name for name in preset.modules if name not in chosen)
            matches.append(PresetMatch(preset=preset, matched=matched, missing=missing))
        matches.sort(key=lambda m: (-m.match_count, -m.preset.popularity, m.preset.id))
        return matches

    def recommend(
        self, working_set: Iterable[ModuleDescriptor], limit: Optional[int] = None
    ) -> list[Suggestion]:
        """Modules that would round off a conflict-free working set.

        Every requirement no selected module satisfies gets its best provider
        first ("Required by ..."). Then each recommended module type still
        absent gets its best-scoring candidate that adds no conflict, with a
        bonus per preset shipping it alongside a selected module.
        """
        working = list(working_set)
        selected = {m.name for m in working}
        present = {m.module_type.value for m in working}
        candidates = [m for m in self.registry.get_all_modules() if m.name not in selected]
        picks: dict[str, Suggestion] = {}

        for module in working:
            for capability in sorted(module.requires):
                if any(other.provides_any({capability}) for other in working):
                    continue
                providers = [c for c in candidates if c.provides_any({capability})]
                if not providers:
                    continue
                provider = min(
                    providers,
                    key=lambda c: (
                        count_new_conflicts(c, working, self.exclusive_types), -c.priority, c.name
                    ),
                )
                if provider.name not in picks:
                    picks[provider.name] = Suggestion(
                        module=provider.name,
                        reason=f"Required by {module.name}",
                        score=REQUIRED_PROVIDER_SCORE,
                    )
                    present.add(provider.module_type.value)

        for module_type in self.recommended_types:
            if module_type in present:
                continue
            ranked = sorted(
                (
                    Suggestion(
                        module=c.name,
                        reason=f"Complete your stack with a {module_type}",
                        score=round(
                            self._score(c, working, provides=False, similarity=0.0)
                            + PRESET_BONUS * self._preset_hits(c.name, selected),
                            2,
                        ),
                    )
                    for c in candidates
                    if c.module_type.value == module_type
                    and c.name not in picks
                    and not count_new_conflicts(c, working, self.exclusive_types)
                ),
                key=lambda s: (-s.score, s.module),
            )
            if ranked:
                picks[ranked[0].module] = ranked[0]

        top = sorted(picks.values(), key=lambda s: (-s.score, s.module))
        top = top[: self.limit if limit is None else limit]
        logger.debug("Recommendations for %s: %s", sorted(selected), [s.module for s in top])
        return top

    def _preset_hits(self, name: str, selected: set[str]) -> int:
        return sum(
            1 for preset in self.presets if name in preset.modules and selected & set(preset.modules)
        )

    # -- Scoring -----------------------------------------------------------

    def _score(
        self,
        candidate: ModuleDescriptor,
        working: list[ModuleDescriptor],
        provides: bool,
        similarity: float,
    ) -> float:
        score = BASE_SCORE + PRIORITY_WEIGHT * candidate.priority + SIMILARITY_WEIGHT * similarity
        if provides:
            score += PROVIDES_BONUS
        for selected in working:
            if candidate.name in selected.compatible_with:
                score += DECLARED_COMPATIBLE_BONUS
            if selected.requires & candidate.provides:
                score += FILLS_REQUIREMENT_BONUS
        score -= CONFLICT_PENALTY * count_new_conflicts(candidate, working, self.exclusive_types)
        return round(score, 2)


def _similarity(token: str, candidate: ModuleDescriptor) -> float:
    """Best fuzzy ratio (0-100) between *token* and the candidate's name or tags."""
    names = [candidate.name.lower(), *(tag.lower() for tag in candidate.tags)]
    return max(fuzz.ratio(token, name) for name in names)
