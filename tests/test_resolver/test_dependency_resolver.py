"""Tests for the dependency resolver (flowstate.resolver.resolver).

Covers:
- Ordering determinism and idempotent expansion
- Auto-resolution, including the preference for compatible providers
- Exclusive, direct, circular and version conflicts
- Unknown modules and unsatisfiable capabilities
- Resolution helpers (raise_for_status, to_summary)
- Caching, installation order and compatibility reports
"""

from __future__ import annotations

import itertools

import pytest
from pydantic import ValidationError

from flowstate.errors import ConflictError, MissingDependencyError
from flowstate.registry.registry import InMemoryRegistry
from flowstate.resolver.cache import NullCache
from flowstate.resolver.models import ConflictType, IssueCode, ResolveOptions
from flowstate.resolver.resolver import DependencyResolver

pytestmark = pytest.mark.unit

AUTO = ResolveOptions(auto_resolve=True)


@pytest.fixture
def resolver(registry) -> DependencyResolver:
    return DependencyResolver(registry)


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_complete_set(self, resolver):
        resolution = resolver.resolve(["vuetify", "vue-base"])
        assert resolution.success
        assert resolution.module_names == ["vue-base", "vuetify"]
        assert resolution.conflicts == ()

    def test_deterministic_across_request_orders(self, resolver):
        requested = ["supabase", "vercel", "vue-base", "vuetify"]
        orders = {
            tuple(DependencyResolver(resolver.registry).resolve(list(p)).module_names)
            for p in itertools.permutations(requested)
        }
        assert orders == {("vue-base", "supabase", "vuetify", "vercel")}

    def test_idempotent_expansion(self, resolver):
        first = resolver.resolve(["vuetify", "better-auth"], AUTO)
        assert first.success
        second = DependencyResolver(resolver.registry).resolve(first.module_names, AUTO)
        assert second.module_names == first.module_names
        assert not any(w.startswith("Auto-added") for w in second.warnings)

    def test_empty_request(self, resolver):
        resolution = resolver.resolve([])
        assert resolution.success
        assert resolution.modules == ()

    def test_coverage_warnings(self, resolver):
        resolution = resolver.resolve(["vue-base", "vuetify"])
        assert "No backend-service module selected" in resolution.warnings
        assert "No frontend-framework module selected" not in resolution.warnings


class TestAutoResolve:
    def test_adds_provider(self, resolver):
        resolution = resolver.resolve(["vuetify"], AUTO)
        assert resolution.success
        assert resolution.module_names == ["vue-base", "vuetify"]
        assert "Auto-added vue-base to provide 'vue' required by vuetify" in resolution.warnings

    def test_transitive(self, resolver):
        resolution = resolver.resolve(["better-auth", "tailwind"], AUTO)
        assert resolution.success
        assert resolution.module_names == ["vue-base", "supabase", "tailwind", "better-auth"]

    def test_prefers_compatible_provider(self, sample_modules, make_module):
        shadcn = make_module(
            "shadcn", "ui-library", requires=["frontend"], incompatible_with=["vue"]
        )
        resolver = DependencyResolver(InMemoryRegistry([*sample_modules, shadcn]))
        resolution = resolver.resolve(["shadcn"], AUTO)
        assert resolution.success
        assert resolution.module_names == ["react", "shadcn"]

    def test_without_auto_resolve_missing_dependency(self, resolver):
        resolution = resolver.resolve(["tailwind"])
        assert not resolution.success
        issues = resolution.issues_of(IssueCode.MISSING_DEPENDENCY)
        assert [(i.module, i.capability) for i in issues] == [("tailwind", "frontend")]
        assert [s.module for s in resolution.suggestions] == ["vue-base", "react"]
        # ordering is still returned for a conflict-free partial set
        assert resolution.module_names == ["tailwind"]

    def test_unsatisfiable_even_with_auto_resolve(self, resolver, make_module):
        registry = InMemoryRegistry([*resolver.registry.get_all_modules(), make_module("x", requires=["quantum"])])
        resolution = DependencyResolver(registry).resolve(["x"], AUTO)
        assert not resolution.success
        assert resolution.issues_of("missing-dependency")[0].capability == "quantum"
        with pytest.raises(MissingDependencyError) as exc_info:
            resolution.raise_for_status()
        assert exc_info.value.missing == [("x", "quantum")]


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class TestConflicts:
    def test_exclusive(self, resolver):
        resolution = resolver.resolve(["vue-base", "react"])
        assert not resolution.success
        assert resolution.modules == ()
        exclusive = resolution.conflicts_of(ConflictType.EXCLUSIVE)
        assert len(exclusive) == 1
        assert set(exclusive[0].modules) == {"vue-base", "react"}
        with pytest.raises(ConflictError):
            resolution.raise_for_status()

    def test_direct_is_symmetric(self, resolver):
        forward = resolver.resolve(["vuetify", "react"])
        backward = DependencyResolver(resolver.registry).resolve(["react", "vuetify"])
        assert forward.conflicts == backward.conflicts
        assert [c.type for c in forward.conflicts] == [ConflictType.DIRECT]

    def test_direct_conflict_suggests_alternative(self, resolver):
        resolution = resolver.resolve(["vuetify", "react"])
        assert "vue-base" in [s.module for s in resolution.suggestions]

    def test_allow_conflicts_still_orders(self, resolver):
        resolution = resolver.resolve(
            ["vue-base", "react"], ResolveOptions(allow_conflicts=True)
        )
        assert resolution.success
        assert resolution.module_names == ["vue-base", "react"]
        assert len(resolution.conflicts) == 1

    def test_circular(self, make_module):
        a = make_module("a", provides=["a-cap"], requires=["b-cap"])
        b = make_module("b", provides=["b-cap"], requires=["a-cap"])
        resolver = DependencyResolver(InMemoryRegistry([a, b]))
        resolution = resolver.resolve(["a", "b"])
        assert not resolution.success
        circular = resolution.conflicts_of("circular")
        assert len(circular) == 1
        assert circular[0].message == "Circular dependency detected: a -> b -> a"

    def test_version(self, resolver, make_module):
        legacy = make_module("legacy-plugin", requires=["vue"], version_constraints={"vue": "^2.6.0"})
        registry = InMemoryRegistry([*resolver.registry.get_all_modules(), legacy])
        resolution = DependencyResolver(registry).resolve(["legacy-plugin", "vue-base"])
        assert not resolution.success
        assert [c.type for c in resolution.conflicts] == [ConflictType.VERSION]


# ---------------------------------------------------------------------------
# Unknown modules
# ---------------------------------------------------------------------------


class TestUnknownModules:
    def test_recorded_not_fatal(self, resolver):
        resolution = resolver.resolve(["vue-base", "nuxt-magic"])
        assert resolution.success
        assert resolution.module_names == ["vue-base"]
        issue = resolution.issues_of(IssueCode.MODULE_NOT_FOUND)[0]
        assert issue.module == "nuxt-magic"
        assert "Module 'nuxt-magic' not found in registry" in resolution.warnings
        resolution.raise_for_status()

    def test_typo_gets_suggestion(self, resolver):
        resolution = resolver.resolve(["vuetfy"])
        assert resolution.suggestions[0].module == "vuetify"


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------


def test_to_summary_is_json_ready(resolver):
    summary = resolver.resolve(["vuetify", "react"]).to_summary()
    assert summary["success"] is False
    assert summary["modules"] == []
    assert summary["conflicts"][0]["type"] == "direct"
    assert summary["issues"][0]["code"] == "missing-dependency"
    assert all(isinstance(s["score"], float) for s in summary["suggestions"])


def test_resolution_is_frozen(resolver):
    resolution = resolver.resolve(["vue-base"])
    with pytest.raises(ValidationError):
        resolution.success = False


# ---------------------------------------------------------------------------
# Caching & reports
# ---------------------------------------------------------------------------


class TestCaching:
    def test_identical_input_returns_cached_object(self, resolver):
        first = resolver.resolve(["vuetify"], AUTO)
        second = resolver.resolve(["vuetify"], AUTO)
        assert first is second
        assert resolver.cache.stats.hits == 1

    def test_request_order_shares_entry(self, resolver):
        first = resolver.resolve(["vue-base", "vuetify"])
        assert resolver.resolve(["vuetify", "vue-base"]) is first

    def test_options_are_part_of_the_key(self, resolver):
        assert resolver.resolve(["vuetify"]) is not resolver.resolve(["vuetify"], AUTO)

    def test_clear_cache(self, resolver):
        first = resolver.resolve(["vue-base"])
        resolver.clear_cache()
        second = resolver.resolve(["vue-base"])
        assert first is not second
        assert first == second

    def test_null_cache(self, registry):
        resolver = DependencyResolver(registry, cache=NullCache())
        assert resolver.resolve(["vue-base"]) is not resolver.resolve(["vue-base"])


def test_installation_order(resolver):
    ordered = resolver.installation_order(["better-auth", "supabase", "unknown"])
    assert [m.name for m in ordered] == ["supabase", "better-auth"]


def test_compatibility_report(resolver):
    report = resolver.compatibility_report("vuetify")
    assert report["compatible"] == ["vue-base"]
    assert report["incompatible"] == ["react"]
    assert report["requires"] == ["vue"]
    assert report["version_constraints"] == {"vue": "^3.0.0"}
    assert report["exclusive_type"] is False
    assert resolver.compatibility_report("missing") is None
