"""Tests for the resolution cache (flowstate.resolver.cache)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from flowstate.resolver.cache import NullCache, ResolutionCache, fingerprint
from flowstate.resolver.models import Resolution, ResolveOptions
from flowstate.resolver.resolver import DependencyResolver

pytestmark = pytest.mark.unit


def result(success: bool = True) -> Resolution:
    return Resolution(success=success)


class TestFingerprint:
    def test_order_and_duplicates_ignored(self):
        options = ResolveOptions()
        assert fingerprint(["b", "a", "a"], options) == fingerprint(["a", "b"], options)

    def test_options_matter(self):
        assert fingerprint(["a"], ResolveOptions()) != fingerprint(
            ["a"], ResolveOptions(auto_resolve=True)
        )

    def test_exposed_on_cache(self):
        assert ResolutionCache.fingerprint(["a"], ResolveOptions()) == fingerprint(["a"], ResolveOptions())


class TestResolutionCache:
    def test_get_put(self):
        cache = ResolutionCache()
        value = result()
        cache.put("k", value)
        assert cache.get("k") is value
        assert "k" in cache
        assert len(cache) == 1

    def test_miss(self):
        cache = ResolutionCache()
        assert cache.get("missing") is None
        assert cache.stats.misses == 1

    def test_lru_eviction(self):
        cache = ResolutionCache(capacity=2)
        cache.put("a", result())
        cache.put("b", result())
        cache.get("a")  # "b" is now least recently used
        cache.put("c", result())
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.stats.evictions == 1

    def test_ttl_expiry(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr("flowstate.resolver.cache.time.monotonic", lambda: clock[0])
        cache = ResolutionCache(ttl=10)
        cache.put("k", result())
        clock[0] += 5
        assert cache.get("k") is not None
        clock[0] += 6
        assert cache.get("k") is None
        assert "k" not in cache

    def test_stats(self):
        cache = ResolutionCache()
        cache.put("k", result())
        cache.get("k")
        cache.get("k")
        cache.get("other")
        stats = cache.stats
        assert (stats.hits, stats.misses, stats.size) == (2, 1, 1)
        assert stats.hit_rate == pytest.approx(2 / 3)

    def test_clear(self):
        cache = ResolutionCache()
        cache.put("k", result())
        cache.get("k")
        cache.clear()
        assert len(cache) == 0
        assert cache.stats.hits == 0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            ResolutionCache(capacity=0)


class TestConcurrentResolve:
    def test_identical_requests_from_many_threads(self, registry):
        resolver = DependencyResolver(registry)
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(resolver.resolve, ["vue-base", "vuetify"]) for _ in range(32)]
            results = [future.result() for future in futures]

        assert all(r == results[0] for r in results)
        assert results[0].module_names == ["vue-base", "vuetify"]
        assert len(resolver.cache) == 1
        stats = resolver.cache.stats
        assert stats.size == 1
        assert stats.hits + stats.misses == 32


def test_null_cache_stores_nothing():
    cache = NullCache()
    cache.put("k", result())
    assert cache.get("k") is None
    assert len(cache) == 0
