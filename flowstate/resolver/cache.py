"""Bounded LRU cache for resolver output.

Interactive selectors re-resolve on every checkbox change; with identical
input the answer is identical, so resolutions are memoised under a
fingerprint of the (sorted) requested names and the options.  Values are
immutable, so concurrent writes for the same fingerprint are interchangeable.
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from flowstate.resolver.models import Resolution, ResolveOptions


def fingerprint(requested_names: Iterable[str], options: ResolveOptions) -> str:
    """Canonical cache key for one ``resolve()`` input."""
    payload = {
        "modules": sorted(set(requested_names)),
        "options": options.model_dump(mode="json"),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ResolutionCache:
    """Thread-safe LRU cache of ``Resolution`` values.

    Args:
        capacity: Maximum number of entries kept; the least recently used
            entry is evicted first.
        ttl: Optional lifetime in seconds; expired entries count as misses.
    """

    def __init__(self, capacity: int = 50, ttl: Optional[float] = None) -> None:
        if capacity < 1:
            raise ValueError("cache capacity must be at least 1")
        self.capacity = capacity
        self.ttl = ttl
        self._entries: OrderedDict[str, tuple[float, Resolution]] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    fingerprint = staticmethod(fingerprint)

    def get(self, key: str) -> Optional[Resolution]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self.ttl is not None and time.monotonic() - entry[0] > self.ttl:
                del self._entries[key]
                entry = None
            if entry is None:
                self._stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry[1]

    def put(self, key: str, resolution: Resolution) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic(), resolution)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._entries),
            )

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullCache(ResolutionCache):
    """Drop-in cache that never stores anything."""

    def __init__(self) -> None:
        super().__init__(capacity=1)

    def get(self, key: str) -> Optional[Resolution]:
        return None

    def put(self, key: str, resolution: Resolution) -> None:
        return None
