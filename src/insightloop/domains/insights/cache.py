"""Fingerprinted in-memory insight cache with TTL and LRU eviction."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Mapping

from insightloop.domains.insights.models import CacheStats, HealthInsight

logger = logging.getLogger(__name__)


def fingerprint(category: str, metrics: Mapping[str, float]) -> str:
    """Deterministic cache key for a (category, metrics) pair.

    SHA-256 of canonical JSON: keys are sorted and values normalized to
    floats, so insertion order and ``1`` vs ``1.0`` do not matter.
    """
    canonical = json.dumps(
        {
            "category": category,
            "metrics": {name: float(value) for name, value in metrics.items()},
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class _CacheEntry:
    insight: HealthInsight
    expires_at: float


class InsightCache:
    """Maps fingerprints to generated insights.

    Entries expire ``ttl_seconds`` after being stored; when ``max_entries``
    is reached the least recently used entry is evicted.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._evictions = 0

    def get(self, key: str) -> HealthInsight | None:
        """Return the cached insight for ``key`` and count the hit or miss."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        self._hits += 1
        return entry.insight

    def set(self, key: str, insight: HealthInsight) -> None:
        """Store an insight under ``key``, evicting the oldest entry if full."""
        self._entries[key] = _CacheEntry(insight=insight, expires_at=self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._evictions = 0

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

    @property
    def expirations(self) -> int:
        return self._expirations

    @property
    def evictions(self) -> int:
        return self._evictions

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
