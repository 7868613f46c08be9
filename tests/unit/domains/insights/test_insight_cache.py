"""Unit tests for the fingerprinted insight cache."""

from __future__ import annotations

from datetime import datetime, timezone

from insightloop.domains.insights.cache import InsightCache, fingerprint
from insightloop.domains.insights.models import HealthInsight, InsightCategory


def _insight(id: str = "insight-1") -> HealthInsight:
    return HealthInsight(
        id=id,
        type="success",
        category=InsightCategory.PHYSICAL,
        message="Nice walk.",
        date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        related_metrics=("steps",),
    )


class _Clock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        assert fingerprint("PHYSICAL", {"a": 1, "b": 2}) == fingerprint("PHYSICAL", {"b": 2, "a": 1})

    def test_int_and_float_values_match(self):
        assert fingerprint("PHYSICAL", {"steps": 10000}) == fingerprint("PHYSICAL", {"steps": 10000.0})

    def test_category_is_part_of_key(self):
        assert fingerprint("PHYSICAL", {"x": 1}) != fingerprint("SLEEP", {"x": 1})

    def test_value_changes_key(self):
        assert fingerprint("PHYSICAL", {"x": 1}) != fingerprint("PHYSICAL", {"x": 1.5})

    def test_is_sha256_hex(self):
        key = fingerprint("PHYSICAL", {"x": 1})
        assert len(key) == 64
        int(key, 16)


class TestInsightCache:
    def test_miss_then_hit(self):
        cache = InsightCache()
        assert cache.get("k") is None
        cache.set("k", _insight())
        assert cache.get("k").id == "insight-1"
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_rate == 0.5

    def test_entry_expires_after_ttl(self):
        clock = _Clock()
        cache = InsightCache(ttl_seconds=60, clock=clock)
        cache.set("k", _insight())

        clock.now = 59.9
        assert cache.get("k") is not None
        clock.now = 60.0
        assert cache.get("k") is None
        assert "k" not in cache
        assert cache.expirations == 1

    def test_least_recently_used_entry_evicted(self):
        cache = InsightCache(max_entries=2)
        cache.set("a", _insight("a"))
        cache.set("b", _insight("b"))
        cache.get("a")
        cache.set("c", _insight("c"))

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.evictions == 1
        assert len(cache) == 2

    def test_clear_resets_counters(self):
        cache = InsightCache()
        cache.set("k", _insight())
        cache.get("k")
        cache.get("missing")
        cache.clear()
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (0, 0, 0)
        assert stats.hit_rate == 0.0
