"""Unit tests for provider health scoring and the error timeline."""

from __future__ import annotations

import pytest

from insightloop.domains.insights.telemetry import (
    ErrorTimeline,
    ProviderStats,
    compute_health_score,
)


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestComputeHealthScore:
    def test_perfect_provider_scores_100(self):
        assert compute_health_score(1.0, 0.0) == 100.0

    def test_latency_penalty_is_capped(self):
        assert compute_health_score(1.0, 5000) == 80.0
        assert compute_health_score(1.0, 60000) == 80.0

    def test_never_negative(self):
        assert compute_health_score(0.0, 10000) == 0.0

    @pytest.mark.parametrize("latency", [0, 250, 1000, 4999])
    def test_monotone_in_success_rate(self, latency):
        scores = [compute_health_score(rate / 10, latency) for rate in range(10, -1, -1)]
        assert scores == sorted(scores, reverse=True)

    def test_monotone_in_latency(self):
        scores = [compute_health_score(0.9, latency) for latency in range(0, 8000, 500)]
        assert scores == sorted(scores, reverse=True)


class TestProviderStats:
    def test_unused_provider_defaults(self):
        health = ProviderStats("openai").health()
        assert health.health_score == 100.0
        assert health.success_rate == 1.0
        assert health.error_rate == 0.0
        assert health.average_latency == 0.0
        assert health.total_requests == 0

    def test_success_and_failure_rates(self):
        stats = ProviderStats("openai")
        stats.record_success(100.0)
        stats.record_success(300.0)
        stats.record_failure("timeout")
        stats.record_failure("rate_limit")

        health = stats.health()
        assert health.total_requests == 4
        assert health.success_rate == 0.5
        assert health.error_rate == 0.5
        assert health.average_latency == 200.0
        assert stats.failure_reasons == {"timeout": 1, "rate_limit": 1}

    def test_failures_do_not_add_latency_samples(self):
        stats = ProviderStats("openai")
        stats.record_success(100.0)
        stats.record_failure("timeout")
        assert stats.average_latency == 100.0

    def test_rolling_window_forgets_old_outcomes(self):
        stats = ProviderStats("openai", window=3)
        stats.record_failure("error")
        for _ in range(3):
            stats.record_success(10.0)
        assert stats.success_rate == 1.0
        assert stats.total_requests == 4

    def test_estimated_cost_per_request(self):
        stats = ProviderStats("openai")
        stats.record_success(10.0, input_tokens=1_000_000, output_tokens=0)
        stats.record_success(10.0, input_tokens=0, output_tokens=1_000_000)
        # (1M * $2 + 1M * $10) over two requests
        assert stats.estimated_cost([2.0, 10.0]) == pytest.approx(6.0)

    def test_estimated_cost_without_pricing_is_zero(self):
        stats = ProviderStats("custom")
        stats.record_success(10.0, input_tokens=500, output_tokens=500)
        assert stats.estimated_cost(None) == 0.0


class TestErrorTimeline:
    def test_errors_within_interval_share_a_bucket(self):
        clock = _Clock()
        timeline = ErrorTimeline(bucket_seconds=60, clock=clock)
        timeline.record("timeout", provider="openai")
        clock.now += 30
        timeline.record("validation")

        buckets = timeline.buckets()
        assert len(buckets) == 1
        assert buckets[0].count == 2

    def test_new_bucket_after_interval(self):
        clock = _Clock()
        timeline = ErrorTimeline(bucket_seconds=60, clock=clock)
        timeline.record("timeout")
        clock.now += 60
        timeline.record("timeout")

        assert [b.count for b in timeline.buckets()] == [1, 1]
        assert timeline.buckets()[0].timestamp < timeline.buckets()[1].timestamp

    def test_retention_drops_oldest_buckets(self):
        clock = _Clock()
        timeline = ErrorTimeline(bucket_seconds=1, max_buckets=3, clock=clock)
        for _ in range(5):
            timeline.record("error")
            clock.now += 1

        assert len(timeline.buckets()) == 3
        assert timeline.total == 5

    def test_summary_aggregates_kinds_and_providers(self):
        timeline = ErrorTimeline(clock=_Clock())
        timeline.record("timeout", provider="openai")
        timeline.record("rate_limit", provider="openai")
        timeline.record("capacity", provider="anthropic")
        timeline.record("exhausted")

        summary = timeline.summary()
        assert summary["total_errors"] == 4
        assert summary["by_kind"] == {"timeout": 1, "rate_limit": 1, "capacity": 1, "exhausted": 1}
        assert summary["by_provider"] == {"openai": 2, "anthropic": 1}
        assert summary["timeline"][0]["count"] == 4

    def test_clear(self):
        timeline = ErrorTimeline(clock=_Clock())
        timeline.record("error")
        timeline.clear()
        assert timeline.summary() == {
            "timeline": [],
            "total_errors": 0,
            "by_kind": {},
            "by_provider": {},
        }
