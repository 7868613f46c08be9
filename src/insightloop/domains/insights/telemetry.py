"""Provider health tracking and the error timeline.

Health score formula (0-100, one decimal)::

    100 * success_rate - 20 * min(average_latency_ms / 5000, 1)

``success_rate`` and ``average_latency_ms`` are measured over a rolling
window of recent calls. The score never increases when a failure is
recorded, and a provider with no failures and near-zero latency scores 100.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from insightloop.domains.insights.models import ProviderHealth

logger = logging.getLogger(__name__)

LATENCY_CEILING_MS = 5000.0
LATENCY_PENALTY = 20.0


def compute_health_score(success_rate: float, average_latency_ms: float) -> float:
    """Monotone health score: higher success and lower latency score higher."""
    latency_factor = min(max(average_latency_ms, 0.0) / LATENCY_CEILING_MS, 1.0)
    score = 100.0 * success_rate - LATENCY_PENALTY * latency_factor
    return round(max(0.0, min(100.0, score)), 1)


class ProviderStats:
    """Accumulated call outcomes for one provider."""

    def __init__(self, name: str, *, window: int = 100) -> None:
        self.name = name
        self._outcomes: deque[bool] = deque(maxlen=window)
        self._latencies: deque[float] = deque(maxlen=window)
        self.total_requests = 0
        self.successes = 0
        self.failures = 0
        self.failure_reasons: Counter[str] = Counter()
        self.input_tokens = 0
        self.output_tokens = 0

    def record_success(
        self,
        latency_ms: float,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        self.total_requests += 1
        self.successes += 1
        self._outcomes.append(True)
        self._latencies.append(latency_ms)
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def record_failure(self, reason: str) -> None:
        # Failed calls do not contribute latency samples.
        self.total_requests += 1
        self.failures += 1
        self._outcomes.append(False)
        self.failure_reasons[reason] += 1

    @property
    def success_rate(self) -> float:
        if not self._outcomes:
            return 1.0
        return sum(self._outcomes) / len(self._outcomes)

    @property
    def average_latency(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def health(self) -> ProviderHealth:
        success_rate = self.success_rate
        average_latency = self.average_latency
        return ProviderHealth(
            health_score=compute_health_score(success_rate, average_latency),
            average_latency=round(average_latency, 2),
            error_rate=round(1.0 - success_rate, 4),
            success_rate=round(success_rate, 4),
            total_requests=self.total_requests,
        )

    def estimated_cost(self, pricing: tuple[float, float] | list[float] | None) -> float:
        """Average estimated USD per successful request from per-1M-token pricing."""
        if not pricing or not self.successes:
            return 0.0
        input_per_1m, output_per_1m = pricing
        total = (
            (self.input_tokens / 1_000_000) * input_per_1m
            + (self.output_tokens / 1_000_000) * output_per_1m
        )
        return total / self.successes


@dataclass
class ErrorBucket:
    """Errors counted within one bucketing interval."""

    timestamp: datetime
    count: int


class ErrorTimeline:
    """Bucketed error counts, capped at ``max_buckets`` (oldest dropped)."""

    def __init__(
        self,
        *,
        bucket_seconds: float = 60.0,
        max_buckets: int = 1440,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._bucket_seconds = bucket_seconds
        self._clock = clock
        self._buckets: deque[ErrorBucket] = deque(maxlen=max_buckets)
        self._last_started_at: float | None = None
        self.by_kind: Counter[str] = Counter()
        self.by_provider: Counter[str] = Counter()
        self.total = 0

    def record(self, kind: str, provider: str | None = None) -> None:
        """Count one error, incrementing the latest bucket when it is still open."""
        now = self._clock()
        if (
            self._buckets
            and self._last_started_at is not None
            and now - self._last_started_at < self._bucket_seconds
        ):
            self._buckets[-1].count += 1
        else:
            self._buckets.append(
                ErrorBucket(timestamp=datetime.fromtimestamp(now, tz=timezone.utc), count=1)
            )
            self._last_started_at = now

        self.total += 1
        self.by_kind[kind] += 1
        if provider:
            self.by_provider[provider] += 1

    def buckets(self) -> list[ErrorBucket]:
        return list(self._buckets)

    def summary(self) -> dict[str, Any]:
        return {
            "timeline": [
                {"timestamp": b.timestamp, "count": b.count} for b in self._buckets
            ],
            "total_errors": self.total,
            "by_kind": dict(self.by_kind),
            "by_provider": dict(self.by_provider),
        }

    def clear(self) -> None:
        self._buckets.clear()
        self._last_started_at = None
        self.by_kind.clear()
        self.by_provider.clear()
        self.total = 0
