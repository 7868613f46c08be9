"""Insight engine: cache, provider dispatch with fallback, and telemetry.

The engine is constructed once by the application's composition root and
shared by every caller. All state lives in process memory:

* the fingerprinted insight cache and the in-flight map that coalesces
  concurrent requests for the same fingerprint into one provider dispatch
* per-provider call statistics (health score, latency, error rate)
* the error timeline
* usage counters (categories, hour of day)

Provider failures never escape on their own: each failing provider is
recorded and the next one in priority order is tried. Only validation
errors and exhaustion of every provider reach the caller.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
import time
import uuid
from collections import Counter, OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

from insightloop.core.errors import ExhaustedProvidersError, ValidationError
from insightloop.core.llm.failures import as_provider_error
from insightloop.core.llm.provider import (
    LLMProvider,
    ProviderError,
    ProviderFailureReason,
    ProviderResponse,
)
from insightloop.core.llm.response import (
    enforce_guardrails,
    parse_insight_content,
    redact_identifiers,
)
from insightloop.core.privacy.policy import PrivacyMode, build_persona_context
from insightloop.core.templates.registry import TemplateRegistry
from insightloop.core.templates.renderer import render_insight_prompt
from insightloop.domains.insights.cache import InsightCache, fingerprint
from insightloop.domains.insights.models import (
    HealthInsight,
    InsightAction,
    InsightCategory,
    InsightEvent,
    InsightRequest,
    PersonaContext,
    ProviderHealth,
    TelemetrySnapshot,
)
from insightloop.domains.insights.telemetry import ErrorTimeline, ProviderStats

logger = logging.getLogger(__name__)

InsightObserver = Callable[[InsightEvent], None]


def validate_request(
    category: InsightCategory | str,
    metrics: Mapping[str, Any],
) -> tuple[InsightCategory, dict[str, float]]:
    """Normalize and validate a request's category and metrics.

    Raises:
        ValidationError: unknown category, or metrics that are empty,
            non-mapping, keyed by non-strings, or not finite numbers.
    """
    try:
        resolved = InsightCategory(category)
    except ValueError:
        raise ValidationError(f"Unknown insight category: {category!r}") from None

    if not isinstance(metrics, Mapping) or not metrics:
        raise ValidationError("metrics must be a non-empty mapping of name to number")

    normalized: dict[str, float] = {}
    for name, value in metrics.items():
        if not isinstance(name, str) or not name:
            raise ValidationError(f"Metric names must be non-empty strings, got {name!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Metric {name!r} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"Metric {name!r} must be finite, got {value!r}")
        normalized[name] = value
    return resolved, normalized


class InsightEngine:
    """Turns health metrics into insights via an ordered chain of providers.

    Usage::

        engine = InsightEngine(
            {"openai": openai_provider, "anthropic": anthropic_provider},
            templates=registry,
        )
        insight = await engine.generate_insight(
            InsightRequest(category="PHYSICAL", metrics={"steps": 10000})
        )
    """

    def __init__(
        self,
        providers: Mapping[str, LLMProvider],
        *,
        templates: TemplateRegistry,
        cache: InsightCache | None = None,
        provider_timeout: float = 30.0,
        max_tokens: int = 500,
        temperature: float = 0.7,
        latency_window: int = 100,
        error_timeline: ErrorTimeline | None = None,
        pricing: Mapping[str, Sequence[float]] | None = None,
        privacy_mode: PrivacyMode = "strict",
        observers: Iterable[InsightObserver] | None = None,
        clock: Callable[[], float] = time.time,
        issued_capacity: int = 1000,
    ) -> None:
        self._providers: dict[str, LLMProvider] = dict(providers)
        self._templates = templates
        self._cache = cache if cache is not None else InsightCache()
        self._provider_timeout = provider_timeout
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._latency_window = latency_window
        self._errors = error_timeline if error_timeline is not None else ErrorTimeline(clock=clock)
        self._pricing = dict(pricing or {})
        self._privacy_mode = privacy_mode
        self._observers: list[InsightObserver] = list(observers or [])
        self._clock = clock
        self._issued_capacity = issued_capacity

        self._in_flight: dict[str, asyncio.Task[HealthInsight]] = {}
        self._provider_stats: dict[str, ProviderStats] = {}
        self._issued: OrderedDict[str, HealthInsight] = OrderedDict()
        self._category_counts: Counter[str] = Counter()
        self._hour_counts: Counter[str] = Counter()
        self._generated = 0
        self._generation_latency_ms = 0.0
        self.reset()

    @property
    def provider_names(self) -> list[str]:
        """Provider names in dispatch priority order."""
        return list(self._providers)

    def add_observer(self, observer: InsightObserver) -> None:
        """Register a callback notified of every engine event."""
        self._observers.append(observer)

    def reset(self) -> None:
        """Clear cache, telemetry and usage state."""
        self._cache.clear()
        self._errors.clear()
        self._in_flight.clear()
        self._issued.clear()
        self._provider_stats = {
            name: ProviderStats(name, window=self._latency_window) for name in self._providers
        }
        self._category_counts.clear()
        self._hour_counts.clear()
        self._generated = 0
        self._generation_latency_ms = 0.0

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_insight(self, request: InsightRequest) -> HealthInsight:
        """Return a cached insight or generate one through the provider chain.

        Concurrent calls with the same fingerprint share a single dispatch.

        Raises:
            ValidationError: the request is malformed.
            ExhaustedProvidersError: every provider failed.
        """
        category, metrics = self._validate(request.category, request.metrics)
        key = fingerprint(category.value, metrics)

        cached = self._cache.get(key)
        if cached is not None:
            self._emit(InsightEvent("cache_hit", category=category.value, insight_id=cached.id))
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._generate_and_cache(key, category, metrics))
            self._in_flight[key] = task
            task.add_done_callback(functools.partial(self._release_in_flight, key))
        else:
            logger.debug("Coalescing request for %s onto in-flight dispatch", key[:12])
            self._emit(InsightEvent("coalesced", category=category.value))

        # Shielded: a caller that gives up must not cancel the dispatch for the others.
        return await asyncio.shield(task)

    async def generate_insight_for_persona(self, request: InsightRequest) -> HealthInsight:
        """Generate a persona-scoped insight. Never cached, never coalesced.

        Raises:
            ValidationError: the request is malformed or has no persona id.
            ExhaustedProvidersError: every provider failed.
        """
        category, metrics = self._validate(request.category, request.metrics)
        persona = request.persona
        if isinstance(persona, Mapping):
            persona = PersonaContext.from_dict(persona)
        if persona is None or not persona.id:
            error = ValidationError("Persona-scoped requests require a persona with an id")
            self._record_validation_error(error, category.value)
            raise error

        persona_context = build_persona_context(
            persona.to_dict(), privacy_mode=self._privacy_mode
        )
        return await self._dispatch(
            category, metrics, persona_id=persona.id, persona_context=persona_context
        )

    def find_insight(self, insight_id: str) -> HealthInsight | None:
        """Look up a recently issued insight by id."""
        return self._issued.get(insight_id)

    def _validate(
        self,
        category: InsightCategory | str,
        metrics: Mapping[str, Any],
    ) -> tuple[InsightCategory, dict[str, float]]:
        try:
            return validate_request(category, metrics)
        except ValidationError as exc:
            self._record_validation_error(exc, str(category))
            raise

    def _record_validation_error(self, exc: ValidationError, category: str) -> None:
        self._errors.record("validation")
        logger.info("Rejected insight request: %s", exc)
        self._emit(InsightEvent("validation_error", category=category, error=exc))

    async def _generate_and_cache(
        self,
        key: str,
        category: InsightCategory,
        metrics: dict[str, float],
    ) -> HealthInsight:
        insight = await self._dispatch(category, metrics)
        self._cache.set(key, insight)
        return insight

    def _release_in_flight(self, key: str, task: asyncio.Task[HealthInsight]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the outcome as retrieved even if every waiter went away.
            task.exception()

    async def _dispatch(
        self,
        category: InsightCategory,
        metrics: dict[str, float],
        *,
        persona_id: str | None = None,
        persona_context: dict[str, Any] | None = None,
    ) -> HealthInsight:
        template = self._templates.for_category(category.value)
        prompt = render_insight_prompt(
            template=template,
            category=category.value,
            metrics=metrics,
            persona_context=persona_context,
        )

        failures: list[ProviderError] = []
        for name, provider in self._providers.items():
            stats = self._stats_for(name)
            start = time.monotonic()
            try:
                response: ProviderResponse = await asyncio.wait_for(
                    provider.generate(
                        system_message=prompt.system_message,
                        user_message=prompt.user_message,
                        max_tokens=self._max_tokens,
                        temperature=self._temperature,
                    ),
                    timeout=self._provider_timeout,
                )
            except asyncio.TimeoutError:
                error = ProviderError(
                    f"no response within {self._provider_timeout:g}s",
                    reason=ProviderFailureReason.TIMEOUT,
                    provider=name,
                )
            except Exception as exc:
                # Providers are an opaque boundary: anything they raise is a provider failure.
                error = as_provider_error(exc, name)
            else:
                latency_ms = (time.monotonic() - start) * 1000
                stats.record_success(
                    latency_ms,
                    input_tokens=response.input_tokens,
                    output_tokens=response.output_tokens,
                )
                insight = self._build_insight(
                    response.content, category, metrics, source=name, persona_id=persona_id
                )
                self._record_generated(insight, latency_ms)
                logger.info(
                    "Insight generated: category=%s, provider=%s, model=%s, latency=%.0fms",
                    category.value,
                    name,
                    response.model,
                    latency_ms,
                )
                return insight

            stats.record_failure(error.reason.value)
            self._errors.record(error.reason.value, provider=name)
            failures.append(error)
            logger.warning(
                "Provider %s failed (%s): %s; falling back",
                name,
                error.reason.value,
                error,
            )
            self._emit(
                InsightEvent(
                    "provider_failure", category=category.value, provider=name, error=error
                )
            )

        exhausted = ExhaustedProvidersError(failures)
        self._errors.record("exhausted")
        logger.error("Insight generation failed for %s: %s", category.value, exhausted)
        self._emit(InsightEvent("exhausted", category=category.value, error=exhausted))
        raise exhausted

    def _stats_for(self, name: str) -> ProviderStats:
        stats = self._provider_stats.get(name)
        if stats is None:
            stats = ProviderStats(name, window=self._latency_window)
            self._provider_stats[name] = stats
        return stats

    def _build_insight(
        self,
        content: str,
        category: InsightCategory,
        metrics: dict[str, float],
        *,
        source: str,
        persona_id: str | None,
    ) -> HealthInsight:
        parsed = parse_insight_content(content)
        message, _ = enforce_guardrails(redact_identifiers(parsed.message))
        if parsed.flags:
            logger.debug("Provider %s response flags: %s", source, parsed.flags)

        action = None
        if parsed.action:
            action_message, _ = enforce_guardrails(redact_identifiers(parsed.action["message"]))
            action = InsightAction(type=parsed.action["type"], message=action_message)

        insight_id = f"insight-{uuid.uuid4().hex}"
        if persona_id is not None:
            insight_id = f"persona-{persona_id}-{insight_id}"

        return HealthInsight(
            id=insight_id,
            type=parsed.type,
            category=category,
            message=message,
            date=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
            related_metrics=tuple(metrics),
            source=source,
            action=action,
        )

    def _record_generated(self, insight: HealthInsight, latency_ms: float) -> None:
        self._generated += 1
        self._generation_latency_ms += latency_ms
        self._category_counts[insight.category.value] += 1
        self._hour_counts[insight.date.strftime("%H")] += 1

        self._issued[insight.id] = insight
        while len(self._issued) > self._issued_capacity:
            self._issued.popitem(last=False)

        self._emit(
            InsightEvent(
                "generated",
                category=insight.category.value,
                provider=insight.source,
                insight_id=insight.id,
                latency_ms=latency_ms,
            )
        )

    def _emit(self, event: InsightEvent) -> None:
        for observer in self._observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Insight observer %r failed on %s event", observer, event.kind)

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> dict[str, int]:
        stats = self._cache.stats()
        return {"hits": stats.hits, "misses": stats.misses, "size": stats.size}

    def get_provider_health(self) -> dict[str, ProviderHealth]:
        return {name: stats.health() for name, stats in self._provider_stats.items()}

    def get_error_stats(self) -> dict[str, Any]:
        return self._errors.summary()

    def get_telemetry_snapshot(self) -> TelemetrySnapshot:
        stats = self._cache.stats()
        average_latency = (
            self._generation_latency_ms / self._generated if self._generated else 0.0
        )
        return TelemetrySnapshot(
            insights={
                "total_generated": self._generated,
                "average_latency": round(average_latency, 2),
                "cache_hit_rate": round(stats.hit_rate, 4),
            },
            cache={
                "hit_rate": round(stats.hit_rate, 4),
                "hits": stats.hits,
                "misses": stats.misses,
                "size": stats.size,
            },
            providers=self.get_provider_health(),
        )

    def get_provider_comparison(self) -> dict[str, dict[str, Any]]:
        """Estimated cost per request and latency/reliability for each provider."""
        cost: dict[str, float] = {}
        performance: dict[str, dict[str, float]] = {}
        for name, stats in self._provider_stats.items():
            cost[name] = round(stats.estimated_cost(self._pricing.get(name)), 6)
            performance[name] = {
                "latency": round(stats.average_latency, 2),
                "reliability": round(stats.success_rate, 4),
            }
        return {"cost_comparison": cost, "performance_comparison": performance}

    def get_usage_patterns(self) -> dict[str, Any]:
        """Categories by descending generation count and generations per UTC hour."""
        return {
            "popular_categories": [c for c, _ in self._category_counts.most_common()],
            "time_distribution": dict(sorted(self._hour_counts.items())),
        }
