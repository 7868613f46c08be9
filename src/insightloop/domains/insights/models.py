"""Data models for insight generation and provider telemetry."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Mapping

InsightType = Literal["success", "warning", "error"]


class InsightCategory(str, Enum):
    """Known insight categories."""

    PHYSICAL = "PHYSICAL"
    SLEEP = "SLEEP"
    NUTRITION = "NUTRITION"
    MENTAL = "MENTAL"
    VITALS = "VITALS"
    HEALTH = "HEALTH"
    MEDICATION = "MEDICATION"
    EXERCISE = "EXERCISE"


@dataclass
class PersonaContext:
    """Consumer-specific context for persona-scoped insights."""

    id: str
    age: int | None = None
    gender: str | None = None
    conditions: list[str] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)
    cultural_context: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PersonaContext:
        """Parse a raw persona payload."""
        return cls(
            id=str(data.get("id") or ""),
            age=data.get("age"),
            gender=data.get("gender"),
            conditions=list(data.get("conditions", [])),
            preferences=dict(data.get("preferences", {})),
            cultural_context=dict(data.get("cultural_context", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightRequest:
    """What must be generated: a category and its numeric observations."""

    category: InsightCategory | str
    metrics: dict[str, float]
    persona: PersonaContext | None = None


@dataclass(frozen=True)
class InsightAction:
    """A follow-up the user can take."""

    type: str
    message: str


@dataclass(frozen=True)
class HealthInsight:
    """A generated insight. Immutable once created."""

    id: str
    type: InsightType
    category: InsightCategory
    message: str
    date: datetime
    related_metrics: tuple[str, ...]
    source: str | None = None
    action: InsightAction | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "category": self.category.value,
            "message": self.message,
            "date": self.date.isoformat(),
            "related_metrics": list(self.related_metrics),
            "source": self.source,
            "action": asdict(self.action) if self.action else None,
        }


@dataclass
class ProviderHealth:
    """Derived health record for one provider."""

    health_score: float = 100.0
    average_latency: float = 0.0
    error_rate: float = 0.0
    success_rate: float = 1.0
    total_requests: int = 0


@dataclass
class CacheStats:
    """Read-only cache counters."""

    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


@dataclass
class TelemetrySnapshot:
    """Read-only projection for telemetry dashboards."""

    insights: dict[str, float]
    cache: dict[str, float]
    providers: dict[str, ProviderHealth]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightEvent:
    """Notification delivered to engine observers."""

    kind: str  # 'cache_hit' | 'coalesced' | 'generated' | 'provider_failure' | 'exhausted' | 'validation_error'
    category: str | None = None
    provider: str | None = None
    insight_id: str | None = None
    latency_ms: float | None = None
    error: BaseException | None = None
