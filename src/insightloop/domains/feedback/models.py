"""Data models for insight feedback, aggregated stats and prompt optimizations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from insightloop.core.errors import ValidationError

SCORES = (1, 2, 3, 4, 5)


class FeedbackCategory(str, Enum):
    """Aspect of the insight being rated."""

    ACCURACY = "ACCURACY"
    USEFULNESS = "USEFULNESS"
    CLARITY = "CLARITY"
    ACTIONABILITY = "ACTIONABILITY"


class FeedbackSource(str, Enum):
    """Who produced the rating."""

    USER_EXPLICIT = "USER_EXPLICIT"
    USER_IMPLICIT = "USER_IMPLICIT"
    SYSTEM_AUTO = "SYSTEM_AUTO"
    EXPERT_REVIEW = "EXPERT_REVIEW"


class ChangeType(str, Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"
    MODIFY = "MODIFY"


@dataclass(frozen=True)
class InteractionContext:
    """How the user interacted with the insight before rating it."""

    time_spent_viewing_ms: float | None = None
    clicked_actions: tuple[str, ...] = ()
    expanded: bool = False
    shared: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InteractionContext:
        if not isinstance(data, Mapping):
            raise ValidationError(f"interaction_context must be an object, got {data!r}")
        return cls(
            time_spent_viewing_ms=data.get("time_spent_viewing_ms"),
            clicked_actions=_string_tuple("clicked_actions", data.get("clicked_actions")),
            expanded=bool(data.get("expanded", False)),
            shared=bool(data.get("shared", False)),
        )


@dataclass(frozen=True)
class FeedbackMetadata:
    session_id: str
    user_id: str
    timestamp: datetime | None = None
    device_info: str | None = None
    interaction_context: InteractionContext | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FeedbackMetadata:
        interaction = data.get("interaction_context")
        return cls(
            session_id=str(data.get("session_id", "")),
            user_id=str(data.get("user_id", "")),
            device_info=data.get("device_info"),
            interaction_context=(
                InteractionContext.from_dict(interaction) if interaction else None
            ),
        )


@dataclass(frozen=True)
class ContentQualityMetrics:
    """Each measure in [0, 1]."""

    relevance: float = 0.0
    specificity: float = 0.0
    actionability: float = 0.0


@dataclass(frozen=True)
class FeedbackAnnotations:
    tags: tuple[str, ...] = ()
    sentiment_score: float | None = None
    content_quality_metrics: ContentQualityMetrics | None = None


@dataclass(frozen=True)
class FeedbackSubmission:
    """Feedback as submitted by a client, before the store assigns an id."""

    insight_id: str
    category: FeedbackCategory
    score: int
    source: FeedbackSource
    metadata: FeedbackMetadata
    insight: dict[str, Any] | None = None
    comment: str | None = None
    annotations: FeedbackAnnotations | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FeedbackSubmission:
        """Parse a raw payload, raising ValidationError on malformed fields."""
        try:
            category = FeedbackCategory(data.get("category"))
            source = FeedbackSource(data.get("source", FeedbackSource.USER_EXPLICIT))
        except ValueError as exc:
            raise ValidationError(str(exc)) from None

        raw_annotations = data.get("annotations")
        annotations = None
        if raw_annotations:
            if not isinstance(raw_annotations, Mapping):
                raise ValidationError(f"annotations must be an object, got {raw_annotations!r}")
            quality = raw_annotations.get("content_quality_metrics")
            try:
                quality_metrics = ContentQualityMetrics(**quality) if quality else None
            except TypeError as exc:
                raise ValidationError(f"Invalid content_quality_metrics: {exc}") from None
            annotations = FeedbackAnnotations(
                tags=_string_tuple("tags", raw_annotations.get("tags")),
                sentiment_score=raw_annotations.get("sentiment_score"),
                content_quality_metrics=quality_metrics,
            )

        return cls(
            insight_id=str(data.get("insight_id", "")),
            category=category,
            score=data.get("score"),
            source=source,
            metadata=FeedbackMetadata.from_dict(data.get("metadata") or {}),
            insight=data.get("insight"),
            comment=data.get("comment"),
            annotations=annotations,
        )


@dataclass(frozen=True)
class InsightFeedback:
    """A stored rating. Replaced, never mutated, when annotations change."""

    id: str
    insight_id: str
    category: FeedbackCategory
    score: int
    source: FeedbackSource
    metadata: FeedbackMetadata
    insight: dict[str, Any] | None = None
    comment: str | None = None
    annotations: FeedbackAnnotations | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["source"] = self.source.value
        timestamp = self.metadata.timestamp
        data["metadata"]["timestamp"] = timestamp.isoformat() if timestamp else None
        return data


@dataclass
class PerformanceMetrics:
    average_view_time: float = 0.0
    action_click_rate: float = 0.0
    expansion_rate: float = 0.0
    share_rate: float = 0.0


@dataclass
class FeedbackStats:
    """Aggregate over all feedback recorded for one insight."""

    insight_id: str
    average_score: float
    score_distribution: dict[int, int]
    total_feedback_count: int
    category_breakdown: dict[str, int]
    user_sentiment: float
    common_tags: list[str]
    performance_metrics: PerformanceMetrics

    @classmethod
    def empty(cls, insight_id: str) -> FeedbackStats:
        return cls(
            insight_id=insight_id,
            average_score=0.0,
            score_distribution={score: 0 for score in SCORES},
            total_feedback_count=0,
            category_breakdown={c.value: 0 for c in FeedbackCategory},
            user_sentiment=0.0,
            common_tags=[],
            performance_metrics=PerformanceMetrics(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SuggestedChange:
    type: ChangeType
    target: str
    suggestion: str
    reason: str
    impact: float


@dataclass
class OptimizationMetadata:
    baseline_score: float = 0.0
    expected_improvement: float = 0.0
    affected_categories: list[FeedbackCategory] = field(default_factory=list)
    data_points: int = 0


@dataclass
class PromptOptimization:
    """One strategy's proposal for improving the prompt behind an insight."""

    strategy: str
    confidence: float
    suggested_changes: list[SuggestedChange] = field(default_factory=list)
    metadata: OptimizationMetadata = field(default_factory=OptimizationMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "confidence": round(self.confidence, 4),
            "suggested_changes": [
                {
                    "type": change.type.value,
                    "target": change.target,
                    "suggestion": change.suggestion,
                    "reason": change.reason,
                    "impact": round(change.impact, 3),
                }
                for change in self.suggested_changes
            ],
            "metadata": {
                "baseline_score": round(self.metadata.baseline_score, 3),
                "expected_improvement": self.metadata.expected_improvement,
                "affected_categories": [c.value for c in self.metadata.affected_categories],
                "data_points": self.metadata.data_points,
            },
        }


def _string_tuple(field_name: str, values: Any) -> tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list of strings, got {values!r}")
    return tuple(values)
