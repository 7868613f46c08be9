"""In-memory feedback store with per-insight and per-user indices.

Feedback is written synchronously; enrichment (sentiment, tags, content
quality) runs afterwards as a background task and merges its results through
``update_annotations``. Callers that need enriched feedback immediately can
await ``enrich_feedback`` or ``wait_for_enrichment``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable

from insightloop.core.errors import NotFoundError, ValidationError
from insightloop.domains.feedback.enrichment import FeedbackEnricher
from insightloop.domains.feedback.models import (
    SCORES,
    ContentQualityMetrics,
    FeedbackAnnotations,
    FeedbackCategory,
    FeedbackSource,
    FeedbackStats,
    FeedbackSubmission,
    InsightFeedback,
    PerformanceMetrics,
)

logger = logging.getLogger(__name__)

COMMON_TAG_LIMIT = 5


class FeedbackStore:
    """Owns every stored feedback record and both lookup indices."""

    def __init__(
        self,
        enricher: FeedbackEnricher | None = None,
        *,
        enrich_in_background: bool = True,
    ) -> None:
        self._enricher = enricher if enricher is not None else FeedbackEnricher()
        self._enrich_in_background = enrich_in_background
        self._feedback: dict[str, InsightFeedback] = {}
        # Lists keep insertion order; ids are unique so no dedup is needed.
        self._by_insight: dict[str, list[str]] = {}
        self._by_user: dict[str, list[str]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._feedback)

    async def add_feedback(self, submission: FeedbackSubmission) -> str:
        """Store a submission and return its new feedback id.

        Raises:
            ValidationError: score outside 1..5, or unknown category/source.
        """
        _validate_submission(submission)

        feedback_id = str(uuid.uuid4())
        feedback = InsightFeedback(
            id=feedback_id,
            insight_id=submission.insight_id,
            category=FeedbackCategory(submission.category),
            score=submission.score,
            source=FeedbackSource(submission.source),
            metadata=dataclasses.replace(
                submission.metadata, timestamp=datetime.now(timezone.utc)
            ),
            insight=submission.insight,
            comment=submission.comment,
            annotations=submission.annotations,
        )
        self._feedback[feedback_id] = feedback
        self._by_insight.setdefault(feedback.insight_id, []).append(feedback_id)
        self._by_user.setdefault(feedback.metadata.user_id, []).append(feedback_id)
        logger.info(
            "Feedback stored: id=%s, insight=%s, category=%s, score=%d",
            feedback_id,
            feedback.insight_id,
            feedback.category.value,
            feedback.score,
        )

        if self._enrich_in_background:
            task = asyncio.create_task(self._enrich_quietly(feedback_id))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return feedback_id

    def get(self, feedback_id: str) -> InsightFeedback | None:
        return self._feedback.get(feedback_id)

    def get_insight_feedback(self, insight_id: str) -> list[InsightFeedback]:
        return self._resolve(self._by_insight.get(insight_id, ()))

    def get_user_feedback_history(self, user_id: str) -> list[InsightFeedback]:
        return self._resolve(self._by_user.get(user_id, ()))

    def get_feedback_stats(self, insight_id: str) -> FeedbackStats:
        """Aggregate the feedback recorded for ``insight_id``; zeroed when none."""
        feedbacks = self.get_insight_feedback(insight_id)
        if not feedbacks:
            return FeedbackStats.empty(insight_id)

        distribution = {score: 0 for score in SCORES}
        breakdown = {c.value: 0 for c in FeedbackCategory}
        tag_counts: Counter[str] = Counter()
        sentiments: list[float] = []
        for feedback in feedbacks:
            distribution[feedback.score] += 1
            breakdown[feedback.category.value] += 1
            if feedback.annotations:
                tag_counts.update(feedback.annotations.tags)
                if feedback.annotations.sentiment_score is not None:
                    sentiments.append(feedback.annotations.sentiment_score)

        return FeedbackStats(
            insight_id=insight_id,
            average_score=sum(f.score for f in feedbacks) / len(feedbacks),
            score_distribution=distribution,
            total_feedback_count=len(feedbacks),
            category_breakdown=breakdown,
            user_sentiment=sum(sentiments) / len(sentiments) if sentiments else 0.0,
            common_tags=[tag for tag, _ in tag_counts.most_common(COMMON_TAG_LIMIT)],
            performance_metrics=_performance_metrics(feedbacks),
        )

    def update_annotations(
        self,
        feedback_id: str,
        *,
        tags: Iterable[str] | None = None,
        sentiment_score: float | None = None,
        content_quality_metrics: ContentQualityMetrics | None = None,
    ) -> InsightFeedback:
        """Merge annotations into stored feedback and return the new record.

        Tags are unioned with existing ones; sentiment and quality metrics are
        replaced only when given.

        Raises:
            NotFoundError: no feedback with ``feedback_id``.
        """
        feedback = self._feedback.get(feedback_id)
        if feedback is None:
            raise NotFoundError(f"Feedback not found: {feedback_id}")

        current = feedback.annotations or FeedbackAnnotations()
        merged_tags = list(current.tags)
        for tag in tags or ():
            if tag not in merged_tags:
                merged_tags.append(tag)

        annotations = FeedbackAnnotations(
            tags=tuple(merged_tags),
            sentiment_score=(
                sentiment_score if sentiment_score is not None else current.sentiment_score
            ),
            content_quality_metrics=(
                content_quality_metrics
                if content_quality_metrics is not None
                else current.content_quality_metrics
            ),
        )
        updated = dataclasses.replace(feedback, annotations=annotations)
        self._feedback[feedback_id] = updated
        return updated

    async def enrich_feedback(self, feedback_id: str) -> InsightFeedback:
        """Fill in missing annotations for one feedback record.

        Raises:
            NotFoundError: no feedback with ``feedback_id``.
        """
        feedback = self._feedback.get(feedback_id)
        if feedback is None:
            raise NotFoundError(f"Feedback not found: {feedback_id}")

        annotations = feedback.annotations or FeedbackAnnotations()
        if annotations.sentiment_score is None and feedback.comment:
            feedback = self.update_annotations(
                feedback_id,
                sentiment_score=await self._enricher.analyze_sentiment(feedback.comment),
            )
        if not annotations.tags and feedback.comment:
            feedback = self.update_annotations(
                feedback_id, tags=await self._enricher.extract_tags(feedback.comment)
            )
        if annotations.content_quality_metrics is None:
            feedback = self.update_annotations(
                feedback_id,
                content_quality_metrics=await self._enricher.calculate_content_quality(feedback),
            )
        return feedback

    async def wait_for_enrichment(self) -> None:
        """Wait until every scheduled background enrichment has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _enrich_quietly(self, feedback_id: str) -> None:
        try:
            await self.enrich_feedback(feedback_id)
        except Exception:
            logger.exception("Background enrichment failed for feedback %s", feedback_id)

    def clear(self) -> None:
        """Drop all feedback and cancel enrichment still pending for it."""
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._feedback.clear()
        self._by_insight.clear()
        self._by_user.clear()

    def _resolve(self, feedback_ids: Iterable[str]) -> list[InsightFeedback]:
        return [self._feedback[fid] for fid in feedback_ids if fid in self._feedback]


def _validate_submission(submission: FeedbackSubmission) -> None:
    score = submission.score
    if isinstance(score, bool) or not isinstance(score, int) or score not in SCORES:
        raise ValidationError(f"score must be an integer from 1 to 5, got {score!r}")
    try:
        FeedbackCategory(submission.category)
        FeedbackSource(submission.source)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None
    if not submission.insight_id:
        raise ValidationError("insight_id is required")

    interaction = submission.metadata.interaction_context
    if interaction is not None:
        view_time = interaction.time_spent_viewing_ms
        if view_time is not None and (not _is_real(view_time) or view_time < 0):
            raise ValidationError(
                f"time_spent_viewing_ms must be a non-negative number, got {view_time!r}"
            )
        _require_strings("clicked_actions", interaction.clicked_actions)

    annotations = submission.annotations
    if annotations is not None:
        _require_strings("tags", annotations.tags)
        sentiment = annotations.sentiment_score
        if sentiment is not None and not (_is_real(sentiment) and -1.0 <= sentiment <= 1.0):
            raise ValidationError(f"sentiment_score must be a number in [-1, 1], got {sentiment!r}")
        quality = annotations.content_quality_metrics
        if quality is not None:
            for name, value in dataclasses.asdict(quality).items():
                if not (_is_real(value) and 0.0 <= value <= 1.0):
                    raise ValidationError(f"{name} must be a number in [0, 1], got {value!r}")


def _is_real(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_strings(field_name: str, values: object) -> None:
    if not isinstance(values, tuple) or not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{field_name} must be a list of strings, got {values!r}")


def _performance_metrics(feedbacks: list[InsightFeedback]) -> PerformanceMetrics:
    contexts = [
        f.metadata.interaction_context
        for f in feedbacks
        if f.metadata.interaction_context is not None
    ]
    if not contexts:
        return PerformanceMetrics()

    count = len(contexts)
    return PerformanceMetrics(
        average_view_time=sum(c.time_spent_viewing_ms or 0 for c in contexts) / count,
        action_click_rate=sum(1 for c in contexts if c.clicked_actions) / count,
        expansion_rate=sum(1 for c in contexts if c.expanded) / count,
        share_rate=sum(1 for c in contexts if c.shared) / count,
    )
