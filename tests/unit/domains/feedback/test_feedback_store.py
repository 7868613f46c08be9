"""Unit tests for FeedbackStore: storage, indices, stats and annotations."""

from __future__ import annotations

import asyncio
import logging

import pytest

from insightloop.core.errors import NotFoundError, ValidationError
from insightloop.domains.feedback.enrichment import FeedbackEnricher
from insightloop.domains.feedback.models import (
    ContentQualityMetrics,
    FeedbackAnnotations,
    FeedbackCategory,
    FeedbackMetadata,
    FeedbackSource,
    FeedbackSubmission,
    InteractionContext,
)
from insightloop.domains.feedback.store import FeedbackStore


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _submission(
    insight_id: str = "insight-1",
    category: FeedbackCategory = FeedbackCategory.CLARITY,
    score: int = 3,
    user_id: str = "user-1",
    comment: str | None = None,
    tags: tuple[str, ...] = (),
    sentiment: float | None = None,
    interaction: InteractionContext | None = None,
) -> FeedbackSubmission:
    annotations = None
    if tags or sentiment is not None:
        annotations = FeedbackAnnotations(tags=tags, sentiment_score=sentiment)
    return FeedbackSubmission(
        insight_id=insight_id,
        category=category,
        score=score,
        source=FeedbackSource.USER_EXPLICIT,
        metadata=FeedbackMetadata(
            session_id="session-1",
            user_id=user_id,
            interaction_context=interaction,
        ),
        insight={
            "message": "You walked 8000 steps. Try a 10 minute walk after dinner.",
            "related_metrics": ["steps"],
        },
        comment=comment,
        annotations=annotations,
    )


def _add(store: FeedbackStore, *submissions: FeedbackSubmission) -> list[str]:
    async def _go():
        return [await store.add_feedback(s) for s in submissions]

    return _run(_go())


class TestAddFeedback:
    def test_assigns_id_and_timestamp(self, feedback_store):
        [feedback_id] = _add(feedback_store, _submission())

        stored = feedback_store.get(feedback_id)
        assert stored.id == feedback_id
        assert stored.metadata.timestamp is not None
        assert stored.metadata.timestamp.tzinfo is not None

    def test_indices_keep_insertion_order(self, feedback_store):
        ids = _add(
            feedback_store,
            _submission(insight_id="a", user_id="u1"),
            _submission(insight_id="b", user_id="u1"),
            _submission(insight_id="a", user_id="u2"),
        )

        assert [f.id for f in feedback_store.get_insight_feedback("a")] == [ids[0], ids[2]]
        assert [f.id for f in feedback_store.get_user_feedback_history("u1")] == ids[:2]

    def test_unknown_ids_return_empty_lists(self, feedback_store):
        assert feedback_store.get_insight_feedback("missing") == []
        assert feedback_store.get_user_feedback_history("nobody") == []

    @pytest.mark.parametrize("score", [0, 6, True, 3.5])
    def test_invalid_score_rejected(self, feedback_store, score):
        with pytest.raises(ValidationError):
            _add(feedback_store, _submission(score=score))
        assert len(feedback_store) == 0

    def test_unknown_category_rejected_on_parse(self):
        with pytest.raises(ValidationError):
            FeedbackSubmission.from_dict({
                "insight_id": "insight-1",
                "category": "VIBES",
                "score": 3,
                "metadata": {"user_id": "u", "session_id": "s"},
            })

    def test_from_dict_round_trip(self, feedback_store):
        submission = FeedbackSubmission.from_dict({
            "insight_id": "insight-1",
            "category": "ACTIONABILITY",
            "score": 4,
            "source": "EXPERT_REVIEW",
            "metadata": {
                "user_id": "u",
                "session_id": "s",
                "interaction_context": {"clicked_actions": ["open"], "expanded": True},
            },
            "annotations": {"tags": ["helpful"]},
        })
        [feedback_id] = _add(feedback_store, submission)

        stored = feedback_store.get(feedback_id)
        assert stored.source is FeedbackSource.EXPERT_REVIEW
        assert stored.metadata.interaction_context.clicked_actions == ("open",)
        assert stored.annotations.tags == ("helpful",)
        assert stored.to_dict()["category"] == "ACTIONABILITY"


class TestMalformedSubmissions:
    @staticmethod
    def _payload(**overrides):
        payload = {
            "insight_id": "insight-1",
            "category": "CLARITY",
            "score": 3,
            "metadata": {"user_id": "u", "session_id": "s"},
        }
        payload.update(overrides)
        return payload

    @pytest.mark.parametrize("view_time", ["12s", -5, float("nan")])
    def test_bad_view_time_rejected(self, feedback_store, view_time):
        submission = FeedbackSubmission.from_dict(self._payload(metadata={
            "user_id": "u",
            "session_id": "s",
            "interaction_context": {"time_spent_viewing_ms": view_time},
        }))
        with pytest.raises(ValidationError):
            _add(feedback_store, submission)
        assert len(feedback_store) == 0

    @pytest.mark.parametrize("sentiment", ["very bad", 1.5, True])
    def test_bad_sentiment_rejected(self, feedback_store, sentiment):
        submission = FeedbackSubmission.from_dict(
            self._payload(annotations={"sentiment_score": sentiment})
        )
        with pytest.raises(ValidationError):
            _add(feedback_store, submission)

    def test_non_string_tags_rejected(self, feedback_store):
        submission = FeedbackSubmission.from_dict(self._payload(annotations={"tags": [1, 2]}))
        with pytest.raises(ValidationError):
            _add(feedback_store, submission)

    def test_tags_given_as_one_string_rejected_on_parse(self):
        with pytest.raises(ValidationError):
            FeedbackSubmission.from_dict(self._payload(annotations={"tags": "unclear"}))

    def test_unknown_quality_field_rejected_on_parse(self):
        with pytest.raises(ValidationError):
            FeedbackSubmission.from_dict(self._payload(annotations={
                "content_quality_metrics": {"relevance": 0.5, "vibes": 1.0},
            }))

    def test_quality_metric_out_of_range_rejected(self, feedback_store):
        submission = _submission()
        submission = FeedbackSubmission(
            insight_id=submission.insight_id,
            category=submission.category,
            score=submission.score,
            source=submission.source,
            metadata=submission.metadata,
            annotations=FeedbackAnnotations(
                content_quality_metrics=ContentQualityMetrics(relevance="high"),
            ),
        )
        with pytest.raises(ValidationError):
            _add(feedback_store, submission)

    def test_rejected_record_does_not_break_stats_or_history(self, feedback_store):
        _add(feedback_store, _submission(score=4, sentiment=0.5,
                                         interaction=InteractionContext(time_spent_viewing_ms=800)))
        bad = FeedbackSubmission.from_dict(self._payload(
            annotations={"sentiment_score": "very bad"},
            metadata={
                "user_id": "user-1",
                "session_id": "s",
                "interaction_context": {"time_spent_viewing_ms": "12s"},
            },
        ))
        with pytest.raises(ValidationError):
            _add(feedback_store, bad)

        stats = feedback_store.get_feedback_stats("insight-1")
        assert stats.total_feedback_count == 1
        assert stats.user_sentiment == 0.5
        assert stats.performance_metrics.average_view_time == 800.0
        assert len(feedback_store.get_user_feedback_history("user-1")) == 1


class TestFeedbackStats:
    def test_no_feedback_gives_zeroed_stats(self, feedback_store):
        stats = feedback_store.get_feedback_stats("insight-none")

        assert stats.insight_id == "insight-none"
        assert stats.total_feedback_count == 0
        assert stats.average_score == 0.0
        assert stats.score_distribution == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
        assert stats.category_breakdown == {
            "ACCURACY": 0,
            "USEFULNESS": 0,
            "CLARITY": 0,
            "ACTIONABILITY": 0,
        }
        assert stats.user_sentiment == 0.0
        assert stats.common_tags == []
        assert stats.performance_metrics.share_rate == 0.0

    def test_aggregates(self, feedback_store):
        _add(
            feedback_store,
            _submission(score=2, tags=("unclear", "too_long"), sentiment=-0.5,
                        interaction=InteractionContext(time_spent_viewing_ms=1000, expanded=True)),
            _submission(score=4, category=FeedbackCategory.ACCURACY, tags=("unclear",),
                        sentiment=0.5,
                        interaction=InteractionContext(time_spent_viewing_ms=3000,
                                                       clicked_actions=("walk",), shared=True)),
            _submission(score=3),
            _submission(insight_id="other", score=5),
        )

        stats = feedback_store.get_feedback_stats("insight-1")
        assert stats.total_feedback_count == 3
        assert stats.average_score == 3.0
        assert stats.score_distribution == {1: 0, 2: 1, 3: 1, 4: 1, 5: 0}
        assert stats.category_breakdown["CLARITY"] == 2
        assert stats.category_breakdown["ACCURACY"] == 1
        assert stats.user_sentiment == 0.0
        assert stats.common_tags == ["unclear", "too_long"]
        perf = stats.performance_metrics
        assert perf.average_view_time == 2000.0
        assert perf.action_click_rate == 0.5
        assert perf.expansion_rate == 0.5
        assert perf.share_rate == 0.5

    def test_common_tags_limited_to_five(self, feedback_store):
        _add(feedback_store, *(_submission(tags=(f"t{i}",)) for i in range(7)))
        assert len(feedback_store.get_feedback_stats("insight-1").common_tags) == 5


class TestUpdateAnnotations:
    def test_unknown_id_raises_and_leaves_store_unchanged(self, feedback_store):
        [feedback_id] = _add(feedback_store, _submission(tags=("unclear",)))
        before = feedback_store.get(feedback_id)

        with pytest.raises(NotFoundError):
            feedback_store.update_annotations("does-not-exist", tags=["x"])

        assert len(feedback_store) == 1
        assert feedback_store.get(feedback_id) == before

    def test_not_found_is_a_lookup_error(self, feedback_store):
        with pytest.raises(LookupError):
            feedback_store.update_annotations("does-not-exist", sentiment_score=0.1)

    def test_merge_is_additive(self, feedback_store):
        [feedback_id] = _add(feedback_store, _submission(tags=("unclear",), sentiment=-0.2))

        feedback_store.update_annotations(feedback_id, tags=["too_long", "unclear"])
        updated = feedback_store.update_annotations(
            feedback_id,
            content_quality_metrics=ContentQualityMetrics(relevance=1.0),
        )

        assert updated.annotations.tags == ("unclear", "too_long")
        assert updated.annotations.sentiment_score == -0.2
        assert updated.annotations.content_quality_metrics.relevance == 1.0
        assert feedback_store.get(feedback_id) is updated

    def test_annotations_created_when_absent(self, feedback_store):
        [feedback_id] = _add(feedback_store, _submission())
        updated = feedback_store.update_annotations(feedback_id, sentiment_score=0.7)
        assert updated.annotations.tags == ()
        assert updated.annotations.sentiment_score == 0.7


class TestEnrichment:
    def test_enrich_feedback_fills_missing_annotations(self, feedback_store):
        [feedback_id] = _add(
            feedback_store,
            _submission(comment="Too much jargon, really confusing."),
        )

        enriched = _run(feedback_store.enrich_feedback(feedback_id))

        assert enriched.annotations.sentiment_score < 0
        assert "too_technical" in enriched.annotations.tags
        assert "unclear" in enriched.annotations.tags
        assert enriched.annotations.content_quality_metrics is not None

    def test_existing_annotations_kept(self, feedback_store):
        [feedback_id] = _add(
            feedback_store,
            _submission(comment="confusing", tags=("custom",), sentiment=0.9),
        )

        enriched = _run(feedback_store.enrich_feedback(feedback_id))

        assert enriched.annotations.sentiment_score == 0.9
        assert enriched.annotations.tags == ("custom",)

    def test_enrich_unknown_feedback_raises(self, feedback_store):
        with pytest.raises(NotFoundError):
            _run(feedback_store.enrich_feedback("missing"))

    def test_background_enrichment_is_eventually_visible(self):
        store = FeedbackStore()

        async def _go():
            feedback_id = await store.add_feedback(_submission(comment="Very helpful, thanks"))
            immediate = store.get(feedback_id).annotations
            await store.wait_for_enrichment()
            return immediate, store.get(feedback_id).annotations

        immediate, eventual = _run(_go())
        assert immediate is None
        assert eventual.sentiment_score > 0
        assert "helpful" in eventual.tags

    def test_clear_cancels_pending_enrichment(self, caplog):
        store = FeedbackStore()

        async def _go():
            await store.add_feedback(_submission(comment="Very helpful, thanks"))
            store.clear()
            await asyncio.sleep(0)
            await store.wait_for_enrichment()

        with caplog.at_level(logging.ERROR):
            _run(_go())

        assert len(store) == 0
        assert "Background enrichment failed" not in caplog.text

    def test_background_failure_is_logged_not_raised(self, caplog):
        class _BrokenEnricher(FeedbackEnricher):
            async def analyze_sentiment(self, text: str) -> float:
                raise RuntimeError("sentiment service down")

        store = FeedbackStore(_BrokenEnricher())

        async def _go():
            feedback_id = await store.add_feedback(_submission(comment="meh"))
            await store.wait_for_enrichment()
            return feedback_id

        with caplog.at_level(logging.ERROR):
            feedback_id = _run(_go())

        assert store.get(feedback_id) is not None
        assert "Background enrichment failed" in caplog.text
