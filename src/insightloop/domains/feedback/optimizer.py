"""Prompt optimizer: turns accumulated feedback into ranked template changes.

Each strategy looks at the subset of feedback it cares about. Fewer than
``MIN_SAMPLES`` relevant entries yields an empty, zero-confidence result;
confidence then grows linearly until ``OPTIMAL_SAMPLES``. Suggested changes
target fields of the insight template (tone, reasoning steps, output rules)
so they can be applied to the YAML definitions directly.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Sequence

from insightloop.domains.feedback.models import (
    ChangeType,
    FeedbackCategory,
    FeedbackStats,
    InsightFeedback,
    OptimizationMetadata,
    PromptOptimization,
    SuggestedChange,
)
from insightloop.domains.feedback.store import FeedbackStore

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3
OPTIMAL_SAMPLES = 10


def calculate_confidence(sample_size: int) -> float:
    """0 below MIN_SAMPLES, 1 at OPTIMAL_SAMPLES, linear in between."""
    if sample_size < MIN_SAMPLES:
        return 0.0
    ratio = (sample_size - MIN_SAMPLES) / (OPTIMAL_SAMPLES - MIN_SAMPLES)
    return max(0.0, min(1.0, ratio))


@dataclass(frozen=True)
class OptimizationStrategy:
    name: str
    description: str
    weight: float
    optimize: Callable[[list[InsightFeedback], FeedbackStats], PromptOptimization]


def empty_optimization(strategy: str) -> PromptOptimization:
    return PromptOptimization(strategy=strategy, confidence=0.0)


def _tag_shares(feedback: Sequence[InsightFeedback]) -> dict[str, float]:
    counts: Counter[str] = Counter()
    for f in feedback:
        if f.annotations:
            counts.update(set(f.annotations.tags))
    return {tag: count / len(feedback) for tag, count in counts.items()}


def _comment_share(feedback: Sequence[InsightFeedback], *phrases: str) -> float:
    matching = sum(
        1
        for f in feedback
        if f.comment and any(phrase in f.comment.lower() for phrase in phrases)
    )
    return matching / len(feedback)


def _impact(value: float) -> float:
    return round(max(0.0, min(1.0, value)), 3)


def _build(
    strategy: str,
    subset: list[InsightFeedback],
    stats: FeedbackStats,
    changes: list[SuggestedChange],
    *,
    expected_improvement: float,
    affected: list[FeedbackCategory],
) -> PromptOptimization:
    changes.sort(key=lambda change: change.impact, reverse=True)
    return PromptOptimization(
        strategy=strategy,
        confidence=calculate_confidence(len(subset)),
        suggested_changes=changes,
        metadata=OptimizationMetadata(
            baseline_score=stats.average_score,
            expected_improvement=expected_improvement,
            affected_categories=affected,
            data_points=len(subset),
        ),
    )


# ---------------------------------------------------------------------------
# Default strategies
# ---------------------------------------------------------------------------


def optimize_clarity(feedback: list[InsightFeedback], stats: FeedbackStats) -> PromptOptimization:
    subset = [f for f in feedback if f.category == FeedbackCategory.CLARITY and f.score <= 3]
    if len(subset) < MIN_SAMPLES:
        return empty_optimization("clarity_improvement")

    tags = _tag_shares(subset)
    changes: list[SuggestedChange] = []

    technical = max(tags.get("too_technical", 0.0), _comment_share(subset, "jargon", "technical"))
    if technical:
        changes.append(SuggestedChange(
            type=ChangeType.MODIFY,
            target="framing.tone",
            suggestion="Use plain language and define any medical term in a few words.",
            reason=f"{technical:.0%} of low clarity ratings mention technical language",
            impact=_impact(0.3 + 0.6 * technical),
        ))

    too_long = tags.get("too_long", 0.0)
    if too_long:
        changes.append(SuggestedChange(
            type=ChangeType.MODIFY,
            target="output.max_length_guidance",
            suggestion="Limit the message to two short sentences.",
            reason=f"{too_long:.0%} of low clarity ratings say the insight is too long",
            impact=_impact(0.2 + 0.5 * too_long),
        ))

    unclear = max(tags.get("unclear", 0.0), tags.get("vague", 0.0))
    if unclear or not changes:
        changes.append(SuggestedChange(
            type=ChangeType.ADD,
            target="reasoning_steps",
            suggestion="State what the main metric value means before giving advice.",
            reason=(
                f"{len(subset)} ratings scored clarity at 3 or below"
                f" (average {sum(f.score for f in subset) / len(subset):.1f})"
            ),
            impact=_impact(0.25 + 0.5 * unclear),
        ))

    return _build(
        "clarity_improvement",
        subset,
        stats,
        changes,
        expected_improvement=0.2,
        affected=[FeedbackCategory.CLARITY],
    )


def optimize_actionability(
    feedback: list[InsightFeedback], stats: FeedbackStats
) -> PromptOptimization:
    subset = [f for f in feedback if f.category == FeedbackCategory.ACTIONABILITY]
    if len(subset) < MIN_SAMPLES:
        return empty_optimization("actionability_enhancement")

    low_share = sum(1 for f in subset if f.score <= 3) / len(subset)
    contexts = [
        f.metadata.interaction_context
        for f in subset
        if f.metadata.interaction_context is not None
    ]
    click_rate = (
        sum(1 for c in contexts if c.clicked_actions) / len(contexts) if contexts else None
    )
    tags = _tag_shares(subset)
    changes: list[SuggestedChange] = []

    not_actionable = max(tags.get("not_actionable", 0.0), low_share)
    if not_actionable:
        changes.append(SuggestedChange(
            type=ChangeType.ADD,
            target="output.must_include",
            suggestion="One concrete next step the user can take today.",
            reason=f"{low_share:.0%} of actionability ratings are 3 or below",
            impact=_impact(0.2 + 0.6 * not_actionable),
        ))

    if click_rate is not None and click_rate < 0.5:
        changes.append(SuggestedChange(
            type=ChangeType.MODIFY,
            target="output.action",
            suggestion="Phrase the action as a short imperative with a specific amount or time.",
            reason=f"only {click_rate:.0%} of viewers clicked the suggested action",
            impact=_impact(0.5 - click_rate / 2 + 0.2),
        ))

    if not changes:
        changes.append(SuggestedChange(
            type=ChangeType.MODIFY,
            target="output.action",
            suggestion="Keep the action but tie it to the metric that changed most.",
            reason="actionability ratings are positive; refine rather than restructure",
            impact=0.1,
        ))

    return _build(
        "actionability_enhancement",
        subset,
        stats,
        changes,
        expected_improvement=0.15,
        affected=[FeedbackCategory.ACTIONABILITY, FeedbackCategory.USEFULNESS],
    )


def optimize_accuracy(feedback: list[InsightFeedback], stats: FeedbackStats) -> PromptOptimization:
    subset = [f for f in feedback if f.category == FeedbackCategory.ACCURACY and f.score <= 4]
    if len(subset) < MIN_SAMPLES:
        return empty_optimization("accuracy_optimization")

    scores = [f.score for f in subset]
    average = sum(scores) / len(scores)
    spread = max(scores) - min(scores)
    tags = _tag_shares(subset)
    changes: list[SuggestedChange] = []

    inaccurate = max(tags.get("inaccurate", 0.0), _comment_share(subset, "wrong", "incorrect"))
    if inaccurate:
        changes.append(SuggestedChange(
            type=ChangeType.ADD,
            target="output.never_include",
            suggestion="Claims about metrics that were not provided in the request.",
            reason=f"{inaccurate:.0%} of accuracy ratings report incorrect statements",
            impact=_impact(0.3 + 0.6 * inaccurate),
        ))

    if spread >= 2:
        changes.append(SuggestedChange(
            type=ChangeType.MODIFY,
            target="metric_hints",
            suggestion="Add typical reference ranges so values are judged consistently.",
            reason=f"accuracy scores vary by {spread} points for the same insight",
            impact=_impact(0.15 * spread),
        ))

    changes.append(SuggestedChange(
        type=ChangeType.ADD,
        target="reasoning_steps",
        suggestion="Compare each metric against its reference range before concluding.",
        reason=f"average accuracy score among these ratings is {average:.1f}",
        impact=_impact((5 - average) / 4),
    ))

    return _build(
        "accuracy_optimization",
        subset,
        stats,
        changes,
        expected_improvement=0.25,
        affected=[FeedbackCategory.ACCURACY, FeedbackCategory.USEFULNESS],
    )


DEFAULT_STRATEGIES: tuple[OptimizationStrategy, ...] = (
    OptimizationStrategy(
        name="clarity_improvement",
        description="Improves clarity based on user comprehension patterns",
        weight=1.0,
        optimize=optimize_clarity,
    ),
    OptimizationStrategy(
        name="actionability_enhancement",
        description="Enhances actionable content in insights",
        weight=0.8,
        optimize=optimize_actionability,
    ),
    OptimizationStrategy(
        name="accuracy_optimization",
        description="Optimizes for factual accuracy and precision",
        weight=1.2,
        optimize=optimize_accuracy,
    ),
)


class PromptOptimizer:
    """Runs every strategy over an insight's feedback and ranks the results."""

    def __init__(
        self,
        feedback_store: FeedbackStore,
        strategies: Sequence[OptimizationStrategy] | None = None,
    ) -> None:
        self._store = feedback_store
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    @property
    def strategies(self) -> tuple[OptimizationStrategy, ...]:
        return self._strategies

    def optimize_prompt(self, insight_id: str) -> list[PromptOptimization]:
        """One optimization per strategy, best first by confidence times weight."""
        feedback = self._store.get_insight_feedback(insight_id)
        stats = self._store.get_feedback_stats(insight_id)

        ranked: list[tuple[float, float, PromptOptimization]] = []
        for strategy in self._strategies:
            optimization = strategy.optimize(feedback, stats)
            ranked.append((optimization.confidence * strategy.weight, strategy.weight, optimization))

        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        logger.debug(
            "Optimized prompt for %s from %d feedback: %s",
            insight_id,
            len(feedback),
            [(o.strategy, round(score, 3)) for score, _, o in ranked],
        )
        return [optimization for _, _, optimization in ranked]
