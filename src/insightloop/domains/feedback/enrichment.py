"""Feedback enrichment: sentiment, tags and content quality.

The methods are async so an NLP service can be swapped in behind the same
interface; the default implementation is a deterministic set of heuristics.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from insightloop.domains.feedback.models import ContentQualityMetrics, InsightFeedback

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z']+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_POSITIVE_WORDS = frozenset({
    "good", "great", "helpful", "useful", "clear", "accurate", "love", "excellent",
    "motivating", "insightful", "relevant", "nice", "perfect", "easy", "thanks",
})
_NEGATIVE_WORDS = frozenset({
    "bad", "wrong", "confusing", "unclear", "useless", "inaccurate", "vague",
    "generic", "boring", "hard", "annoying", "misleading", "poor", "long", "jargon",
})
_NEGATIONS = frozenset({"not", "no", "never", "isn't", "wasn't", "don't", "didn't", "hardly"})

# Tag -> phrases that indicate it. Matched against the lowercased comment.
TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    "unclear": ("unclear", "confusing", "confused", "hard to understand", "didn't understand"),
    "too_technical": ("technical", "jargon", "medical terms", "complicated"),
    "inaccurate": ("wrong", "inaccurate", "incorrect", "not true", "misleading"),
    "not_actionable": ("what should i do", "not actionable", "no advice", "nothing to do"),
    "helpful": ("helpful", "useful", "motivating", "great tip"),
    "too_long": ("too long", "wordy", "verbose", "shorter"),
    "vague": ("vague", "generic", "too general", "not specific"),
}

_IMPERATIVE_RE = re.compile(
    r"\b(try|aim|consider|add|reduce|increase|schedule|take|walk|drink|sleep|keep)\b",
    re.IGNORECASE,
)


class FeedbackEnricher:
    """Derives annotations for stored feedback."""

    async def analyze_sentiment(self, text: str) -> float:
        """Lexicon score in [-1, 1]; a negation flips the next sentiment word."""
        words = _WORD_RE.findall(text.lower())
        score = 0
        hits = 0
        negate = False
        for word in words:
            if word in _NEGATIONS:
                negate = True
                continue
            polarity = (word in _POSITIVE_WORDS) - (word in _NEGATIVE_WORDS)
            if polarity:
                score += -polarity if negate else polarity
                hits += 1
            negate = False
        if not hits:
            return 0.0
        return max(-1.0, min(1.0, score / hits))

    async def extract_tags(self, text: str) -> list[str]:
        lowered = text.lower()
        return [
            tag
            for tag, phrases in TAG_KEYWORDS.items()
            if any(phrase in lowered for phrase in phrases)
        ]

    async def calculate_content_quality(self, feedback: InsightFeedback) -> ContentQualityMetrics:
        """Score the rated insight's message; zeros when no snapshot is attached."""
        insight: Mapping[str, Any] = feedback.insight or {}
        message = str(insight.get("message") or "")
        if not message:
            return ContentQualityMetrics()

        lowered = message.lower()
        related = [str(m) for m in insight.get("related_metrics") or ()]
        if related:
            named = sum(1 for metric in related if _metric_mentioned(metric, lowered))
            relevance = named / len(related)
        else:
            relevance = 0.0

        specificity = min(len(_NUMBER_RE.findall(message)) / 3, 1.0)

        if insight.get("action"):
            actionability = 1.0
        elif _IMPERATIVE_RE.search(message):
            actionability = 0.6
        else:
            actionability = 0.0

        return ContentQualityMetrics(
            relevance=round(relevance, 3),
            specificity=round(specificity, 3),
            actionability=actionability,
        )


def _metric_mentioned(metric: str, lowered_message: str) -> bool:
    # "sleep_hours" counts as mentioned when "sleep" and "hours" both appear.
    parts = [p for p in re.split(r"[_\W]+", metric.lower()) if p]
    return bool(parts) and all(part in lowered_message for part in parts)
