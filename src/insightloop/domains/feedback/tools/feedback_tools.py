"""MCP tools for collecting insight feedback and proposing prompt changes."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from insightloop.core.errors import ValidationError
from insightloop.domains.feedback.models import FeedbackSubmission

if TYPE_CHECKING:
    from insightloop.domains.feedback.optimizer import PromptOptimizer
    from insightloop.domains.feedback.store import FeedbackStore
    from insightloop.domains.insights.engine import InsightEngine

logger = logging.getLogger(__name__)


def register_feedback_tools(
    mcp: FastMCP,
    store: FeedbackStore,
    optimizer: PromptOptimizer,
    engine: InsightEngine,
) -> None:
    """Register feedback collection and optimization tools on the MCP server."""

    @mcp.tool
    async def submit_feedback(
        ctx: Context,
        insight_id: str,
        category: str,
        score: int,
        user_id: str,
        session_id: str,
        source: str = "USER_EXPLICIT",
        comment: str | None = None,
        device_info: str | None = None,
        interaction_context: dict[str, Any] | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """Rate an insight on one aspect (ACCURACY, USEFULNESS, CLARITY, ACTIONABILITY).

        Args:
            insight_id: Id of the insight being rated.
            category: Aspect being rated.
            score: 1 (poor) to 5 (excellent).
            user_id: Who is rating.
            session_id: Client session the rating came from.
            source: USER_EXPLICIT, USER_IMPLICIT, SYSTEM_AUTO or EXPERT_REVIEW.
            comment: Optional free text; used to derive sentiment and tags.
            device_info: Optional client device description.
            interaction_context: Optional {"time_spent_viewing_ms", "clicked_actions",
                "expanded", "shared"}.
            tags: Optional tags supplied by the client.
        """
        insight = engine.find_insight(insight_id)
        payload: dict[str, Any] = {
            "insight_id": insight_id,
            "category": category.upper(),
            "score": score,
            "source": source.upper(),
            "comment": comment,
            "insight": insight.to_dict() if insight else None,
            "metadata": {
                "user_id": user_id,
                "session_id": session_id,
                "device_info": device_info,
                "interaction_context": interaction_context,
            },
            "annotations": {"tags": tags} if tags else None,
        }
        try:
            feedback_id = await store.add_feedback(FeedbackSubmission.from_dict(payload))
        except ValidationError as exc:
            return json.dumps({"status": "invalid_request", "message": str(exc)}, indent=2)

        return json.dumps(
            {
                "status": "ok",
                "feedback_id": feedback_id,
                "insight_known": insight is not None,
            },
            indent=2,
        )

    @mcp.tool
    def insight_feedback_stats(insight_id: str) -> str:
        """Aggregated feedback for one insight: scores, categories, sentiment, tags, engagement.

        Args:
            insight_id: Id of the insight.
        """
        stats = store.get_feedback_stats(insight_id)
        return json.dumps({"status": "ok", "stats": stats.to_dict()}, indent=2)

    @mcp.tool
    def user_feedback_history(user_id: str, limit: int = 50) -> str:
        """Feedback submitted by one user, oldest first.

        Args:
            user_id: Whose feedback to return.
            limit: Maximum number of most recent entries (default: 50).
        """
        history = store.get_user_feedback_history(user_id)
        recent = history[-limit:] if limit > 0 else []
        return json.dumps(
            {
                "status": "ok",
                "user_id": user_id,
                "total": len(history),
                "feedback": [f.to_dict() for f in recent],
            },
            indent=2,
            default=str,
        )

    @mcp.tool
    def optimize_insight_prompt(insight_id: str) -> str:
        """Propose template changes for an insight, ranked by confidence and strategy weight.

        Args:
            insight_id: Id of the insight whose feedback should be analyzed.
        """
        optimizations = optimizer.optimize_prompt(insight_id)
        return json.dumps(
            {
                "status": "ok",
                "insight_id": insight_id,
                "optimizations": [o.to_dict() for o in optimizations],
            },
            indent=2,
        )
