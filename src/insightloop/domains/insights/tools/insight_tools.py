"""MCP tools for generating health insights.

Generation never fails at the tool boundary: validation problems and
provider exhaustion are returned as a JSON error payload with
``"insight": null`` so MCP clients always receive a parseable result.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from insightloop.core.errors import ExhaustedProvidersError, ValidationError
from insightloop.domains.insights.models import InsightRequest, PersonaContext

if TYPE_CHECKING:
    from insightloop.domains.insights.engine import InsightEngine

logger = logging.getLogger(__name__)


def _error_payload(status: str, message: str, **extra: Any) -> str:
    return json.dumps({"status": status, "message": message, "insight": None, **extra}, indent=2)


def register_insight_tools(mcp: FastMCP, engine: InsightEngine) -> None:
    """Register insight generation tools on the MCP server."""

    @mcp.tool
    async def generate_insight(
        ctx: Context,
        category: str,
        metrics: dict[str, float],
    ) -> str:
        """Generate a short, actionable insight from health metrics.

        Identical category/metrics pairs are served from cache, and
        concurrent identical requests share one provider call.

        Args:
            category: Insight category, e.g. PHYSICAL, SLEEP, NUTRITION, MENTAL.
            metrics: Numeric observations keyed by metric name, e.g. {"steps": 10000}.
        """
        try:
            insight = await engine.generate_insight(
                InsightRequest(category=category.upper(), metrics=metrics)
            )
        except ValidationError as exc:
            return _error_payload("invalid_request", str(exc))
        except ExhaustedProvidersError as exc:
            return _error_payload(
                "unavailable",
                "No insight provider is currently available. Please try again later.",
                providers_tried=[f.provider for f in exc.failures],
            )

        return json.dumps({"status": "ok", "insight": insight.to_dict()}, indent=2)

    @mcp.tool
    async def generate_persona_insight(
        ctx: Context,
        category: str,
        metrics: dict[str, float],
        persona: dict[str, Any],
    ) -> str:
        """Generate an insight tailored to one person. Never cached.

        Only the persona fields allowed by the configured privacy mode are
        shared with the provider.

        Args:
            category: Insight category, e.g. PHYSICAL or SLEEP.
            metrics: Numeric observations keyed by metric name.
            persona: {"id", "age", "gender", "conditions", "preferences", "cultural_context"}.
        """
        try:
            insight = await engine.generate_insight_for_persona(
                InsightRequest(
                    category=category.upper(),
                    metrics=metrics,
                    persona=PersonaContext.from_dict(persona),
                )
            )
        except ValidationError as exc:
            return _error_payload("invalid_request", str(exc))
        except ExhaustedProvidersError as exc:
            return _error_payload(
                "unavailable",
                "No insight provider is currently available. Please try again later.",
                providers_tried=[f.provider for f in exc.failures],
            )

        return json.dumps({"status": "ok", "insight": insight.to_dict()}, indent=2)
