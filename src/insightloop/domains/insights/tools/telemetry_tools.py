"""MCP tools exposing insight engine telemetry."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from insightloop.domains.insights.engine import InsightEngine


def register_telemetry_tools(mcp: FastMCP, engine: InsightEngine) -> None:
    """Register telemetry and provider status tools on the MCP server."""

    @mcp.tool
    def insight_telemetry() -> str:
        """Cache effectiveness, generation counts, error timeline and usage patterns."""
        snapshot = engine.get_telemetry_snapshot().to_dict()
        return json.dumps(
            {
                "status": "ok",
                **snapshot,
                "errors": engine.get_error_stats(),
                "usage": engine.get_usage_patterns(),
            },
            indent=2,
            default=str,
        )

    @mcp.tool
    def provider_status() -> str:
        """Health score, latency, reliability and estimated cost per provider."""
        health = engine.get_provider_health()
        return json.dumps(
            {
                "status": "ok",
                "dispatch_order": engine.provider_names,
                "health": {name: asdict(record) for name, record in health.items()},
                **engine.get_provider_comparison(),
            },
            indent=2,
        )
