"""MCP resource for insight template discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from insightloop.core.templates.registry import TemplateRegistry


def register_template_resources(mcp: FastMCP, registry: TemplateRegistry) -> None:
    """Register insight template discovery resources on the MCP server."""

    @mcp.resource("template://insights/registry")
    def insight_template_registry_resource() -> str:
        """Discover the prompt templates used for each insight category."""
        templates = registry.all()
        return json.dumps(
            {
                "template_count": len(templates),
                "templates": [
                    {
                        "id": t.id,
                        "version": t.version,
                        "category": t.category,
                        "display_name": t.display_name,
                        "description": t.description,
                        "tone_variants": list(t.framing.tone_variants.keys()),
                        "metric_hints": sorted(t.metric_hints),
                        "tags": t.tags,
                    }
                    for t in templates
                ],
            },
            indent=2,
        )
