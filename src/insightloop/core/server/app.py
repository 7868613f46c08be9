"""InsightLoop MCP Server: application factory.

This module provides:
- build_services(): the composition root; one engine, store and optimizer per app
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from fastmcp import FastMCP

from insightloop.core.config.settings import Settings, get_settings
from insightloop.core.llm.provider import LLMProvider, create_provider
from insightloop.core.templates.loader import load_template_directory
from insightloop.core.templates.registry import TemplateRegistry
from insightloop.domains.feedback.optimizer import PromptOptimizer
from insightloop.domains.feedback.store import FeedbackStore
from insightloop.domains.feedback.tools.feedback_tools import register_feedback_tools
from insightloop.domains.insights.cache import InsightCache
from insightloop.domains.insights.engine import InsightEngine
from insightloop.domains.insights.resources.templates import register_template_resources
from insightloop.domains.insights.telemetry import ErrorTimeline
from insightloop.domains.insights.tools.insight_tools import register_insight_tools
from insightloop.domains.insights.tools.telemetry_tools import register_telemetry_tools

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

# Template YAML definitions live under src/insightloop/domains/insights/templates/
_TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "domains" / "insights" / "templates"


@dataclass
class Services:
    """Everything the MCP tools share for the lifetime of one application."""

    settings: Settings
    templates: TemplateRegistry
    engine: InsightEngine
    feedback_store: FeedbackStore
    optimizer: PromptOptimizer


def build_providers(settings: Settings) -> dict[str, LLMProvider]:
    """Create providers in dispatch order; missing API keys fall back to the mock."""
    providers: dict[str, LLMProvider] = {}
    for name in settings.llm_providers:
        if name in providers:
            logger.warning("Provider %r listed more than once; ignoring duplicate", name)
            continue
        if name == "mock":
            providers[name] = create_provider("mock", api_key="", model="")
            continue
        if name == "anthropic":
            api_key, model = settings.anthropic_api_key, settings.anthropic_model
        elif name == "openai":
            api_key, model = settings.openai_api_key, settings.openai_model
        else:
            raise ValueError(f"Unknown LLM provider: {name!r}")

        if api_key:
            providers[name] = create_provider(name, api_key=api_key, model=model)
        else:
            logger.warning(
                "No API key configured for provider '%s'; falling back to mock provider",
                name,
            )
            # The mock keeps the configured name so telemetry stays keyed by it.
            from insightloop.core.llm.providers.mock import MockProvider

            providers[name] = MockProvider(name=name)

    if not providers:
        raise ValueError("LLM_PROVIDERS must name at least one provider")
    return providers


def build_services(
    settings: Settings | None = None,
    *,
    providers_override: Mapping[str, LLMProvider] | None = None,
) -> Services:
    """Wire templates, engine, feedback store and optimizer from settings."""
    settings = settings or get_settings()

    templates = TemplateRegistry()
    template_dir = Path(settings.templates_dir) if settings.templates_dir else _TEMPLATE_DIR
    template_count = load_template_directory(template_dir, templates)
    logger.info("Loaded %d insight templates from %s", template_count, template_dir)

    providers = providers_override if providers_override is not None else build_providers(settings)

    engine = InsightEngine(
        providers,
        templates=templates,
        cache=InsightCache(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        ),
        provider_timeout=settings.provider_timeout_seconds,
        max_tokens=settings.provider_max_tokens,
        temperature=settings.provider_temperature,
        latency_window=settings.latency_window,
        error_timeline=ErrorTimeline(
            bucket_seconds=settings.error_bucket_seconds,
            max_buckets=settings.error_timeline_max_buckets,
        ),
        pricing=settings.provider_pricing,
        privacy_mode=settings.privacy_mode,
        issued_capacity=settings.cache_max_entries,
    )
    logger.info("Insight engine ready with providers: %s", ", ".join(engine.provider_names))

    feedback_store = FeedbackStore(enrich_in_background=settings.feedback_enrichment)
    optimizer = PromptOptimizer(feedback_store)

    return Services(
        settings=settings,
        templates=templates,
        engine=engine,
        feedback_store=feedback_store,
        optimizer=optimizer,
    )


def create_app(
    *,
    settings: Settings | None = None,
    providers_override: Mapping[str, LLMProvider] | None = None,
    services: Services | None = None,
) -> FastMCP:
    """Create and configure the InsightLoop MCP server.

    This is the main application factory. It:
    1. Builds the shared services (templates, engine, feedback store, optimizer)
    2. Creates the FastMCP server instance
    3. Registers all tools and resources
    """
    if services is None:
        services = build_services(settings, providers_override=providers_override)

    server = FastMCP(
        "InsightLoop",
        instructions=(
            "InsightLoop: health insight generation with provider fallback, "
            "caching and telemetry, plus feedback collection that proposes "
            "prompt template improvements."
        ),
    )

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "InsightLoop",
            "version": __version__,
            "templates_loaded": len(services.templates),
            "providers": services.engine.provider_names,
            "privacy_mode": services.settings.privacy_mode,
            "feedback_stored": len(services.feedback_store),
        }

    register_insight_tools(server, services.engine)
    register_telemetry_tools(server, services.engine)
    register_feedback_tools(server, services.feedback_store, services.optimizer, services.engine)
    logger.info("Insight, telemetry and feedback tools registered")

    register_template_resources(server, services.templates)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
