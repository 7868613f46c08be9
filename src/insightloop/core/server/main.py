"""InsightLoop server entry point: ``python -m insightloop.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from insightloop.core.config.settings import get_settings
from insightloop.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the InsightLoop MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.insight_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.insight_allow_insecure_bind and not _is_loopback_host(settings.insight_host):
        raise RuntimeError(
            "Refusing to bind InsightLoop server to a non-loopback host without an auth layer. "
            "Set INSIGHT_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting InsightLoop server on %s:%d",
        settings.insight_host,
        settings.insight_port,
    )

    logger.info(
        "Provider dispatch order: %s (privacy mode: %s, timeout: %.1fs)",
        " -> ".join(settings.llm_providers),
        settings.privacy_mode,
        settings.provider_timeout_seconds,
    )

    mcp = create_app(settings=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.insight_host,
        port=settings.insight_port,
    )


if __name__ == "__main__":
    run()
