"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """InsightLoop server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    insight_host: str = "127.0.0.1"
    insight_port: int = 8001
    insight_log_level: str = "info"
    insight_allow_insecure_bind: bool = False

    # Providers, in dispatch priority order
    llm_providers: list[str] = ["openai", "anthropic"]
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    provider_timeout_seconds: float = 30.0
    provider_max_tokens: int = 500
    provider_temperature: float = 0.7

    # USD per 1M tokens: [input, output]
    provider_pricing: dict[str, list[float]] = {
        "openai": [2.5, 10.0],
        "anthropic": [3.0, 15.0],
        "mock": [0.0, 0.0],
    }

    # Insight cache
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 1000

    # Telemetry
    latency_window: int = 100
    error_bucket_seconds: float = 60.0
    error_timeline_max_buckets: int = 1440

    # Privacy
    privacy_mode: Literal["strict", "standard", "explicit"] = "strict"

    # Feedback
    feedback_enrichment: bool = True

    # Prompt templates; empty means the bundled templates directory
    templates_dir: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
