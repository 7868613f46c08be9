"""Shared test fixtures for InsightLoop tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDERS", '["mock"]')
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("PRIVACY_MODE", "strict")
    monkeypatch.setenv("TEMPLATES_DIR", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from insightloop.core.llm.providers.mock import MockProvider  # noqa: E402
from insightloop.core.templates.models import (  # noqa: E402
    InsightTemplate,
    TemplateFraming,
    TemplateGuardrails,
    TemplateOutput,
)
from insightloop.core.templates.registry import TemplateRegistry  # noqa: E402
from insightloop.domains.feedback.store import FeedbackStore  # noqa: E402
from insightloop.domains.insights.cache import InsightCache  # noqa: E402
from insightloop.domains.insights.engine import InsightEngine  # noqa: E402


def make_test_template(
    id: str = "test_template",
    category: str = "*",
) -> InsightTemplate:
    """Create a test template with sensible defaults."""
    return InsightTemplate(
        id=id,
        version="1.0.0",
        category=category,
        display_name=f"Test: {id}",
        description=f"Test template {id}",
        framing=TemplateFraming(
            role="Test coach",
            perspective="Test perspective",
            tone="neutral",
            tone_variants={"formal": "Very formal", "casual": "Very casual"},
        ),
        reasoning_steps=["Look at the metrics", "Pick one takeaway"],
        metric_hints={"steps": "Daily step count"},
        output=TemplateOutput(
            max_length_guidance="One sentence",
            must_include=["one takeaway"],
            never_include=["diagnoses"],
        ),
        guardrails=TemplateGuardrails(
            disclaimers=["Not medical advice."],
            escalation_triggers=["chest pain"],
        ),
        tags=["test"],
    )


def structured_content(message: str, type: str = "success", action: dict | None = None) -> str:
    """Provider output in the JSON shape the system prompt asks for."""
    payload = {"type": type, "message": message}
    if action is not None:
        payload["action"] = action
    return json.dumps(payload)


@pytest.fixture
def template_registry() -> TemplateRegistry:
    """Registry with a default template and a PHYSICAL template."""
    reg = TemplateRegistry()
    reg.register(make_test_template(id="general"))
    reg.register(make_test_template(id="physical", category="PHYSICAL"))
    return reg


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider(
        structured_content(
            "Great job reaching 10,000 steps today!",
            action={"type": "suggestion", "message": "Keep it up tomorrow."},
        ),
        name="primary",
    )


@pytest.fixture
def insight_engine(template_registry: TemplateRegistry, mock_provider: MockProvider) -> InsightEngine:
    """Engine with a single mock provider named 'primary'."""
    return InsightEngine(
        {"primary": mock_provider},
        templates=template_registry,
        cache=InsightCache(ttl_seconds=3600, max_entries=100),
        provider_timeout=1.0,
    )


@pytest.fixture
def feedback_store() -> FeedbackStore:
    """Store without background enrichment, for deterministic reads."""
    return FeedbackStore(enrich_in_background=False)


@pytest.fixture
def make_template():
    """Factory for test templates: ``make_template(id=..., category=...)``."""
    return make_test_template
