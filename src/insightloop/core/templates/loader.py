"""Template loader: reads YAML insight template definitions from disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from insightloop.core.templates.models import (
    InsightTemplate,
    TemplateFraming,
    TemplateGuardrails,
    TemplateOutput,
)
from insightloop.core.templates.registry import TemplateRegistry

logger = logging.getLogger(__name__)


def load_template_directory(directory: str | Path, registry: TemplateRegistry) -> int:
    """Load all YAML template definitions from a directory (recursively).

    Returns the number of templates loaded.
    Skips files starting with underscore.
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Template directory does not exist: %s", directory)
        return 0

    count = 0
    for path in sorted(directory.rglob("*.yaml")):
        if path.name.startswith("_"):
            continue
        try:
            template = load_template_file(path)
            registry.register(template)
            count += 1
            logger.info("Loaded template: %s (v%s)", template.id, template.version)
        except Exception:
            logger.exception("Failed to load template from %s", path)
    return count


def load_template_file(path: Path) -> InsightTemplate:
    """Parse a YAML file into an InsightTemplate instance."""
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f)
    return template_from_dict(data)


def template_from_dict(data: dict[str, Any]) -> InsightTemplate:
    """Build an InsightTemplate from parsed YAML data."""
    framing_data = data.get("framing", {})
    output_data = data.get("output", {})
    guardrails_data = data.get("guardrails", {})

    return InsightTemplate(
        id=data["id"],
        version=str(data["version"]),
        category=data["category"],
        display_name=data["display_name"],
        description=data.get("description", "").strip(),
        framing=TemplateFraming(
            role=framing_data.get("role", "").strip(),
            perspective=framing_data.get("perspective", "").strip(),
            tone=framing_data.get("tone", ""),
            tone_variants=framing_data.get("tone_variants", {}),
        ),
        reasoning_steps=data.get("reasoning_steps", []),
        metric_hints=data.get("metric_hints", {}),
        output=TemplateOutput(
            max_length_guidance=output_data.get("max_length_guidance", ""),
            must_include=output_data.get("must_include", []),
            never_include=output_data.get("never_include", []),
        ),
        guardrails=TemplateGuardrails(
            disclaimers=guardrails_data.get("disclaimers", []),
            escalation_triggers=guardrails_data.get("escalation_triggers", []),
        ),
        tags=data.get("tags", []),
    )
