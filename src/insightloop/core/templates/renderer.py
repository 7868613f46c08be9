"""Template renderer: assembles insight templates into provider prompts."""

from __future__ import annotations

import json
from typing import Any, Mapping

from insightloop.core.llm.system_prompt import build_full_system_prompt
from insightloop.core.templates.models import AssembledPrompt, InsightTemplate


def render_insight_prompt(
    template: InsightTemplate,
    category: str,
    metrics: Mapping[str, float],
    persona_context: dict[str, Any] | None = None,
    tone_variant: str | None = None,
) -> AssembledPrompt:
    """Combine template + metrics (+ minimized persona context) into a complete prompt."""
    system_message = build_full_system_prompt(_build_system_message(template, tone_variant))
    user_message = _build_user_message(template, category, metrics, persona_context)

    effective_tone = tone_variant if tone_variant in template.framing.tone_variants else None
    return AssembledPrompt(
        system_message=system_message,
        user_message=user_message,
        metadata={
            "template_id": template.id,
            "template_version": template.version,
            "category": category,
            "tone": effective_tone or template.framing.tone,
            "persona_scoped": persona_context is not None,
        },
    )


def _build_system_message(template: InsightTemplate, tone_variant: str | None) -> str:
    parts: list[str] = []

    if template.framing.role:
        parts.append(f"## Your Role\n{template.framing.role}")
    if template.framing.perspective:
        parts.append(f"## Your Perspective\n{template.framing.perspective}")

    if tone_variant and tone_variant in template.framing.tone_variants:
        parts.append(f"## Communication Tone\n{template.framing.tone_variants[tone_variant]}")
    elif template.framing.tone:
        parts.append(f"## Communication Tone\n{template.framing.tone}")

    if template.reasoning_steps:
        steps_text = "\n".join(f"{i+1}. {step}" for i, step in enumerate(template.reasoning_steps))
        parts.append(f"## Reasoning Steps\nFollow these steps in order:\n{steps_text}")

    if template.output.max_length_guidance:
        parts.append(f"## Length\n{template.output.max_length_guidance}")

    if template.output.must_include:
        includes = "\n".join(f"- {item}" for item in template.output.must_include)
        parts.append(f"## Required Elements\nThe message MUST include:\n{includes}")

    if template.output.never_include:
        excludes = "\n".join(f"- {item}" for item in template.output.never_include)
        parts.append(f"## Prohibited Elements\nThe message must NEVER include:\n{excludes}")

    if template.guardrails.disclaimers:
        disclaimers = "\n".join(f"- {d}" for d in template.guardrails.disclaimers)
        parts.append(f"## Disclaimers\nInclude where appropriate:\n{disclaimers}")

    if template.guardrails.escalation_triggers:
        triggers = "\n".join(f"- {t}" for t in template.guardrails.escalation_triggers)
        parts.append(
            "## Escalation Triggers\n"
            "If any of these conditions are detected, use type \"error\" and "
            f"recommend the user seek professional help:\n{triggers}"
        )

    return "\n\n".join(parts)


def _build_user_message(
    template: InsightTemplate,
    category: str,
    metrics: Mapping[str, float],
    persona_context: dict[str, Any] | None,
) -> str:
    parts: list[str] = [f"## Insight Category\n{category}"]

    parts.append(
        f"## Metrics\n```json\n{json.dumps(dict(metrics), indent=2, sort_keys=True)}\n```"
    )

    hints = {name: template.metric_hints[name] for name in metrics if name in template.metric_hints}
    if hints:
        hint_lines = "\n".join(f"- {name}: {hint}" for name, hint in sorted(hints.items()))
        parts.append(f"## Metric Notes\n{hint_lines}")

    if persona_context:
        parts.append(
            f"## About The User\n```json\n{json.dumps(persona_context, indent=2, default=str)}\n```"
        )

    return "\n\n".join(parts)
