"""Data models for insight prompt templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_CATEGORY = "*"


@dataclass
class TemplateFraming:
    """How the provider should present itself for this category."""

    role: str = ""
    perspective: str = ""
    tone: str = ""
    tone_variants: dict[str, str] = field(default_factory=dict)


@dataclass
class TemplateOutput:
    """Controls the shape and content of the generated insight."""

    max_length_guidance: str = ""
    must_include: list[str] = field(default_factory=list)
    never_include: list[str] = field(default_factory=list)


@dataclass
class TemplateGuardrails:
    """Safety boundaries for the provider."""

    disclaimers: list[str] = field(default_factory=list)
    escalation_triggers: list[str] = field(default_factory=list)


@dataclass
class InsightTemplate:
    """A prompt template for one insight category (or the ``*`` default)."""

    id: str
    version: str
    category: str
    display_name: str
    description: str
    framing: TemplateFraming
    reasoning_steps: list[str] = field(default_factory=list)
    metric_hints: dict[str, str] = field(default_factory=dict)
    output: TemplateOutput = field(default_factory=TemplateOutput)
    guardrails: TemplateGuardrails = field(default_factory=TemplateGuardrails)
    tags: list[str] = field(default_factory=list)


@dataclass
class AssembledPrompt:
    """The final prompt sent to a provider after template application."""

    system_message: str
    user_message: str
    metadata: dict[str, Any] = field(default_factory=dict)
