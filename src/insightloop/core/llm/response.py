"""Response parsing and guardrail enforcement for provider output."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

INSIGHT_TYPES = ("success", "warning", "error")
ACTION_TYPES = ("suggestion", "action")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

# Identifiers that must never reach the dashboard.
_IDENTIFIER_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[REDACTED-SSN]"),
    (re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE), "[REDACTED-EMAIL]"),
    (re.compile(r"\b\d{10,16}\b"), "[REDACTED-ID]"),
)

_PROHIBITED_PHRASES: dict[str, tuple[str, ...]] = {
    "making medical diagnoses": (
        "you have been diagnosed",
        "you are suffering from",
        "you have a condition",
    ),
    "prescribing treatments": (
        "take this medication",
        "stop taking your medication",
        "increase your dose",
    ),
    "making disease predictions": (
        "you will develop",
        "this will lead to",
        "guaranteed to cure",
    ),
}


@dataclass
class ParsedInsight:
    """Insight fields extracted from a provider's raw text."""

    type: str
    message: str
    action: dict[str, str] | None = None
    flags: list[str] = field(default_factory=list)


def parse_insight_content(content: str) -> ParsedInsight:
    """Extract type, message and action from provider output.

    Providers are asked for a JSON object, but plain prose is accepted too:
    the whole text becomes the message and the type defaults to "success".
    """
    text = content.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    payload: Any = None
    if text.startswith("{"):
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            payload = None

    if not isinstance(payload, dict) or not isinstance(payload.get("message"), str):
        return ParsedInsight(type="success", message=text, flags=["unstructured_response"])

    flags: list[str] = []
    insight_type = payload.get("type")
    if insight_type not in INSIGHT_TYPES:
        flags.append(f"unknown_insight_type: {insight_type!r}")
        insight_type = "success"

    return ParsedInsight(
        type=insight_type,
        message=payload["message"].strip(),
        action=_parse_action(payload.get("action")),
        flags=flags,
    )


def _parse_action(raw: Any) -> dict[str, str] | None:
    if not isinstance(raw, dict):
        return None
    message = raw.get("message")
    if not isinstance(message, str) or not message.strip():
        return None
    action_type = raw.get("type")
    if action_type not in ACTION_TYPES:
        action_type = "suggestion"
    return {"type": action_type, "message": message.strip()}


def redact_identifiers(text: str) -> str:
    """Replace identifier-like substrings (SSNs, emails, long numeric IDs)."""
    for pattern, replacement in _IDENTIFIER_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def enforce_guardrails(text: str) -> tuple[str, list[str]]:
    """Redact sentences that diagnose, prescribe, or predict disease.

    Returns: (possibly modified text, flags)
    """
    flags: list[str] = []
    sanitized = text
    lowered = text.lower()
    for action, phrases in _PROHIBITED_PHRASES.items():
        for phrase in phrases:
            if phrase not in lowered:
                continue
            flags.append(f"prohibited_pattern_detected: {action} ('{phrase}')")
            pattern = re.compile(
                r"[^.!?\n]*" + re.escape(phrase) + r"[^.!?\n]*[.!?]?",
                re.IGNORECASE,
            )
            sanitized = pattern.sub("[Removed: contains prohibited health guidance]", sanitized)

    if flags:
        logger.warning("Guardrails enforced on insight text: %s", flags)
    return sanitized, flags
