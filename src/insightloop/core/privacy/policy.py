"""Privacy policy for controlling what persona data is exposed to providers.

Persona-scoped insights need some context about the person, but providers
should see as little of it as the configured mode allows:

- strict: coarse age band, activity level and language only
- standard: adds gender, country and declared conditions
- explicit: everything the persona carries except its identifier

The persona identifier never enters a prompt in any mode.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping

PrivacyMode = Literal["strict", "standard", "explicit"]


def _age_band(age: Any) -> str | None:
    if not isinstance(age, (int, float)) or isinstance(age, bool) or age < 0:
        return None
    lower = int(age) // 10 * 10
    return f"{lower}-{lower + 9}"


def _drop_empty(obj: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in obj.items() if v not in (None, "", [], {})}


def build_persona_context(
    persona: Mapping[str, Any],
    *,
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Build the minimized persona context rendered into a provider prompt."""
    preferences = persona.get("preferences") or {}
    cultural = persona.get("cultural_context") or {}

    base: dict[str, Any] = {
        "age_band": _age_band(persona.get("age")),
        "activity_level": preferences.get("activity_level"),
        "language": cultural.get("language"),
    }

    if privacy_mode == "strict":
        return _drop_empty(base)

    if privacy_mode == "standard":
        base.update(
            {
                "gender": persona.get("gender"),
                "country": cultural.get("country"),
                "conditions": list(persona.get("conditions") or []),
            }
        )
        return _drop_empty(base)

    # explicit
    explicit_ctx = {k: v for k, v in persona.items() if k != "id"}
    return _drop_empty(explicit_ctx)
