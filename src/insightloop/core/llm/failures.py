"""Deterministic classification of provider exceptions into failure reasons."""

from __future__ import annotations

import asyncio

from insightloop.core.llm.provider import ProviderError, ProviderFailureReason

_TIMEOUT_PATTERNS: tuple[str, ...] = (
    "timed out",
    "timeout",
    "deadline exceeded",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "rate_limit",
    "429",
    "quota",
    "try again later",
)
_CAPACITY_PATTERNS: tuple[str, ...] = (
    "overloaded",
    "capacity",
    "temporarily unavailable",
    "service unavailable",
    "503",
    "529",
)


def classify_failure(exc: BaseException) -> ProviderFailureReason:
    """Map an arbitrary provider exception to a ProviderFailureReason.

    Typed errors keep their own reason; timeouts are recognized by type;
    everything else is matched against its message text.
    """
    if isinstance(exc, ProviderError):
        return exc.reason
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ProviderFailureReason.TIMEOUT

    haystack = f"{type(exc).__name__} {exc}".lower()
    if _first_match(haystack, _RATE_LIMIT_PATTERNS):
        return ProviderFailureReason.RATE_LIMIT
    if _first_match(haystack, _CAPACITY_PATTERNS):
        return ProviderFailureReason.CAPACITY
    if _first_match(haystack, _TIMEOUT_PATTERNS):
        return ProviderFailureReason.TIMEOUT
    return ProviderFailureReason.ERROR


def as_provider_error(exc: BaseException, provider: str) -> ProviderError:
    """Wrap any exception as a ProviderError attributed to ``provider``."""
    if isinstance(exc, ProviderError):
        if not exc.provider:
            exc.provider = provider
        return exc
    message = str(exc) or type(exc).__name__
    return ProviderError(message, reason=classify_failure(exc), provider=provider)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
