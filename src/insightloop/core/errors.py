"""Error taxonomy shared by the insight engine and the feedback store."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from insightloop.core.llm.provider import ProviderError


class InsightLoopError(Exception):
    """Base exception for InsightLoop errors."""


class ValidationError(InsightLoopError, ValueError):
    """A request or payload is malformed. Never retried."""


class NotFoundError(InsightLoopError, LookupError):
    """A referenced record does not exist."""


class ExhaustedProvidersError(InsightLoopError):
    """Every configured provider failed for a single request."""

    def __init__(self, failures: list[ProviderError]) -> None:
        self.failures = list(failures)
        if self.failures:
            detail = "; ".join(
                f"{f.provider}: {f.reason.value} ({f})" for f in self.failures
            )
        else:
            detail = "no providers configured"
        super().__init__(f"All insight providers failed: {detail}")
