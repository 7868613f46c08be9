"""Mock LLM provider for testing and key-less local runs."""

from __future__ import annotations

import asyncio
import json

from insightloop.core.llm.provider import ProviderError, ProviderFailureReason, ProviderResponse

DEFAULT_MOCK_CONTENT = json.dumps({
    "type": "success",
    "message": "Your recent metrics are within a healthy range. Keep up the routine.",
    "action": {"type": "suggestion", "message": "Review these numbers again next week."},
})


class MockProvider:
    """Mock provider: returns a canned response, optionally after a delay or failure.

    ``failures`` is consumed one entry per call before any success is returned,
    so ``MockProvider(failures=[ProviderFailureReason.RATE_LIMIT])`` fails once
    and then succeeds. ``always_fail`` makes every call fail with that reason.
    """

    def __init__(
        self,
        response_content: str = DEFAULT_MOCK_CONTENT,
        *,
        delay: float = 0.0,
        failures: list[ProviderFailureReason | Exception] | None = None,
        always_fail: ProviderFailureReason | None = None,
        name: str = "mock",
    ) -> None:
        self.response_content = response_content
        self.delay = delay
        self.failures = list(failures or [])
        self.always_fail = always_fail
        self.name = name
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.always_fail is not None:
            raise ProviderError(
                f"mock provider failure: {self.always_fail.value}",
                reason=self.always_fail,
                provider=self.name,
            )
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            raise ProviderError(
                f"mock provider failure: {failure.value}",
                reason=failure,
                provider=self.name,
            )

        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=0.0,
        )
