"""Anthropic Claude provider."""

from __future__ import annotations

import time

from insightloop.core.llm.provider import ProviderError, ProviderFailureReason, ProviderResponse

# 529 is Anthropic's "overloaded" status.
_CAPACITY_STATUS_CODES = frozenset({503, 529})


class AnthropicProvider:
    """Claude provider using the Anthropic SDK."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        import anthropic

        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        sdk = self._sdk
        start = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=[{"role": "user", "content": user_message}],
            )
        except sdk.APITimeoutError as exc:
            raise ProviderError(
                str(exc), reason=ProviderFailureReason.TIMEOUT, provider=self.name
            ) from exc
        except sdk.RateLimitError as exc:
            raise ProviderError(
                str(exc), reason=ProviderFailureReason.RATE_LIMIT, provider=self.name
            ) from exc
        except sdk.APIStatusError as exc:
            reason = (
                ProviderFailureReason.CAPACITY
                if exc.status_code in _CAPACITY_STATUS_CODES
                else ProviderFailureReason.ERROR
            )
            raise ProviderError(str(exc), reason=reason, provider=self.name) from exc
        except sdk.APIError as exc:
            raise ProviderError(
                str(exc), reason=ProviderFailureReason.ERROR, provider=self.name
            ) from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        content = response.content[0].text if response.content else ""
        return ProviderResponse(
            content=content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
