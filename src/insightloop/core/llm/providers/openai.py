"""OpenAI GPT provider."""

from __future__ import annotations

import time

from insightloop.core.llm.provider import ProviderError, ProviderFailureReason, ProviderResponse

_CAPACITY_STATUS_CODES = frozenset({503, 529})


class OpenAIProvider:
    """OpenAI provider using the OpenAI SDK."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o") -> None:
        import openai

        self._sdk = openai
        self.client = openai.AsyncOpenAI(api_key=api_key)
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
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
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

        choice = response.choices[0] if response.choices else None
        content = choice.message.content or "" if choice else ""
        usage = response.usage
        return ProviderResponse(
            content=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
