# src/llm/adapters/openai_adapter.py — v2
"""OpenAI GPT adapter implementing BaseLLMClient.

Uses the official openai SDK with JSON-object response mode, since every
verification prompt asks for a single JSON document.
"""

from __future__ import annotations

import time
from typing import Any

from wcagverify.llm.base_client import BaseLLMClient
from wcagverify.llm.models import LLMResponse, Message
from wcagverify.verification.errors import (
    InvocationTimeoutError,
    RateLimitError,
    UnknownInvocationError,
)


class OpenAIAdapter(BaseLLMClient):
    """OpenAI GPT adapter."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str = "",
        max_tokens_default: int = 8192,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._max_tokens_default = max_tokens_default
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError(
                    "openai package required: pip install wcagverify[openai]"
                ) from e
            self._client = openai.AsyncOpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
    ) -> LLMResponse:
        client = self._get_client()
        import openai

        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        t0 = time.monotonic()
        try:
            resp = await client.chat.completions.create(
                model=self._model,
                messages=oai_messages,
                max_tokens=max_tokens or self._max_tokens_default,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit: {e}") from e
        except openai.APITimeoutError as e:
            raise InvocationTimeoutError(f"OpenAI request timeout: {e}") from e
        except openai.APIError as e:
            raise UnknownInvocationError(f"OpenAI API error: {e}") from e
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
            latency_ms=latency,
            stop_reason=choice.finish_reason,
            raw_response=resp,
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "openai"
