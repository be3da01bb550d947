# src/llm/adapters/anthropic_adapter.py — v3
"""Anthropic Claude adapter implementing BaseLLMClient.

Uses the official anthropic SDK, imported lazily so the package works
without it when another provider is configured.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from wcagverify.llm.base_client import BaseLLMClient
from wcagverify.llm.models import LLMResponse, Message
from wcagverify.verification.errors import (
    InvocationTimeoutError,
    RateLimitError,
    UnknownInvocationError,
)

logger = logging.getLogger(__name__)

# HTTP 529: API overloaded, handled like a rate limit.
_OVERLOADED_STATUS = 529


class AnthropicAdapter(BaseLLMClient):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str | None = None,
        max_tokens_default: int = 8192,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens_default = max_tokens_default
        self.__client = None

    @property
    def _client(self):
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            try:
                import anthropic
            except ImportError as e:
                raise ImportError(
                    "anthropic package required: pip install wcagverify[anthropic]"
                ) from e
            # SDK retries are disabled: backoff is owned by the batch executor.
            self.__client = anthropic.AsyncAnthropic(
                api_key=self._api_key or "", max_retries=0
            )
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Text completion via the Anthropic Messages API."""
        client = self._client
        import anthropic

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens_default,
            "temperature": temperature,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if system:
            kwargs["system"] = system

        start = time.monotonic()
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise RateLimitError(f"Anthropic rate limit: {e}") from e
        except anthropic.APITimeoutError as e:
            raise InvocationTimeoutError(f"Anthropic request timeout: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code == _OVERLOADED_STATUS:
                raise RateLimitError(f"Anthropic overloaded (rate limit): {e}") from e
            raise UnknownInvocationError(
                f"Anthropic API error {e.status_code}: {e}"
            ) from e
        except anthropic.APIError as e:
            raise UnknownInvocationError(f"Anthropic API error: {e}") from e
        latency_ms = int((time.monotonic() - start) * 1000)

        return LLMResponse(
            content=self._extract_text(response),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            provider="anthropic",
            latency_ms=latency_ms,
            stop_reason=getattr(response, "stop_reason", None),
            raw_response=response,
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @staticmethod
    def _extract_text(response: Any) -> str:
        """Concatenate the text blocks of a Messages API response."""
        return "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
