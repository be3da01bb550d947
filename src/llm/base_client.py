# src/llm/base_client.py — v2
"""Abstract LLM client interface implemented by the provider adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod

from wcagverify.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified text-completion interface for all LLM providers.

    Adapters translate provider SDK failures into the verification error
    hierarchy (RateLimitError, InvocationTimeoutError, ...) so callers can
    classify them without importing any SDK.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier sent to the provider."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, openai)."""
