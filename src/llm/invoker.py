# src/llm/invoker.py — v1
"""AI invoker: one prompt in, one InvocationResult out.

The batch executor only depends on BaseAIInvoker. LLMInvoker adapts any
BaseLLMClient, bounding each call with a timeout and turning provider
exceptions into failed results with a classified ErrorType.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from wcagverify.core.models import ErrorType, InvocationResult
from wcagverify.llm.base_client import BaseLLMClient
from wcagverify.llm.models import Message
from wcagverify.llm.retry import ErrorClassifier

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert web accessibility auditor. "
    "Respond only with valid JSON matching the requested format."
)


class BaseAIInvoker(ABC):
    """Contract for the AI collaborator used by the batch executor."""

    @abstractmethod
    async def invoke(self, prompt: str, timeout_ms: int) -> InvocationResult:
        """Run one prompt. Failures should be returned, not raised."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier recorded with cached outcomes."""


class LLMInvoker(BaseAIInvoker):
    """BaseAIInvoker backed by a provider adapter."""

    def __init__(
        self,
        client: BaseLLMClient,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 8192,
        temperature: float = 0.0,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self._client = client
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._classifier = classifier or ErrorClassifier()

    @property
    def model_name(self) -> str:
        return self._client.model_name

    @property
    def client(self) -> BaseLLMClient:
        return self._client

    async def invoke(self, prompt: str, timeout_ms: int) -> InvocationResult:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.complete(
                    messages=[Message(role="user", content=prompt)],
                    system=self._system_prompt,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return InvocationResult(
                success=False,
                error=f"Request timed out after {timeout_ms}ms",
                error_type=ErrorType.TIMEOUT,
                duration_ms=self._elapsed_ms(start),
            )
        except Exception as e:
            error_type = self._classifier.classify_exception(e)
            logger.debug(
                "%s invocation failed (%s): %s",
                self._client.provider_name, error_type.value, e,
            )
            return InvocationResult(
                success=False,
                error=str(e) or type(e).__name__,
                error_type=error_type,
                duration_ms=self._elapsed_ms(start),
            )

        if not response.content.strip():
            return InvocationResult(
                success=False,
                error="Empty response from model",
                error_type=ErrorType.MALFORMED_RESPONSE,
                duration_ms=self._elapsed_ms(start),
            )
        logger.debug(
            "%s responded in %dms (%d input, %d output tokens)",
            response.model, response.latency_ms,
            response.input_tokens, response.output_tokens,
        )
        return InvocationResult(
            success=True,
            output=response.content,
            duration_ms=self._elapsed_ms(start),
        )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
