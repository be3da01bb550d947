# tests/unit/llm/test_unit_adapters.py — v1
"""Tests for llm/adapters — mocked SDK clients, no network."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from wcagverify.llm.adapters.anthropic_adapter import AnthropicAdapter
from wcagverify.llm.adapters.openai_adapter import OpenAIAdapter
from wcagverify.llm.models import Message
from wcagverify.verification.errors import RateLimitError, UnknownInvocationError


def _anthropic_response(*texts: str):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=120, output_tokens=30),
        model="claude-test",
        stop_reason="end_turn",
    )


class TestAnthropicAdapter:
    def test_import_error_without_sdk(self):
        saved = sys.modules.get("anthropic")
        sys.modules["anthropic"] = None  # type: ignore[assignment]
        try:
            with pytest.raises(ImportError, match="anthropic"):
                AnthropicAdapter(api_key="k")._client
        finally:
            if saved is not None:
                sys.modules["anthropic"] = saved
            else:
                sys.modules.pop("anthropic", None)

    def test_extract_text_skips_non_text_blocks(self):
        response = _anthropic_response("{\"a\":", " 1}")
        response.content.insert(1, SimpleNamespace(type="tool_use", input={}))
        assert AnthropicAdapter._extract_text(response) == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_complete(self):
        pytest.importorskip("anthropic")
        adapter = AnthropicAdapter(model="claude-test", api_key="k", max_tokens_default=2048)
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=_anthropic_response("ok"))
        adapter._AnthropicAdapter__client = mock_client

        response = await adapter.complete(
            [Message(role="user", content="hi")], system="be strict"
        )
        assert response.content == "ok"
        assert response.total_tokens == 150
        assert response.provider == "anthropic"
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be strict"
        assert kwargs["max_tokens"] == 2048
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        (429, RateLimitError),
        (529, RateLimitError),
        (500, UnknownInvocationError),
    ])
    async def test_error_mapping(self, status, expected):
        anthropic = pytest.importorskip("anthropic")
        import httpx

        response = httpx.Response(
            status, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        error_cls = anthropic.RateLimitError if status == 429 else anthropic.APIStatusError
        adapter = AnthropicAdapter(api_key="k")
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(
            side_effect=error_cls("failure", response=response, body=None)
        )
        adapter._AnthropicAdapter__client = mock_client
        with pytest.raises(expected):
            await adapter.complete([Message(role="user", content="hi")])


class TestOpenAIAdapter:
    def test_import_error_without_sdk(self):
        saved = sys.modules.get("openai")
        sys.modules["openai"] = None  # type: ignore[assignment]
        try:
            with pytest.raises(ImportError, match="openai"):
                OpenAIAdapter(api_key="k")._get_client()
        finally:
            if saved is not None:
                sys.modules["openai"] = saved
            else:
                sys.modules.pop("openai", None)

    @pytest.mark.asyncio
    async def test_complete(self):
        pytest.importorskip("openai")
        adapter = OpenAIAdapter(model="gpt-test", api_key="k")
        resp = SimpleNamespace(
            choices=[SimpleNamespace(
                message=SimpleNamespace(content='{"criteriaVerifications": []}'),
                finish_reason="stop",
            )],
            usage=SimpleNamespace(prompt_tokens=80, completion_tokens=10),
        )
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=resp)
        adapter._client = mock_client

        response = await adapter.complete(
            [Message(role="user", content="hi")], system="sys"
        )
        assert response.content == '{"criteriaVerifications": []}'
        assert response.total_tokens == 90
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["response_format"] == {"type": "json_object"}
