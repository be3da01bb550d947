# tests/unit/llm/test_unit_client_factory.py — v1
"""Tests for llm/client_factory.py — provider registry and settings wiring."""

from __future__ import annotations

import pytest

from wcagverify.config.settings import Settings
from wcagverify.llm.adapters.anthropic_adapter import AnthropicAdapter
from wcagverify.llm.adapters.openai_adapter import OpenAIAdapter
from wcagverify.llm import client_factory
from wcagverify.llm.client_factory import (
    UnsupportedProviderError,
    create_llm_client,
    create_llm_client_from_settings,
    register_provider,
)


class TestCreateLLMClient:
    def test_anthropic(self):
        client = create_llm_client("anthropic", "claude-x")
        assert isinstance(client, AnthropicAdapter)
        assert client.model_name == "claude-x"
        assert client.provider_name == "anthropic"

    def test_openai(self):
        client = create_llm_client("openai", "gpt-x", api_key="k")
        assert isinstance(client, OpenAIAdapter)
        assert client.model_name == "gpt-x"

    def test_unsupported(self):
        with pytest.raises(UnsupportedProviderError, match="Available"):
            create_llm_client("nope", "m")

    def test_settings_supply_key_and_limit(self):
        settings = Settings(
            _env_file=None, openai_api_key="sk-test", llm_max_tokens=1234
        )
        client = create_llm_client("openai", "gpt-x", settings)
        assert client._api_key == "sk-test"
        assert client._max_tokens_default == 1234

    def test_from_settings(self):
        settings = Settings(
            _env_file=None, llm_provider="anthropic", llm_model="claude-y",
            anthropic_api_key="ak",
        )
        client = create_llm_client_from_settings(settings)
        assert isinstance(client, AnthropicAdapter)
        assert client.model_name == "claude-y"

    def test_register_provider(self, monkeypatch):
        monkeypatch.setattr(
            client_factory, "_PROVIDER_REGISTRY", dict(client_factory._PROVIDER_REGISTRY)
        )
        register_provider(
            "azure-openai", "wcagverify.llm.adapters.openai_adapter.OpenAIAdapter"
        )
        client = create_llm_client("azure-openai", "gpt-az", api_key="k")
        assert isinstance(client, OpenAIAdapter)
        assert client.model_name == "gpt-az"
