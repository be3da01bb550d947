# src/llm/client_factory.py — v3
"""Factory: instantiate an LLM client from a provider name.

Adapters are registered by class path and imported lazily, so only the SDK
of the configured provider has to be installed.
"""

from __future__ import annotations

import importlib
import logging

from wcagverify.config.settings import Settings
from wcagverify.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

# Registry of provider name → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "anthropic": "wcagverify.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "openai": "wcagverify.llm.adapters.openai_adapter.OpenAIAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the adapter registered for ``provider``.

    Args:
        provider: Provider identifier (anthropic, openai).
        model: Model name (e.g. claude-sonnet-4-20250514).
        settings: Application settings, used for the API key and token limit.
        **kwargs: Additional adapter arguments; they override settings.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])

    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model
    if settings is not None:
        if provider == "anthropic":
            init_kwargs.setdefault("api_key", settings.anthropic_api_key)
        elif provider == "openai":
            init_kwargs.setdefault("api_key", settings.openai_api_key)
        init_kwargs.setdefault("max_tokens_default", settings.llm_max_tokens)

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(**init_kwargs)


def create_llm_client_from_settings(settings: Settings) -> BaseLLMClient:
    """Create the client configured by ``LLM_PROVIDER`` / ``LLM_MODEL``."""
    return create_llm_client(settings.llm_provider, settings.llm_model, settings)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom adapter class path implementing BaseLLMClient."""
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered LLM provider: %s → %s", name, class_path)


def _import_class(class_path: str) -> type:
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
