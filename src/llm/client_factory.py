# src/llm/client_factory.py - v1
"""Factory: build the LLM client used for analysis and extraction."""

from __future__ import annotations

import logging

from medcache.config.settings import Settings
from medcache.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai",)


class UnsupportedProviderError(ValueError):
    """Raised when LLM_PROVIDER names a provider medcache cannot talk to."""


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
) -> BaseLLMClient:
    """Instantiate the adapter for *provider*.

    Args:
        provider: Provider identifier (only "openai").
        model: Model name (e.g. gpt-4o-mini).
        settings: Application settings supplying key, base URL and timeout.

    Raises:
        UnsupportedProviderError: If provider is not supported.
    """
    if provider != "openai":
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    from medcache.llm.adapters.openai_adapter import OpenAIAdapter

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    if settings is None:
        return OpenAIAdapter(model=model)
    return OpenAIAdapter(
        model=model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_s=settings.llm_timeout_s,
    )
