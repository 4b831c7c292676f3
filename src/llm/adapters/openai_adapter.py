# src/llm/adapters/openai_adapter.py - v1
"""OpenAI chat completions adapter implementing BaseLLMClient.

Uses the official openai SDK. OPENAI_BASE_URL points it at any compatible
endpoint.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from medcache.llm.base_client import BaseLLMClient
from medcache.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseLLMClient):
    """OpenAI GPT adapter."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str = "",
        base_url: str = "",
        timeout_s: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._timeout_s = timeout_s
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init OpenAI client (only on first API call)."""
        if self.__client is None:
            import openai

            kwargs: dict[str, Any] = {
                "api_key": self._api_key or None,
                "timeout": self._timeout_s,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self.__client = openai.AsyncOpenAI(**kwargs)
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        t0 = time.monotonic()
        resp = await self._client.chat.completions.create(
            model=self._model,
            messages=oai_messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        logger.debug(
            "OpenAI completion: model=%s, latency=%dms, tokens=%s",
            self._model, latency, usage.total_tokens if usage else "n/a",
        )
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=resp.model or self._model,
            provider="openai",
            latency_ms=latency,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model
