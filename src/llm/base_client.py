# src/llm/base_client.py - v1
"""Provider-neutral chat completion interface.

The analysis and extraction providers only depend on this class, so tests
substitute an AsyncMock and never reach the network.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from medcache.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Async chat completion client."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Return one completion for *messages* under *system*.

        Transport and API errors propagate unchanged; callers wrap them in
        ProviderFailureError.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier recorded in logs."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name sent with each request."""
