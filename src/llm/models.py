# src/llm/models.py - v1
"""Chat types exchanged with the LLM: Message in, LLMResponse out."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class Message(BaseModel):
    """One prompt turn. The system prompt travels separately."""

    role: Literal["user", "assistant"]
    content: str


class LLMResponse(BaseModel):
    """Completion text plus the usage figures stored on a CacheEntry."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    provider: str
    latency_ms: int

    @property
    def total_tokens(self) -> int:
        """Tokens billed for the call; recorded as CacheEntry.tokens_used."""
        return self.input_tokens + self.output_tokens
