# src/analysis/models.py - v1
"""Analysis provider result types."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AnalysisResult(BaseModel):
    """Text produced by an analysis provider plus display metadata."""

    analysis_text: str
    tokens_used: int | None = Field(default=None, ge=0)
    model: str | None = None
    duration_ms: int | None = Field(default=None, ge=0)
