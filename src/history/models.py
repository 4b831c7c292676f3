# src/history/models.py - v1
"""Consultation history record."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from medcache.core.clock import utc

ConsultationSource = Literal["cache", "api"]


class ConsultationHistoryRecord(BaseModel):
    """Who asked for which combination, when, and where the answer came from.

    Append-only: records are never updated or deleted by normal operation.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    combination_id: str
    patient_ref: str | None = None
    session_id: str
    source: ConsultationSource
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, v: datetime) -> datetime:  # noqa: N805
        return utc(v)
