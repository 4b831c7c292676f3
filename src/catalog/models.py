# src/catalog/models.py - v1
"""Medication catalog models."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from medcache.core.clock import utc
from medcache.core.models import StructuredAttributes


class MedicationCatalogEntry(BaseModel):
    """One row per distinct normalized medication name.

    Created on first sighting, updated on every later one, never deleted by
    normal operation.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    normalized_name: str
    display_name: str
    dosage: str | None = None
    consultation_count: int = Field(default=1, ge=1)
    first_consulted_at: datetime
    last_consulted_at: datetime
    attributes: StructuredAttributes = Field(default_factory=StructuredAttributes)
    related_analysis_ids: list[str] = Field(default_factory=list)

    @field_validator("first_consulted_at", "last_consulted_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:  # noqa: N805
        return utc(v)
