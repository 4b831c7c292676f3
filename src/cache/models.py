# src/cache/models.py - v1
"""Cache domain models: CacheEntry, AnalysisOutcome, CacheStats."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from medcache.core.clock import utc
from medcache.core.models import MedicationRef

SECONDS_PER_DAY = 86_400


class CacheEntry(BaseModel):
    """One cached analysis for a specific medication combination.

    analysis_text, medications and created_at are immutable once written;
    only consultation_count changes, and only through the store.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    fingerprint: str
    medications: list[MedicationRef]
    analysis_text: str
    consultation_count: int = Field(default=1, ge=1)
    created_at: datetime
    tokens_used: int | None = None
    model_used: str | None = None
    analysis_duration_ms: int | None = None

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, v: datetime) -> datetime:  # noqa: N805
        return utc(v)

    def age(self, now: datetime) -> timedelta:
        return utc(now) - self.created_at

    def age_in_days(self, now: datetime) -> int:
        """Whole days since creation, floored."""
        return int(self.age(now).total_seconds() // SECONDS_PER_DAY)

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        """Expired strictly after *ttl*; an entry exactly *ttl* old is still fresh."""
        return self.age(now) > ttl


class AnalysisOutcome(BaseModel):
    """What get_or_compute hands back to the caller."""

    analysis_text: str
    served_from: Literal["cache", "api"]
    age_in_days: int = 0
    fingerprint: str
    combination_id: str | None = None
    consultation_count: int | None = None
    tokens_used: int | None = None
    model_used: str | None = None
    duration_ms: int | None = None


class TopCombination(BaseModel):
    medications: list[MedicationRef]
    consultation_count: int


class CacheStats(BaseModel):
    """Aggregate cache usage figures."""

    total_combinations: int = 0
    total_consultations: int = 0
    total_tokens_saved: int = 0
    average_consultations_per_combination: float = 0.0
    top_combinations: list[TopCombination] = Field(default_factory=list)
    cache_hit_rate: float = 0.0

    @classmethod
    def from_entries(cls, entries: list[CacheEntry], top_n: int = 5) -> CacheStats:
        """Compute stats from a snapshot of cache entries.

        Tokens saved counts every consultation after the first as one avoided
        provider call of the size recorded for that entry.
        """
        total = len(entries)
        if total == 0:
            return cls()
        consultations = sum(e.consultation_count for e in entries)
        tokens_saved = sum(
            (e.consultation_count - 1) * (e.tokens_used or 0) for e in entries
        )
        top = sorted(entries, key=lambda e: e.consultation_count, reverse=True)[:top_n]
        return cls(
            total_combinations=total,
            total_consultations=consultations,
            total_tokens_saved=tokens_saved,
            average_consultations_per_combination=consultations / total,
            top_combinations=[
                TopCombination(
                    medications=e.medications, consultation_count=e.consultation_count
                )
                for e in top
            ],
            cache_hit_rate=(consultations - total) / consultations * 100,
        )
