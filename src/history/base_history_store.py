# src/history/base_history_store.py - v1
"""Abstract consultation history store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from medcache.history.models import ConsultationHistoryRecord


class BaseHistoryStore(ABC):
    """Append-only storage for consultation history records."""

    @abstractmethod
    async def append(self, record: ConsultationHistoryRecord) -> None:
        """Persist one record."""

    @abstractmethod
    async def list_records(
        self,
        combination_id: str | None = None,
        session_id: str | None = None,
        limit: int = 50,
    ) -> list[ConsultationHistoryRecord]:
        """Most recent records first, optionally filtered."""

    def close(self) -> None:
        """Release backend resources."""
