# src/catalog/base_catalog_store.py - v1
"""Abstract medication catalog store interface.

normalized_name is a unique key. Every mutation is a single-row atomic
operation: insert, or a sighting update that increments the counter and
backfills null attributes in one statement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from medcache.catalog.models import MedicationCatalogEntry
from medcache.core.models import StructuredAttributes


class BaseCatalogStore(ABC):
    """Unified interface for catalog storage backends."""

    @abstractmethod
    async def find(
        self, normalized_name: str, display_name: str | None = None
    ) -> MedicationCatalogEntry | None:
        """Find by normalized key, falling back to a case-insensitive display name match."""

    @abstractmethod
    async def insert(self, entry: MedicationCatalogEntry) -> MedicationCatalogEntry:
        """Create a new row.

        Raises:
            CatalogUpsertRaceError: If the normalized name already exists.
        """

    @abstractmethod
    async def record_sighting(
        self,
        entry_id: str,
        related_analysis_id: str | None,
        attributes: StructuredAttributes | None,
        seen_at: datetime,
    ) -> MedicationCatalogEntry | None:
        """Count one more consultation of an existing row.

        Increments consultation_count, sets last_consulted_at, appends
        related_analysis_id unless already present, and fills only the
        attribute fields that are still null. Returns None if the row is gone.
        """

    @abstractmethod
    async def list_entries(self, limit: int = 100) -> list[MedicationCatalogEntry]:
        """Most consulted medications first."""

    def close(self) -> None:
        """Release backend resources."""
