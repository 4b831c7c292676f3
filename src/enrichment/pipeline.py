# src/enrichment/pipeline.py - v1
"""Medication enrichment: capture every consulted medication in the catalog.

Runs after an analysis has been served. Each medication is processed on its
own; one failure never stops the others and nothing here is allowed to reach
the caller of the analysis request.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from medcache.catalog.base_catalog_store import BaseCatalogStore
from medcache.catalog.models import MedicationCatalogEntry
from medcache.catalog.normalizer import normalize_medication_name
from medcache.core.clock import Clock, utcnow
from medcache.core.errors import CatalogUpsertRaceError, EnrichmentError, StoreUnavailableError
from medcache.core.models import MedicationRef, StructuredAttributes
from medcache.core.retry import RetryPolicy, with_retry
from medcache.enrichment.extractor import StructuredExtractionProvider

logger = logging.getLogger(__name__)

EnrichmentAction = Literal["created", "updated"]


class EnrichmentItemResult(BaseModel):
    """Outcome for one medication."""

    medication: MedicationRef
    success: bool
    action: EnrichmentAction | None = None
    entry: MedicationCatalogEntry | None = None
    error: str | None = None


class EnrichmentReport(BaseModel):
    """Outcome of one enrich() call."""

    total_count: int
    processed_count: int
    results: list[EnrichmentItemResult] = Field(default_factory=list)
    attributes_extracted: bool = False

    @property
    def failed_count(self) -> int:
        return self.total_count - self.processed_count


class MedicationEnricher:
    """Creates or updates one catalog row per consulted medication."""

    def __init__(
        self,
        store: BaseCatalogStore,
        extractor: StructuredExtractionProvider | None = None,
        extraction_enabled: bool = True,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._extraction_enabled = extraction_enabled and extractor is not None
        self._retry_policy = retry_policy
        self._clock = clock

    async def enrich(
        self,
        medications: list[MedicationRef],
        related_analysis_id: str | None = None,
    ) -> EnrichmentReport:
        """Record a sighting of every medication in *medications*.

        Args:
            medications: Medications of the analysis just served.
            related_analysis_id: CacheEntry id to link, when there is one.

        Returns:
            EnrichmentReport with one result per medication.
        """
        attributes = await self._extract(medications)
        results: list[EnrichmentItemResult] = []

        for medication, attrs in zip(medications, attributes):
            try:
                action, entry = await self._process(medication, attrs, related_analysis_id)
            except (EnrichmentError, StoreUnavailableError) as e:
                logger.warning("Enrichment failed for %s: %s", medication.label, e)
                results.append(
                    EnrichmentItemResult(medication=medication, success=False, error=str(e))
                )
                continue
            results.append(
                EnrichmentItemResult(
                    medication=medication, success=True, action=action, entry=entry
                )
            )

        report = EnrichmentReport(
            total_count=len(medications),
            processed_count=sum(1 for r in results if r.success),
            results=results,
            attributes_extracted=any(a is not None for a in attributes),
        )
        logger.info(
            "Enrichment processed %d/%d medication(s)",
            report.processed_count, report.total_count,
        )
        return report

    async def _extract(
        self, medications: list[MedicationRef]
    ) -> list[StructuredAttributes | None]:
        empty: list[StructuredAttributes | None] = [None] * len(medications)
        if not self._extraction_enabled or not medications:
            return empty
        try:
            extracted = await self._extractor.extract_attributes(medications)
        except Exception as e:
            logger.warning("Structured extraction failed, continuing without attributes: %s", e)
            return empty
        if len(extracted) != len(medications):
            logger.warning(
                "Extractor returned %d result(s) for %d medication(s), ignoring",
                len(extracted), len(medications),
            )
            return empty
        return list(extracted)

    async def _process(
        self,
        medication: MedicationRef,
        attributes: StructuredAttributes | None,
        related_analysis_id: str | None,
    ) -> tuple[EnrichmentAction, MedicationCatalogEntry]:
        display_name = medication.name.strip()
        normalized = normalize_medication_name(display_name)
        if not normalized:
            raise EnrichmentError(display_name, "name is empty after normalization")

        now = self._clock()
        existing = await with_retry(
            self._store.find,
            normalized,
            display_name,
            operation="catalog_find",
            policy=self._retry_policy,
        )
        if existing is not None:
            return "updated", await self._sighting(
                existing.id, medication, attributes, related_analysis_id, now
            )

        entry = MedicationCatalogEntry(
            normalized_name=normalized,
            display_name=display_name,
            dosage=medication.dosage.strip() or None,
            first_consulted_at=now,
            last_consulted_at=now,
            attributes=attributes or StructuredAttributes(),
            related_analysis_ids=[related_analysis_id] if related_analysis_id else [],
        )
        try:
            created = await with_retry(
                self._store.insert, entry, operation="catalog_insert", policy=self._retry_policy
            )
        except CatalogUpsertRaceError:
            logger.debug("Catalog insert race for %r, updating the winning row", normalized)
            winner = await with_retry(
                self._store.find,
                normalized,
                display_name,
                operation="catalog_find",
                policy=self._retry_policy,
            )
            if winner is None:
                raise EnrichmentError(display_name, "catalog row vanished after insert race")
            return "updated", await self._sighting(
                winner.id, medication, attributes, related_analysis_id, now
            )
        return "created", created

    async def _sighting(
        self,
        entry_id: str,
        medication: MedicationRef,
        attributes: StructuredAttributes | None,
        related_analysis_id: str | None,
        now: datetime,
    ) -> MedicationCatalogEntry:
        updated = await with_retry(
            self._store.record_sighting,
            entry_id,
            related_analysis_id,
            attributes,
            now,
            operation="catalog_update",
            policy=self._retry_policy,
        )
        if updated is None:
            raise EnrichmentError(medication.name.strip(), "catalog row disappeared during update")
        return updated

    def close(self) -> None:
        self._store.close()
