# src/service/interaction_cache.py - v1
"""Cache lookup/insert protocol for medication-combination analyses.

get_or_compute() is the single user-facing operation:
  1. Fingerprint the combination.
  2. Serve a fresh cache entry (count + 1, history "cache").
  3. Otherwise call the analysis provider.
  4. Insert; on a duplicate-fingerprint race, serve the winner as a hit.
  5. On a successful insert, record history "api".
  6. In every case, enrich the medication catalog in the background.

Store failures degrade to a forced miss or an uncached result. Only
InvalidInputError and ProviderFailureError reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Awaitable, Callable

from medcache.analysis.base_provider import AnalysisProvider
from medcache.analysis.models import AnalysisResult
from medcache.cache.base_cache_store import BaseCacheStore
from medcache.cache.fingerprint import compute_fingerprint, validate_medications
from medcache.cache.models import AnalysisOutcome, CacheEntry, CacheStats
from medcache.core.clock import Clock, utcnow
from medcache.core.errors import (
    DuplicateFingerprintError,
    ProviderFailureError,
    StoreUnavailableError,
)
from medcache.core.models import MedicationRef
from medcache.core.retry import RetryPolicy, with_retry
from medcache.enrichment.pipeline import MedicationEnricher
from medcache.history.consultation_logger import ConsultationHistoryLogger
from medcache.logging.context import set_operation_context, set_request_context

logger = logging.getLogger(__name__)

ComputeFn = Callable[[list[MedicationRef]], Awaitable[AnalysisResult]]

DEFAULT_TTL_DAYS = 365


class InteractionCacheService:
    """Serves interaction analyses, reusing cached ones for up to a TTL.

    Construct once with its collaborators and share it; there is no
    module-level instance.
    """

    def __init__(
        self,
        cache_store: BaseCacheStore,
        analysis_provider: AnalysisProvider | None,
        history_logger: ConsultationHistoryLogger,
        enricher: MedicationEnricher | None = None,
        ttl_days: int = DEFAULT_TTL_DAYS,
        cache_enabled: bool = True,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = cache_store
        self._provider = analysis_provider
        self._history = history_logger
        self._enricher = enricher
        self._ttl = timedelta(days=ttl_days)
        self._cache_enabled = cache_enabled
        self._retry_policy = retry_policy
        self._clock = clock
        self._background: set[asyncio.Task] = set()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    # --- Lookup/insert protocol ---

    async def get_or_compute(
        self,
        medications: list[MedicationRef],
        patient_ref: str | None = None,
        session_id: str | None = None,
        compute_fn: ComputeFn | None = None,
    ) -> AnalysisOutcome:
        """Return an analysis for *medications*, from cache when possible.

        Args:
            medications: Non-empty combination, in any order.
            patient_ref: Optional patient reference for the history record.
            session_id: Caller session; a uuid4 is generated when omitted.
            compute_fn: Override for the analysis provider call.

        Returns:
            AnalysisOutcome with served_from "cache" or "api".

        Raises:
            InvalidInputError: Empty list or blank medication name.
            ProviderFailureError: No analysis could be produced.
        """
        meds = validate_medications(medications)
        fingerprint = compute_fingerprint(meds)
        session_id = session_id or str(uuid.uuid4())
        set_request_context(session_id, fingerprint)

        if self._cache_enabled:
            set_operation_context("lookup")
            existing = await self._lookup(fingerprint)
            if existing is not None:
                now = self._clock()
                if not existing.is_expired(now, self._ttl):
                    return await self._serve_hit(existing, meds, patient_ref, session_id)
                logger.info(
                    "Cache entry expired (%d days old), recomputing",
                    existing.age_in_days(now),
                )

        set_operation_context("compute")
        result = await self._compute(compute_fn, meds)

        if not self._cache_enabled:
            return await self._serve_uncached(result, fingerprint, meds, patient_ref, session_id)

        set_operation_context("insert")
        created_at = self._clock()
        entry = CacheEntry(
            fingerprint=fingerprint,
            medications=meds,
            analysis_text=result.analysis_text,
            created_at=created_at,
            tokens_used=result.tokens_used,
            model_used=result.model,
            analysis_duration_ms=result.duration_ms,
        )
        try:
            await with_retry(
                self._store.insert,
                entry,
                created_at - self._ttl,
                operation="cache_insert",
                policy=self._retry_policy,
            )
        except DuplicateFingerprintError:
            logger.info("Concurrent insert won the race, serving the stored entry")
            winner = await self._lookup(fingerprint)
            if winner is not None:
                return await self._serve_hit(winner, meds, patient_ref, session_id)
            return await self._serve_uncached(result, fingerprint, meds, patient_ref, session_id)
        except StoreUnavailableError as e:
            logger.warning("Cache insert failed, serving uncached analysis: %s", e)
            return await self._serve_uncached(result, fingerprint, meds, patient_ref, session_id)

        logger.info("Cached new analysis %s", entry.id)
        await self._history.record(entry.id, patient_ref, session_id, "api")
        self._schedule_enrichment(meds, entry.id)
        set_operation_context(None)
        return AnalysisOutcome(
            analysis_text=entry.analysis_text,
            served_from="api",
            age_in_days=0,
            fingerprint=fingerprint,
            combination_id=entry.id,
            consultation_count=entry.consultation_count,
            tokens_used=result.tokens_used,
            model_used=result.model,
            duration_ms=result.duration_ms,
        )

    async def _lookup(self, fingerprint: str) -> CacheEntry | None:
        try:
            return await with_retry(
                self._store.find_by_fingerprint,
                fingerprint,
                operation="cache_lookup",
                policy=self._retry_policy,
            )
        except StoreUnavailableError as e:
            logger.warning("Cache lookup failed, treating as miss: %s", e)
            return None

    async def _compute(
        self, compute_fn: ComputeFn | None, meds: list[MedicationRef]
    ) -> AnalysisResult:
        if compute_fn is None:
            if self._provider is None:
                raise ProviderFailureError("none", "no analysis provider configured")
            compute_fn = self._provider.analyze
        try:
            return await compute_fn(meds)
        except ProviderFailureError:
            raise
        except Exception as e:
            raise ProviderFailureError("compute_fn", str(e) or type(e).__name__) from e

    async def _serve_hit(
        self,
        entry: CacheEntry,
        meds: list[MedicationRef],
        patient_ref: str | None,
        session_id: str,
    ) -> AnalysisOutcome:
        count: int | None = entry.consultation_count
        try:
            new_count = await with_retry(
                self._store.increment_consultation_count,
                entry.id,
                operation="cache_increment",
                policy=self._retry_policy,
            )
        except StoreUnavailableError as e:
            logger.warning("Could not increment consultation count: %s", e)
        else:
            count = new_count or count

        age = entry.age_in_days(self._clock())
        logger.info("Serving cached analysis %s (%d days old)", entry.id, age)
        await self._history.record(entry.id, patient_ref, session_id, "cache")
        self._schedule_enrichment(meds, entry.id)
        set_operation_context(None)
        return AnalysisOutcome(
            analysis_text=entry.analysis_text,
            served_from="cache",
            age_in_days=age,
            fingerprint=entry.fingerprint,
            combination_id=entry.id,
            consultation_count=count,
            tokens_used=entry.tokens_used,
            model_used=entry.model_used,
            duration_ms=entry.analysis_duration_ms,
        )

    async def _serve_uncached(
        self,
        result: AnalysisResult,
        fingerprint: str,
        meds: list[MedicationRef],
        patient_ref: str | None,
        session_id: str,
    ) -> AnalysisOutcome:
        await self._history.record(None, patient_ref, session_id, "api")
        self._schedule_enrichment(meds, None)
        set_operation_context(None)
        return AnalysisOutcome(
            analysis_text=result.analysis_text,
            served_from="api",
            age_in_days=0,
            fingerprint=fingerprint,
            tokens_used=result.tokens_used,
            model_used=result.model,
            duration_ms=result.duration_ms,
        )

    # --- Background enrichment ---

    def _schedule_enrichment(
        self, meds: list[MedicationRef], related_analysis_id: str | None
    ) -> None:
        if self._enricher is None:
            return
        task = asyncio.create_task(self._run_enrichment(meds, related_analysis_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_enrichment(
        self, meds: list[MedicationRef], related_analysis_id: str | None
    ) -> None:
        set_operation_context("enrich")
        try:
            await self._enricher.enrich(meds, related_analysis_id)
        except Exception:
            logger.exception("Background medication enrichment failed")

    async def wait_for_background_tasks(self) -> None:
        """Wait until every scheduled enrichment task has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # --- Maintenance ---

    async def cleanup_expired(self) -> int:
        """Delete entries older than the TTL; return how many were removed."""
        cutoff = self._clock() - self._ttl
        removed = await with_retry(
            self._store.delete_expired_before,
            cutoff,
            operation="cache_cleanup",
            policy=self._retry_policy,
        )
        logger.info("Removed %d expired cache entr%s", removed, "y" if removed == 1 else "ies")
        return removed

    async def get_stats(self) -> CacheStats:
        """Aggregate usage stats; zeroed when the store cannot be read."""
        try:
            entries = await with_retry(
                self._store.list_entries, operation="cache_stats", policy=self._retry_policy
            )
        except StoreUnavailableError as e:
            logger.warning("Could not read cache statistics: %s", e)
            return CacheStats()
        return CacheStats.from_entries(entries)

    async def reset_cache(self) -> int:
        """Delete every cache entry."""
        removed = await with_retry(
            self._store.clear, operation="cache_clear", policy=self._retry_policy
        )
        logger.warning("Cache cleared: %d entr%s removed", removed, "y" if removed == 1 else "ies")
        return removed

    def close(self) -> None:
        """Close every store held by the service and its collaborators."""
        self._store.close()
        self._history.close()
        if self._enricher is not None:
            self._enricher.close()
