# src/history/consultation_logger.py - v1
"""Consultation history logging: one record per analysis request.

Best-effort: a history failure is logged and never fails or rolls back the
request that produced it.
"""

from __future__ import annotations

import logging

from medcache.core.clock import Clock, utcnow
from medcache.core.errors import StoreUnavailableError
from medcache.core.retry import RetryPolicy, with_retry
from medcache.history.base_history_store import BaseHistoryStore
from medcache.history.models import ConsultationHistoryRecord, ConsultationSource

logger = logging.getLogger(__name__)


class ConsultationHistoryLogger:
    """Appends ConsultationHistoryRecord entries to a history store."""

    def __init__(
        self,
        store: BaseHistoryStore,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy
        self._clock = clock

    async def record(
        self,
        combination_id: str | None,
        patient_ref: str | None,
        session_id: str,
        source: ConsultationSource,
    ) -> ConsultationHistoryRecord | None:
        """Record a consultation.

        Args:
            combination_id: CacheEntry id served. None skips the write.
            patient_ref: Optional patient reference.
            session_id: Caller session identifier.
            source: "cache" or "api".

        Returns:
            The stored record, or None when skipped or the store failed.
        """
        if not combination_id:
            logger.debug("No combination id, consultation not recorded")
            return None

        record = ConsultationHistoryRecord(
            combination_id=combination_id,
            patient_ref=patient_ref,
            session_id=session_id,
            source=source,
            created_at=self._clock(),
        )
        try:
            await with_retry(
                self._store.append,
                record,
                operation="history_append",
                policy=self._retry_policy,
            )
        except StoreUnavailableError as e:
            logger.warning("Failed to record consultation history: %s", e)
            return None

        logger.debug(
            "Recorded consultation %s (source=%s, combination=%s)",
            record.id, source, combination_id,
        )
        return record

    async def list_records(
        self,
        combination_id: str | None = None,
        session_id: str | None = None,
        limit: int = 50,
    ) -> list[ConsultationHistoryRecord]:
        """Read back recent history (for reporting)."""
        return await self._store.list_records(
            combination_id=combination_id, session_id=session_id, limit=limit
        )

    def close(self) -> None:
        self._store.close()
