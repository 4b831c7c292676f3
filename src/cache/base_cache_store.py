# src/cache/base_cache_store.py - v1
"""Abstract cache store interface.

The store exclusively owns CacheEntry records. At most one entry exists per
fingerprint, enforced by the backend (unique key), never by caller locking.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from medcache.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends.

    Backend driver failures are raised as StoreUnavailableError.
    """

    @abstractmethod
    async def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None:
        """Retrieve the entry for a fingerprint, or None."""

    @abstractmethod
    async def insert(
        self, entry: CacheEntry, replace_expired_before: datetime | None = None
    ) -> str:
        """Atomically store a new entry and return its id.

        If an entry already exists for the fingerprint and its created_at is
        older than *replace_expired_before*, it is replaced in the same atomic
        write.

        Raises:
            DuplicateFingerprintError: If a live entry already holds the fingerprint.
        """

    @abstractmethod
    async def increment_consultation_count(self, entry_id: str) -> int:
        """Atomically add one consultation and return the new count.

        Returns 0 when the entry no longer exists.
        """

    @abstractmethod
    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Delete entries created before *cutoff*; return how many."""

    @abstractmethod
    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries (for statistics)."""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every entry; return how many."""

    def close(self) -> None:
        """Release backend resources."""
