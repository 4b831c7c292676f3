# src/cache/redis_store.py - v1
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for distributed/multi-instance deployments.

Key layout:
    medcache:cache:fp:<fingerprint>  entry JSON (WATCHed for uniqueness)
    medcache:cache:count:<id>        consultation counter (INCR)
    medcache:cache:id:<id>           fingerprint, for lookups by id
    medcache:cache:__index__         set of all fingerprints

All four keys of an entry are written in a single MULTI/EXEC, so readers see
either the complete entry or nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import ValidationError

from medcache.cache.base_cache_store import BaseCacheStore
from medcache.cache.models import CacheEntry
from medcache.core.clock import utc
from medcache.core.errors import DuplicateFingerprintError, StoreUnavailableError

logger = logging.getLogger(__name__)

_PREFIX = "medcache:cache:"
_INDEX_KEY = f"{_PREFIX}__index__"


def _data_key(fingerprint: str) -> str:
    return f"{_PREFIX}fp:{fingerprint}"


def _count_key(entry_id: str) -> str:
    return f"{_PREFIX}count:{entry_id}"


def _id_key(entry_id: str) -> str:
    return f"{_PREFIX}id:{entry_id}"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed deployments."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._redis = redis
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None:
        """Retrieve cache entry by fingerprint, with its live counter."""
        try:
            data = self._client.get(_data_key(fingerprint))
            if data is None:
                return None
            entry = self._parse(data)
            if entry is None:
                return None
            count = self._client.get(_count_key(entry.id))
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache lookup failed: {e}") from e
        if count is not None:
            entry = entry.model_copy(update={"consultation_count": int(count)})
        return entry

    async def insert(
        self, entry: CacheEntry, replace_expired_before: datetime | None = None
    ) -> str:
        """Publish the entry; on conflict replace only an expired entry."""
        cutoff = utc(replace_expired_before) if replace_expired_before is not None else None
        try:
            if self._publish(entry, cutoff):
                return entry.id
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache insert failed: {e}") from e
        raise DuplicateFingerprintError(entry.fingerprint)

    async def increment_consultation_count(self, entry_id: str) -> int:
        """INCR the counter key while the entry exists; 0 if it is gone."""
        id_key = _id_key(entry_id)
        try:
            with self._client.pipeline() as pipe:
                while True:
                    try:
                        pipe.watch(id_key)
                        if not pipe.exists(id_key):
                            pipe.unwatch()
                            return 0
                        pipe.multi()
                        pipe.incr(_count_key(entry_id))
                        (count,) = pipe.execute()
                        return int(count)
                    except self._redis.WatchError:
                        continue
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache increment failed: {e}") from e

    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Scan the index and delete entries created before *cutoff*."""
        cutoff = utc(cutoff)
        removed = 0
        try:
            for fingerprint in self._client.smembers(_INDEX_KEY):
                data = self._client.get(_data_key(fingerprint))
                entry = self._parse(data) if data is not None else None
                if entry is None:
                    self._client.srem(_INDEX_KEY, fingerprint)
                    continue
                if entry.created_at < cutoff:
                    self._delete_entry(entry)
                    removed += 1
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache cleanup failed: {e}") from e
        return removed

    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries."""
        try:
            fingerprints = self._client.smembers(_INDEX_KEY)
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache list failed: {e}") from e
        entries: list[CacheEntry] = []
        for fingerprint in fingerprints:
            entry = await self.find_by_fingerprint(fingerprint)
            if entry is not None:
                entries.append(entry)
        return entries

    async def clear(self) -> int:
        entries = await self.list_entries()
        try:
            for entry in entries:
                self._delete_entry(entry)
            self._client.delete(_INDEX_KEY)
        except self._redis.RedisError as e:
            raise StoreUnavailableError(f"Redis cache clear failed: {e}") from e
        return len(entries)

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()

    # --- internals ---

    def _parse(self, data: str) -> CacheEntry | None:
        try:
            return CacheEntry.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Failed to deserialize cache entry: %s", e)
            return None

    def _delete_entry(self, entry: CacheEntry) -> None:
        pipe = self._client.pipeline()
        pipe.delete(_data_key(entry.fingerprint), _count_key(entry.id), _id_key(entry.id))
        pipe.srem(_INDEX_KEY, entry.fingerprint)
        pipe.execute()

    def _publish(self, entry: CacheEntry, cutoff: datetime | None) -> bool:
        """Write the entry, its counter, id key and index membership in one MULTI.

        The data key is WATCHed so a concurrent writer aborts this transaction.
        Returns False when an entry already exists and is not older than
        *cutoff* (or *cutoff* is None), or when another client won the race.
        """
        data_key = _data_key(entry.fingerprint)
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(data_key)
                current = pipe.get(data_key)
                existing = self._parse(current) if current is not None else None
                if current is not None and (
                    cutoff is None or (existing is not None and existing.created_at >= cutoff)
                ):
                    pipe.unwatch()
                    return False
                pipe.multi()
                if existing is not None:
                    pipe.delete(_count_key(existing.id), _id_key(existing.id))
                pipe.set(data_key, entry.model_dump_json())
                pipe.set(_count_key(entry.id), entry.consultation_count)
                pipe.set(_id_key(entry.id), entry.fingerprint)
                pipe.sadd(_INDEX_KEY, entry.fingerprint)
                pipe.execute()
            except self._redis.WatchError:
                return False
        return True
