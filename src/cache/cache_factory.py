# src/cache/cache_factory.py - v1
"""Factory for cache store instantiation."""

from __future__ import annotations

from medcache.cache.base_cache_store import BaseCacheStore
from medcache.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to SQLite under ~/.medcache.

    Returns:
        Configured BaseCacheStore implementation.
    """
    settings = settings or Settings()
    backend = settings.cache_backend

    if backend == "sqlite":
        from medcache.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(db_path=settings.database_path)

    if backend == "json":
        from medcache.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=settings.cache_root)

    if backend == "redis":
        from medcache.cache.redis_store import RedisCacheStore
        if not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
