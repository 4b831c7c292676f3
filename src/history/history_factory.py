# src/history/history_factory.py - v1
"""Factory for history store instantiation."""

from __future__ import annotations

from medcache.config.settings import Settings
from medcache.history.base_history_store import BaseHistoryStore


def create_history_store(settings: Settings | None = None) -> BaseHistoryStore:
    """Instantiate the configured history backend."""
    settings = settings or Settings()
    backend = settings.history_backend

    if backend == "sqlite":
        from medcache.history.sqlite_history_store import SqliteHistoryStore
        return SqliteHistoryStore(db_path=settings.database_path)

    if backend == "jsonl":
        from medcache.history.jsonl_history_store import JsonlHistoryStore
        return JsonlHistoryStore(path=settings.history_path)

    raise ValueError(f"Unsupported history backend: {backend!r}")
