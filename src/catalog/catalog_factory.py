# src/catalog/catalog_factory.py - v1
"""Factory for catalog store instantiation."""

from __future__ import annotations

from medcache.catalog.base_catalog_store import BaseCatalogStore
from medcache.config.settings import Settings


def create_catalog_store(settings: Settings | None = None) -> BaseCatalogStore:
    """Instantiate the catalog store (SQLite, shared database file)."""
    settings = settings or Settings()
    from medcache.catalog.sqlite_catalog_store import SqliteCatalogStore
    return SqliteCatalogStore(db_path=settings.database_path)
