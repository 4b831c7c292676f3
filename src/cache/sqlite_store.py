# src/cache/sqlite_store.py - v1
"""SQLite-based cache store (CACHE_BACKEND=sqlite, default).

Uses stdlib sqlite3. The UNIQUE constraint on fingerprint resolves concurrent
inserts; counters are bumped with a single UPDATE so no increment is lost.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from medcache.cache.base_cache_store import BaseCacheStore
from medcache.cache.models import CacheEntry
from medcache.core.errors import DuplicateFingerprintError
from medcache.core.models import MedicationRef
from medcache.core.sqlite import from_db_time, open_connection, to_db_time, translate_errors

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    id TEXT PRIMARY KEY,
    fingerprint TEXT NOT NULL UNIQUE,
    medications_json TEXT NOT NULL,
    analysis_text TEXT NOT NULL,
    consultation_count INTEGER NOT NULL DEFAULT 1 CHECK (consultation_count >= 1),
    created_at TEXT NOT NULL,
    tokens_used INTEGER,
    model_used TEXT,
    duration_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_cache_entries_created_at ON cache_entries(created_at);
"""

_COLUMNS = (
    "id, fingerprint, medications_json, analysis_text, consultation_count, "
    "created_at, tokens_used, model_used, duration_ms"
)

_INSERT = f"INSERT INTO cache_entries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"

# Replaces the row only while it is older than the cutoff; otherwise a no-op
# (rowcount 0) which is reported as a duplicate.
_INSERT_REPLACING_EXPIRED = _INSERT + """
ON CONFLICT(fingerprint) DO UPDATE SET
    id = excluded.id,
    medications_json = excluded.medications_json,
    analysis_text = excluded.analysis_text,
    consultation_count = excluded.consultation_count,
    created_at = excluded.created_at,
    tokens_used = excluded.tokens_used,
    model_used = excluded.model_used,
    duration_ms = excluded.duration_ms
WHERE cache_entries.created_at < ?
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = db_path
        self._conn = open_connection(db_path, _SCHEMA)

    async def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None:
        """Retrieve the entry for a fingerprint."""
        with translate_errors("cache lookup"):
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM cache_entries WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_entry(row)

    async def insert(
        self, entry: CacheEntry, replace_expired_before: datetime | None = None
    ) -> str:
        """Insert a new entry, optionally replacing an expired one."""
        params = _entry_to_params(entry)
        try:
            with translate_errors("cache insert"):
                if replace_expired_before is None:
                    cursor = self._conn.execute(_INSERT, params)
                else:
                    cursor = self._conn.execute(
                        _INSERT_REPLACING_EXPIRED,
                        params + (to_db_time(replace_expired_before),),
                    )
                self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise DuplicateFingerprintError(entry.fingerprint) from e

        if cursor.rowcount == 0:
            raise DuplicateFingerprintError(entry.fingerprint)
        return entry.id

    async def increment_consultation_count(self, entry_id: str) -> int:
        """Atomic in-database increment."""
        with translate_errors("cache increment"):
            self._conn.execute(
                "UPDATE cache_entries SET consultation_count = consultation_count + 1 "
                "WHERE id = ?",
                (entry_id,),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT consultation_count FROM cache_entries WHERE id = ?",
                (entry_id,),
            ).fetchone()
        return 0 if row is None else int(row[0])

    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Bulk delete entries created before *cutoff*."""
        with translate_errors("cache cleanup"):
            cursor = self._conn.execute(
                "DELETE FROM cache_entries WHERE created_at < ?", (to_db_time(cutoff),)
            )
            self._conn.commit()
        return cursor.rowcount

    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries."""
        with translate_errors("cache list"):
            rows = self._conn.execute(f"SELECT {_COLUMNS} FROM cache_entries").fetchall()
        entries: list[CacheEntry] = []
        for row in rows:
            try:
                entries.append(_row_to_entry(row))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable cache row %s: %s", row["id"], e)
        return entries

    async def clear(self) -> int:
        with translate_errors("cache clear"):
            cursor = self._conn.execute("DELETE FROM cache_entries")
            self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def _entry_to_params(entry: CacheEntry) -> tuple:
    medications = json.dumps(
        [m.model_dump() for m in entry.medications], ensure_ascii=False
    )
    return (
        entry.id,
        entry.fingerprint,
        medications,
        entry.analysis_text,
        entry.consultation_count,
        to_db_time(entry.created_at),
        entry.tokens_used,
        entry.model_used,
        entry.analysis_duration_ms,
    )


def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
    return CacheEntry(
        id=row["id"],
        fingerprint=row["fingerprint"],
        medications=[MedicationRef(**m) for m in json.loads(row["medications_json"])],
        analysis_text=row["analysis_text"],
        consultation_count=row["consultation_count"],
        created_at=from_db_time(row["created_at"]),
        tokens_used=row["tokens_used"],
        model_used=row["model_used"],
        analysis_duration_ms=row["duration_ms"],
    )
