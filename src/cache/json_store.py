# src/cache/json_store.py - v1
"""JSON file-based cache store (CACHE_BACKEND=json).

Layout under CACHE_ROOT:
    entries/<fingerprint>.json   one CacheEntry per combination
    ids/<entry id>               fingerprint of the entry, for lookups by id
    entries.lock                 exclusive flock held by every writer

Writers take an OS-level lock, so several processes may share CACHE_ROOT
without losing counter updates. Readers never lock: entry files are only
ever replaced atomically.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from medcache.cache.base_cache_store import BaseCacheStore
from medcache.cache.models import CacheEntry
from medcache.core.clock import utc
from medcache.core.errors import DuplicateFingerprintError, StoreUnavailableError

logger = logging.getLogger(__name__)


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(self, cache_root: Path | str) -> None:
        root = Path(cache_root).expanduser()
        self._root = root / "entries"
        self._ids = root / "ids"
        self._lock_path = root / "entries.lock"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            self._ids.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create cache directory {root}: {e}") from e

    async def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None:
        """Retrieve cache entry by fingerprint."""
        return self._read(self._entry_path(fingerprint))

    async def insert(
        self, entry: CacheEntry, replace_expired_before: datetime | None = None
    ) -> str:
        """Create the entry file exclusively; replace it only if expired."""
        path = self._entry_path(entry.fingerprint)
        with self._locked():
            existing = self._read(path)
            if existing is None and not path.exists():
                self._write_id(entry)
                self._write_atomic(path, entry)
                return entry.id

            if (
                existing is not None
                and replace_expired_before is not None
                and existing.created_at < utc(replace_expired_before)
            ):
                self._write_id(entry)
                self._write_atomic(path, entry)
                self._id_path(existing.id).unlink(missing_ok=True)
                return entry.id
        raise DuplicateFingerprintError(entry.fingerprint)

    async def increment_consultation_count(self, entry_id: str) -> int:
        """Read-modify-write one entry file under the store lock."""
        with self._locked():
            fingerprint = self._read_id(entry_id)
            if fingerprint is None:
                return 0
            path = self._entry_path(fingerprint)
            entry = self._read(path)
            if entry is None or entry.id != entry_id:
                return 0
            updated = entry.model_copy(
                update={"consultation_count": entry.consultation_count + 1}
            )
            self._write_atomic(path, updated)
        return updated.consultation_count

    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Remove entry files created before *cutoff*."""
        cutoff = utc(cutoff)
        removed = 0
        with self._locked():
            for path, entry in self._iter_entries():
                if entry.created_at < cutoff:
                    path.unlink(missing_ok=True)
                    self._id_path(entry.id).unlink(missing_ok=True)
                    removed += 1
        return removed

    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries."""
        return [entry for _, entry in self._iter_entries()]

    async def clear(self) -> int:
        removed = 0
        with self._locked():
            for path in self._root.glob("*.json"):
                path.unlink(missing_ok=True)
                removed += 1
            for path in self._ids.iterdir():
                path.unlink(missing_ok=True)
        return removed

    # --- internals ---

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            fd = os.open(self._lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot open cache lock {self._lock_path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            os.close(fd)

    def _entry_path(self, fingerprint: str) -> Path:
        """Return file path for a fingerprint."""
        safe_key = fingerprint.replace("/", "_").replace("\\", "_")
        return self._root / f"{safe_key}.json"

    def _id_path(self, entry_id: str) -> Path:
        return self._ids / entry_id.replace("/", "_").replace("\\", "_")

    def _write_id(self, entry: CacheEntry) -> None:
        try:
            self._id_path(entry.id).write_text(entry.fingerprint, encoding="utf-8")
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write cache id {entry.id}: {e}") from e

    def _read_id(self, entry_id: str) -> str | None:
        try:
            return self._id_path(entry_id).read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read cache id {entry_id}: {e}") from e

    def _write_atomic(self, path: Path, entry: CacheEntry) -> None:
        tmp = path.with_name(f"{path.stem}.{entry.id}.tmp")
        try:
            tmp.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StoreUnavailableError(f"Cannot write cache entry {path.name}: {e}") from e

    def _read(self, path: Path) -> CacheEntry | None:
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read cache entry {path.name}: {e}") from e
        try:
            return CacheEntry(**json.loads(data))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to read cache entry %s: %s", path.name, e)
            return None

    def _iter_entries(self):
        for path in sorted(self._root.glob("*.json")):
            entry = self._read(path)
            if entry is not None:
                yield path, entry
