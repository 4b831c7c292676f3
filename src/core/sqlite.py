# src/core/sqlite.py - v1
"""Shared helpers for the SQLite-backed stores (stdlib sqlite3).

The cache, history and catalog stores each hold their own connection to the
same database file; WAL mode lets them read while another one writes.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from medcache.core.clock import utc
from medcache.core.errors import StoreUnavailableError

MEMORY_DB = ":memory:"


def open_connection(db_path: Path | str, schema: str, timeout_s: float = 5.0) -> sqlite3.Connection:
    """Open a connection, enable WAL and apply the idempotent *schema*."""
    target = str(db_path)
    if target != MEMORY_DB:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path)
    try:
        conn = sqlite3.connect(target, timeout=timeout_s)
        conn.row_factory = sqlite3.Row
        if target != MEMORY_DB:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(schema)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot open SQLite database {target}: {e}") from e
    return conn


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as StoreUnavailableError.

    IntegrityError is left alone: callers map it to their own race error.
    """
    try:
        yield
    except sqlite3.IntegrityError:
        raise
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"SQLite {operation} failed: {e}") from e


def to_db_time(value: datetime) -> str:
    """Fixed-width UTC ISO string, so text comparison orders correctly."""
    return utc(value).isoformat(timespec="microseconds")


def from_db_time(value: str) -> datetime:
    return utc(datetime.fromisoformat(value))
