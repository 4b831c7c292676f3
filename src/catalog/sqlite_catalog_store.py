# src/catalog/sqlite_catalog_store.py - v1
"""SQLite-backed medication catalog.

Structured attributes are stored as nullable columns (lists and dicts as JSON
text) so the additive backfill is a COALESCE inside the same UPDATE that bumps
the counter. related_analysis_ids is a JSON array maintained with the JSON1
functions bundled with sqlite3.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from medcache.catalog.base_catalog_store import BaseCatalogStore
from medcache.catalog.models import MedicationCatalogEntry
from medcache.core.errors import CatalogUpsertRaceError
from medcache.core.models import StructuredAttributes
from medcache.core.sqlite import from_db_time, open_connection, to_db_time, translate_errors

ATTRIBUTE_COLUMNS: tuple[str, ...] = tuple(StructuredAttributes.model_fields)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS medication_catalog (
    id TEXT PRIMARY KEY,
    normalized_name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    display_key TEXT NOT NULL,
    dosage TEXT,
    consultation_count INTEGER NOT NULL DEFAULT 1,
    first_consulted_at TEXT NOT NULL,
    last_consulted_at TEXT NOT NULL,
    related_analysis_ids TEXT NOT NULL DEFAULT '[]',
""" + "".join(f"    {col} TEXT,\n" for col in ATTRIBUTE_COLUMNS) + """
    source TEXT NOT NULL DEFAULT 'consultation_capture'
);
CREATE INDEX IF NOT EXISTS idx_catalog_display_key ON medication_catalog(display_key);
"""

_SELECT = (
    "SELECT id, normalized_name, display_name, dosage, consultation_count, "
    "first_consulted_at, last_consulted_at, related_analysis_ids, "
    + ", ".join(ATTRIBUTE_COLUMNS)
    + " FROM medication_catalog"
)

_RECORD_SIGHTING = (
    "UPDATE medication_catalog SET "
    "consultation_count = consultation_count + 1, "
    "last_consulted_at = ?, "
    "related_analysis_ids = CASE "
    "  WHEN ? IS NULL THEN related_analysis_ids "
    "  WHEN EXISTS (SELECT 1 FROM json_each(medication_catalog.related_analysis_ids) "
    "               WHERE json_each.value = ?) THEN related_analysis_ids "
    "  ELSE json_insert(related_analysis_ids, '$[#]', ?) END, "
    + ", ".join(f"{col} = COALESCE({col}, ?)" for col in ATTRIBUTE_COLUMNS)
    + " WHERE id = ?"
)


class SqliteCatalogStore(BaseCatalogStore):
    """SQLite-backed catalog store sharing the medcache database file."""

    def __init__(self, db_path: Path | str) -> None:
        self._conn = open_connection(db_path, _SCHEMA)

    async def find(
        self, normalized_name: str, display_name: str | None = None
    ) -> MedicationCatalogEntry | None:
        with translate_errors("catalog lookup"):
            row = self._conn.execute(
                f"{_SELECT} WHERE normalized_name = ?", (normalized_name,)
            ).fetchone()
            if row is None and display_name:
                row = self._conn.execute(
                    f"{_SELECT} WHERE display_key = ? LIMIT 1",
                    (_display_key(display_name),),
                ).fetchone()
        return None if row is None else _row_to_entry(row)

    async def insert(self, entry: MedicationCatalogEntry) -> MedicationCatalogEntry:
        columns = (
            "id, normalized_name, display_name, display_key, dosage, consultation_count, "
            "first_consulted_at, last_consulted_at, related_analysis_ids, "
            + ", ".join(ATTRIBUTE_COLUMNS)
        )
        values = (
            entry.id,
            entry.normalized_name,
            entry.display_name,
            _display_key(entry.display_name),
            entry.dosage,
            entry.consultation_count,
            to_db_time(entry.first_consulted_at),
            to_db_time(entry.last_consulted_at),
            json.dumps(entry.related_analysis_ids),
        ) + _attribute_params(entry.attributes)
        placeholders = ", ".join("?" for _ in values)
        try:
            with translate_errors("catalog insert"):
                self._conn.execute(
                    f"INSERT INTO medication_catalog ({columns}) VALUES ({placeholders})",
                    values,
                )
                self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise CatalogUpsertRaceError(entry.normalized_name) from e
        return entry

    async def record_sighting(
        self,
        entry_id: str,
        related_analysis_id: str | None,
        attributes: StructuredAttributes | None,
        seen_at: datetime,
    ) -> MedicationCatalogEntry | None:
        params = (
            to_db_time(seen_at),
            related_analysis_id,
            related_analysis_id,
            related_analysis_id,
        ) + _attribute_params(attributes) + (entry_id,)
        with translate_errors("catalog update"):
            cursor = self._conn.execute(_RECORD_SIGHTING, params)
            self._conn.commit()
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(f"{_SELECT} WHERE id = ?", (entry_id,)).fetchone()
        return None if row is None else _row_to_entry(row)

    async def list_entries(self, limit: int = 100) -> list[MedicationCatalogEntry]:
        with translate_errors("catalog list"):
            rows = self._conn.execute(
                f"{_SELECT} ORDER BY consultation_count DESC, display_name ASC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def close(self) -> None:
        self._conn.close()


def _encode(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _decode(column: str, value: str | None) -> Any:
    if value is None:
        return None
    annotation = str(StructuredAttributes.model_fields[column].annotation)
    if "list" in annotation or "dict" in annotation:
        return json.loads(value)
    return value


def _attribute_params(attributes: StructuredAttributes | None) -> tuple:
    if attributes is None:
        return tuple(None for _ in ATTRIBUTE_COLUMNS)
    data = attributes.model_dump()
    return tuple(_encode(data[col]) for col in ATTRIBUTE_COLUMNS)


def _row_to_entry(row: sqlite3.Row) -> MedicationCatalogEntry:
    attributes = StructuredAttributes(
        **{col: _decode(col, row[col]) for col in ATTRIBUTE_COLUMNS}
    )
    return MedicationCatalogEntry(
        id=row["id"],
        normalized_name=row["normalized_name"],
        display_name=row["display_name"],
        dosage=row["dosage"],
        consultation_count=row["consultation_count"],
        first_consulted_at=from_db_time(row["first_consulted_at"]),
        last_consulted_at=from_db_time(row["last_consulted_at"]),
        attributes=attributes,
        related_analysis_ids=json.loads(row["related_analysis_ids"]),
    )


def _display_key(display_name: str) -> str:
    # Folded in Python: SQLite's lower() only handles ASCII.
    return display_name.strip().lower()
