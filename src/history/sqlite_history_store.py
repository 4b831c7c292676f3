# src/history/sqlite_history_store.py - v1
"""SQLite-backed consultation history (HISTORY_BACKEND=sqlite, default)."""

from __future__ import annotations

from pathlib import Path

from medcache.core.sqlite import from_db_time, open_connection, to_db_time, translate_errors
from medcache.history.base_history_store import BaseHistoryStore
from medcache.history.models import ConsultationHistoryRecord

_SCHEMA = """
CREATE TABLE IF NOT EXISTS consultation_history (
    id TEXT PRIMARY KEY,
    combination_id TEXT NOT NULL,
    patient_ref TEXT,
    session_id TEXT NOT NULL,
    source TEXT NOT NULL CHECK (source IN ('cache', 'api')),
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_combination ON consultation_history(combination_id);
CREATE INDEX IF NOT EXISTS idx_history_session ON consultation_history(session_id);
"""


class SqliteHistoryStore(BaseHistoryStore):
    """SQLite-backed history store sharing the medcache database file."""

    def __init__(self, db_path: Path | str) -> None:
        self._conn = open_connection(db_path, _SCHEMA)

    async def append(self, record: ConsultationHistoryRecord) -> None:
        with translate_errors("history append"):
            self._conn.execute(
                "INSERT INTO consultation_history "
                "(id, combination_id, patient_ref, session_id, source, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.combination_id,
                    record.patient_ref,
                    record.session_id,
                    record.source,
                    to_db_time(record.created_at),
                ),
            )
            self._conn.commit()

    async def list_records(
        self,
        combination_id: str | None = None,
        session_id: str | None = None,
        limit: int = 50,
    ) -> list[ConsultationHistoryRecord]:
        clauses: list[str] = []
        params: list[object] = []
        if combination_id is not None:
            clauses.append("combination_id = ?")
            params.append(combination_id)
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with translate_errors("history list"):
            rows = self._conn.execute(
                "SELECT id, combination_id, patient_ref, session_id, source, created_at "
                f"FROM consultation_history {where} "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                params,
            ).fetchall()
        return [
            ConsultationHistoryRecord(
                id=row["id"],
                combination_id=row["combination_id"],
                patient_ref=row["patient_ref"],
                session_id=row["session_id"],
                source=row["source"],
                created_at=from_db_time(row["created_at"]),
            )
            for row in rows
        ]

    def close(self) -> None:
        self._conn.close()
