# src/history/jsonl_history_store.py - v1
"""JSON Lines consultation history (HISTORY_BACKEND=jsonl).

One record per line, appended under a process-local lock.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from medcache.core.errors import StoreUnavailableError
from medcache.history.base_history_store import BaseHistoryStore
from medcache.history.models import ConsultationHistoryRecord

logger = logging.getLogger(__name__)


class JsonlHistoryStore(BaseHistoryStore):
    """Append-only JSON Lines file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create history directory: {e}") from e

    async def append(self, record: ConsultationHistoryRecord) -> None:
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        try:
            with self._lock, self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StoreUnavailableError(f"Cannot append history record: {e}") from e

    async def list_records(
        self,
        combination_id: str | None = None,
        session_id: str | None = None,
        limit: int = 50,
    ) -> list[ConsultationHistoryRecord]:
        if not self._path.exists():
            return []
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read history file: {e}") from e

        records: list[ConsultationHistoryRecord] = []
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                record = ConsultationHistoryRecord(**json.loads(line))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping malformed history line: %s", e)
                continue
            if combination_id is not None and record.combination_id != combination_id:
                continue
            if session_id is not None and record.session_id != session_id:
                continue
            records.append(record)
            if len(records) >= limit:
                break
        return records
