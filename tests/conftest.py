# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides sample medications, a pinned clock, mock LLM clients and
tmp_path-backed stores. No network access: every LLM call is mocked.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from medcache.cache.models import CacheEntry
from medcache.cache.sqlite_store import SqliteCacheStore
from medcache.catalog.sqlite_catalog_store import SqliteCatalogStore
from medcache.core.models import MedicationRef
from medcache.history.sqlite_history_store import SqliteHistoryStore
from medcache.llm.models import LLMResponse

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; call it to read "now"."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# === FIXTURES: Sample data ===


@pytest.fixture
def sinvastatina() -> MedicationRef:
    return MedicationRef(name="Sinvastatina", dosage="40mg")


@pytest.fixture
def ciprofibrato() -> MedicationRef:
    return MedicationRef(name="Ciprofibrato", dosage="100mg")


@pytest.fixture
def sample_medications(sinvastatina, ciprofibrato) -> list[MedicationRef]:
    """The two-drug combination used across the suite."""
    return [sinvastatina, ciprofibrato]


@pytest.fixture
def make_entry():
    """Factory for CacheEntry with sensible defaults."""

    def _make(**overrides) -> CacheEntry:
        defaults = dict(
            fingerprint="fp_" + "a" * 61,
            medications=[MedicationRef(name="Omeprazol", dosage="20mg")],
            analysis_text="No significant interaction.",
            created_at=FIXED_NOW,
            tokens_used=1200,
            model_used="gpt-4o-mini",
            analysis_duration_ms=2500,
        )
        defaults.update(overrides)
        return CacheEntry(**defaults)

    return _make


# === FIXTURES: Clock ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# === FIXTURES: Mock LLM ===


@pytest.fixture
def mock_llm_response() -> LLMResponse:
    """Standard mock LLM response."""
    return LLMResponse(
        content="## INTERAÇÃO: Sinvastatina + Ciprofibrato\n\nRisk of myopathy: interaction.",
        input_tokens=600,
        output_tokens=900,
        model="gpt-4o-mini",
        provider="openai",
        latency_ms=800,
    )


@pytest.fixture
def mock_llm_client(mock_llm_response: LLMResponse) -> AsyncMock:
    """Mock BaseLLMClient with default response."""
    client = AsyncMock()
    client.complete = AsyncMock(return_value=mock_llm_response)
    client.provider_name = "mock"
    client.model = "gpt-4o-mini"
    return client


# === FIXTURES: Stores ===


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "medcache.db"


@pytest.fixture
def cache_store(db_path: Path):
    store = SqliteCacheStore(db_path=db_path)
    yield store
    store.close()


@pytest.fixture
def history_store(db_path: Path):
    store = SqliteHistoryStore(db_path=db_path)
    yield store
    store.close()


@pytest.fixture
def catalog_store(db_path: Path):
    store = SqliteCatalogStore(db_path=db_path)
    yield store
    store.close()
