# tests/unit/service/test_unit_interaction_cache.py - v1
"""Tests for service/interaction_cache.py - lookup/insert protocol."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from medcache.analysis.models import AnalysisResult
from medcache.cache.fingerprint import compute_fingerprint
from medcache.core.errors import (
    DuplicateFingerprintError,
    InvalidInputError,
    ProviderFailureError,
    StoreUnavailableError,
)
from medcache.core.models import MedicationRef
from medcache.core.retry import RetryPolicy
from medcache.enrichment.pipeline import MedicationEnricher
from medcache.history.consultation_logger import ConsultationHistoryLogger
from medcache.service.interaction_cache import InteractionCacheService

FAST = RetryPolicy(max_attempts=2, base_delay_s=0.0)


def _result(text: str = "Risk of myopathy: interaction.") -> AnalysisResult:
    return AnalysisResult(analysis_text=text, tokens_used=1500, model="gpt-4o-mini", duration_ms=900)


@pytest.fixture
def provider():
    p = MagicMock()
    p.analyze = AsyncMock(return_value=_result())
    p.name = "mock"
    return p


@pytest.fixture
def history(history_store, clock):
    return ConsultationHistoryLogger(history_store, retry_policy=FAST, clock=clock)


@pytest.fixture
def service(cache_store, provider, history, clock):
    return InteractionCacheService(
        cache_store=cache_store,
        analysis_provider=provider,
        history_logger=history,
        retry_policy=FAST,
        clock=clock,
    )


class TestGetOrCompute:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, service, provider, sample_medications, cache_store):
        first = await service.get_or_compute(sample_medications)
        assert first.served_from == "api"
        assert first.consultation_count == 1
        assert first.age_in_days == 0

        second = await service.get_or_compute(list(reversed(sample_medications)))
        assert second.served_from == "cache"
        assert second.consultation_count == 2
        assert second.analysis_text == first.analysis_text
        assert second.combination_id == first.combination_id
        provider.analyze.assert_awaited_once()

        entry = await cache_store.find_by_fingerprint(first.fingerprint)
        assert entry.consultation_count == 2

    @pytest.mark.asyncio
    async def test_history_sources(self, service, history, sample_medications):
        first = await service.get_or_compute(sample_medications, patient_ref="p1", session_id="s1")
        await service.get_or_compute(sample_medications, session_id="s1")
        records = await history.list_records(session_id="s1")
        assert [r.source for r in records] == ["cache", "api"]
        assert all(r.combination_id == first.combination_id for r in records)
        assert records[1].patient_ref == "p1"

    @pytest.mark.asyncio
    async def test_session_id_generated(self, service, history, sample_medications):
        outcome = await service.get_or_compute(sample_medications)
        records = await history.list_records(combination_id=outcome.combination_id)
        assert len(records[0].session_id) == 36

    @pytest.mark.asyncio
    async def test_age_in_days_reported(self, service, clock, sample_medications):
        await service.get_or_compute(sample_medications)
        clock.advance(days=10, hours=5)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "cache"
        assert outcome.age_in_days == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days,served_from", [(364, "cache"), (365, "cache"), (366, "api")])
    async def test_expiry_boundary(self, service, clock, sample_medications, days, served_from):
        await service.get_or_compute(sample_medications)
        clock.advance(days=days)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == served_from

    @pytest.mark.asyncio
    async def test_expired_entry_replaced(self, service, provider, clock, cache_store, sample_medications):
        first = await service.get_or_compute(sample_medications)
        clock.advance(days=400)
        provider.analyze.return_value = _result("Updated analysis.")
        second = await service.get_or_compute(sample_medications)
        assert second.served_from == "api"
        assert second.analysis_text == "Updated analysis."
        assert second.combination_id != first.combination_id
        entries = await cache_store.list_entries()
        assert len(entries) == 1
        assert entries[0].consultation_count == 1

    @pytest.mark.asyncio
    async def test_compute_fn_override(self, service, provider, sample_medications):
        compute = AsyncMock(return_value=_result("custom"))
        outcome = await service.get_or_compute(sample_medications, compute_fn=compute)
        assert outcome.analysis_text == "custom"
        compute.assert_awaited_once()
        provider.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_input(self, service, provider):
        with pytest.raises(InvalidInputError):
            await service.get_or_compute([])
        with pytest.raises(InvalidInputError):
            await service.get_or_compute([MedicationRef(name=" ")])
        provider.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, service, provider, cache_store, sample_medications):
        provider.analyze.side_effect = ProviderFailureError("mock", "rate limited")
        with pytest.raises(ProviderFailureError, match="Please retry"):
            await service.get_or_compute(sample_medications)
        assert await cache_store.list_entries() == []

    @pytest.mark.asyncio
    async def test_unexpected_compute_error_wrapped(self, service, sample_medications):
        compute = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(ProviderFailureError, match="boom"):
            await service.get_or_compute(sample_medications, compute_fn=compute)

    @pytest.mark.asyncio
    async def test_expired_entry_not_served_when_provider_fails(
        self, service, provider, clock, sample_medications
    ):
        await service.get_or_compute(sample_medications)
        clock.advance(days=400)
        provider.analyze.side_effect = ProviderFailureError("mock", "down")
        with pytest.raises(ProviderFailureError):
            await service.get_or_compute(sample_medications)

    @pytest.mark.asyncio
    async def test_no_provider_configured(self, cache_store, history, clock, sample_medications):
        service = InteractionCacheService(cache_store, None, history, clock=clock)
        with pytest.raises(ProviderFailureError):
            await service.get_or_compute(sample_medications)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_race_yields_single_entry(self, service, provider, cache_store, sample_medications):
        async def slow_analyze(meds):
            await asyncio.sleep(0.01)
            return _result()

        provider.analyze.side_effect = slow_analyze
        a, b = await asyncio.gather(
            service.get_or_compute(sample_medications),
            service.get_or_compute(list(reversed(sample_medications))),
        )
        assert provider.analyze.await_count == 2
        assert sorted([a.served_from, b.served_from]) == ["api", "cache"]
        assert a.combination_id == b.combination_id
        entries = await cache_store.list_entries()
        assert len(entries) == 1
        assert entries[0].consultation_count == 2

    @pytest.mark.asyncio
    async def test_race_loser_serves_winner_text(self, provider, history, clock, sample_medications, make_entry):
        fingerprint = compute_fingerprint(sample_medications)
        winner = make_entry(fingerprint=fingerprint, analysis_text="winner text")
        store = MagicMock()
        store.find_by_fingerprint = AsyncMock(side_effect=[None, winner])
        store.insert = AsyncMock(side_effect=DuplicateFingerprintError(fingerprint))
        store.increment_consultation_count = AsyncMock(return_value=2)
        service = InteractionCacheService(store, provider, history, retry_policy=FAST, clock=clock)

        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "cache"
        assert outcome.analysis_text == "winner text"
        assert outcome.consultation_count == 2
        store.increment_consultation_count.assert_awaited_once_with(winner.id)


class TestDegradedStore:
    @pytest.fixture
    def broken_store(self):
        store = MagicMock()
        err = StoreUnavailableError("connection refused")
        store.find_by_fingerprint = AsyncMock(side_effect=err)
        store.insert = AsyncMock(side_effect=err)
        store.list_entries = AsyncMock(side_effect=err)
        return store

    @pytest.mark.asyncio
    async def test_store_down_still_serves_analysis(
        self, broken_store, provider, history, clock, sample_medications
    ):
        service = InteractionCacheService(broken_store, provider, history, retry_policy=FAST, clock=clock)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "api"
        assert outcome.combination_id is None
        assert outcome.analysis_text.startswith("Risk")
        assert broken_store.find_by_fingerprint.await_count == 2
        assert await history.list_records() == []

    @pytest.mark.asyncio
    async def test_stats_zeroed_on_failure(self, broken_store, provider, history, clock):
        service = InteractionCacheService(broken_store, provider, history, retry_policy=FAST, clock=clock)
        stats = await service.get_stats()
        assert stats.total_combinations == 0

    @pytest.mark.asyncio
    async def test_increment_failure_still_serves_hit(
        self, provider, history, clock, sample_medications, make_entry
    ):
        entry = make_entry(fingerprint=compute_fingerprint(sample_medications))
        store = MagicMock()
        store.find_by_fingerprint = AsyncMock(return_value=entry)
        store.increment_consultation_count = AsyncMock(
            side_effect=StoreUnavailableError("timeout")
        )
        service = InteractionCacheService(store, provider, history, retry_policy=FAST, clock=clock)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "cache"
        assert outcome.consultation_count == 1
        provider.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_request(
        self, cache_store, provider, clock, sample_medications
    ):
        history_store = MagicMock()
        history_store.append = AsyncMock(side_effect=StoreUnavailableError("database is locked"))
        history = ConsultationHistoryLogger(history_store, retry_policy=FAST, clock=clock)
        service = InteractionCacheService(cache_store, provider, history, retry_policy=FAST, clock=clock)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "api"
        assert outcome.combination_id is not None


class TestCacheDisabled:
    @pytest.mark.asyncio
    async def test_always_computes(self, cache_store, provider, history, clock, sample_medications):
        service = InteractionCacheService(
            cache_store, provider, history, cache_enabled=False, clock=clock
        )
        await service.get_or_compute(sample_medications)
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "api"
        assert outcome.combination_id is None
        assert provider.analyze.await_count == 2
        assert await cache_store.list_entries() == []


class TestBackgroundEnrichment:
    @pytest.mark.asyncio
    async def test_enrichment_runs_on_miss_and_hit(
        self, cache_store, catalog_store, provider, history, clock, sample_medications
    ):
        enricher = MedicationEnricher(catalog_store, clock=clock)
        service = InteractionCacheService(
            cache_store, provider, history, enricher=enricher, clock=clock
        )
        first = await service.get_or_compute(sample_medications)
        await service.wait_for_background_tasks()
        await service.get_or_compute(sample_medications)
        await service.wait_for_background_tasks()

        entry = await catalog_store.find("ciprofibrato")
        assert entry.consultation_count == 2
        assert entry.related_analysis_ids == [first.combination_id]

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_contained(
        self, cache_store, provider, history, clock, sample_medications, caplog
    ):
        enricher = MagicMock()
        enricher.enrich = AsyncMock(side_effect=RuntimeError("catalog exploded"))
        service = InteractionCacheService(
            cache_store, provider, history, enricher=enricher, clock=clock
        )
        outcome = await service.get_or_compute(sample_medications)
        await service.wait_for_background_tasks()
        assert outcome.served_from == "api"
        enricher.enrich.assert_awaited_once_with(sample_medications, outcome.combination_id)
        assert "Background medication enrichment failed" in caplog.text

    @pytest.mark.asyncio
    async def test_enrichment_does_not_block_response(
        self, cache_store, provider, history, clock, sample_medications
    ):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_enrich(meds, related_id):
            started.set()
            await release.wait()

        enricher = MagicMock()
        enricher.enrich = AsyncMock(side_effect=slow_enrich)
        service = InteractionCacheService(
            cache_store, provider, history, enricher=enricher, clock=clock
        )
        outcome = await service.get_or_compute(sample_medications)
        assert outcome.served_from == "api"
        await asyncio.wait_for(started.wait(), timeout=1)
        release.set()
        await service.wait_for_background_tasks()


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup_expired(self, service, cache_store, clock, make_entry):
        await cache_store.insert(make_entry(fingerprint="old", created_at=clock.now - timedelta(days=366)))
        await cache_store.insert(make_entry(fingerprint="edge", created_at=clock.now - timedelta(days=365)))
        await cache_store.insert(make_entry(fingerprint="new", created_at=clock.now))
        assert await service.cleanup_expired() == 1
        remaining = {e.fingerprint for e in await cache_store.list_entries()}
        assert remaining == {"edge", "new"}

    @pytest.mark.asyncio
    async def test_stats(self, service, sample_medications):
        await service.get_or_compute(sample_medications)
        await service.get_or_compute(sample_medications)
        await service.get_or_compute([MedicationRef(name="Omeprazol", dosage="20mg")])
        stats = await service.get_stats()
        assert stats.total_combinations == 2
        assert stats.total_consultations == 3
        assert stats.total_tokens_saved == 1500
        assert stats.top_combinations[0].consultation_count == 2

    @pytest.mark.asyncio
    async def test_reset_cache(self, service, cache_store, sample_medications):
        await service.get_or_compute(sample_medications)
        assert await service.reset_cache() == 1
        assert await cache_store.list_entries() == []
