# tests/unit/cache/test_unit_cache_models.py - v1
"""Tests for cache/models.py."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from medcache.cache.models import CacheEntry, CacheStats
from medcache.core.models import MedicationRef

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(days=365)


class TestCacheEntry:
    def test_defaults(self, make_entry):
        entry = make_entry()
        assert entry.consultation_count == 1
        assert len(entry.id) == 36

    def test_count_must_be_positive(self, make_entry):
        with pytest.raises(ValidationError):
            make_entry(consultation_count=0)

    def test_naive_created_at_taken_as_utc(self, make_entry):
        entry = make_entry(created_at=datetime(2026, 1, 1))
        assert entry.created_at.tzinfo is not None
        assert entry.created_at.utcoffset() == timedelta(0)

    @pytest.mark.parametrize(
        "days_old,expired",
        [(0, False), (364, False), (365, False), (366, True)],
    )
    def test_expiry_boundary(self, make_entry, days_old, expired):
        entry = make_entry(created_at=NOW - timedelta(days=days_old))
        assert entry.is_expired(NOW, TTL) is expired

    def test_one_microsecond_past_ttl_is_expired(self, make_entry):
        entry = make_entry(created_at=NOW - TTL - timedelta(microseconds=1))
        assert entry.is_expired(NOW, TTL) is True

    def test_age_in_days_is_floored(self, make_entry):
        entry = make_entry(created_at=NOW - timedelta(days=3, hours=23))
        assert entry.age_in_days(NOW) == 3


class TestCacheStats:
    def test_empty(self):
        stats = CacheStats.from_entries([])
        assert stats.total_combinations == 0
        assert stats.cache_hit_rate == 0.0

    def test_aggregates(self, make_entry):
        entries = [
            make_entry(fingerprint="a", consultation_count=3, tokens_used=1000),
            make_entry(fingerprint="b", consultation_count=1, tokens_used=500),
        ]
        stats = CacheStats.from_entries(entries)
        assert stats.total_combinations == 2
        assert stats.total_consultations == 4
        assert stats.total_tokens_saved == 2000
        assert stats.average_consultations_per_combination == 2.0
        assert stats.cache_hit_rate == pytest.approx(50.0)
        assert stats.top_combinations[0].consultation_count == 3

    def test_unknown_tokens_count_as_zero(self, make_entry):
        stats = CacheStats.from_entries([make_entry(consultation_count=5, tokens_used=None)])
        assert stats.total_tokens_saved == 0

    def test_top_n(self, make_entry):
        entries = [
            make_entry(
                fingerprint=str(i),
                consultation_count=i + 1,
                medications=[MedicationRef(name=f"Med{i}")],
            )
            for i in range(8)
        ]
        stats = CacheStats.from_entries(entries, top_n=5)
        assert [t.consultation_count for t in stats.top_combinations] == [8, 7, 6, 5, 4]
