# tests/unit/core/test_unit_core_models.py - v1
"""Tests for core/models.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from medcache.core.models import MedicationRef, StructuredAttributes


class TestMedicationRef:
    def test_equality_ignores_case_and_outer_whitespace(self):
        assert MedicationRef(name=" Omeprazol ", dosage="20MG") == MedicationRef(
            name="omeprazol", dosage="20mg"
        )

    def test_hash_matches_equality(self):
        refs = {MedicationRef(name="Omeprazol", dosage="20mg"),
                MedicationRef(name="OMEPRAZOL", dosage=" 20mg ")}
        assert len(refs) == 1

    def test_internal_dosage_whitespace_is_significant(self):
        assert MedicationRef(name="Omeprazol", dosage="20mg") != MedicationRef(
            name="Omeprazol", dosage="20 mg"
        )

    def test_none_dosage_becomes_empty(self):
        assert MedicationRef(name="Dipirona", dosage=None).dosage == ""

    def test_frozen(self):
        ref = MedicationRef(name="Dipirona")
        with pytest.raises(ValidationError):
            ref.name = "Other"  # type: ignore[misc]

    def test_label(self):
        assert MedicationRef(name=" Losartana ", dosage="50mg").label == "Losartana 50mg"
        assert MedicationRef(name="Losartana").label == "Losartana"

    def test_parse_with_dosage(self):
        ref = MedicationRef.parse("Sinvastatina:40mg")
        assert ref.name == "Sinvastatina"
        assert ref.dosage == "40mg"

    def test_parse_without_dosage(self):
        ref = MedicationRef.parse("Dipirona")
        assert ref.dosage == ""


class TestStructuredAttributes:
    def test_empty_by_default(self):
        assert StructuredAttributes().is_empty() is True

    def test_not_empty(self):
        assert StructuredAttributes(therapeutic_class="Estatina").is_empty() is False

    def test_backfill_only_fills_nulls(self):
        current = StructuredAttributes(therapeutic_class="Estatina")
        incoming = StructuredAttributes(
            therapeutic_class="Fibrato", active_ingredient="sinvastatina"
        )
        merged = current.backfilled_with(incoming)
        assert merged.therapeutic_class == "Estatina"
        assert merged.active_ingredient == "sinvastatina"

    def test_backfill_with_none(self):
        current = StructuredAttributes(indications=["dislipidemia"])
        assert current.backfilled_with(None) == current
