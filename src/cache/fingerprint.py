# src/cache/fingerprint.py - v1
"""Order-independent fingerprint for a medication combination.

Canonical form: every (name, dosage) is trimmed and lower-cased, the pairs are
sorted by name then dosage, encoded as a compact JSON array and hashed with
SHA-256. Duplicates are kept, so [A, A, B] and [A, B] differ. Whitespace inside
a dosage is kept too: "20mg" and "20 mg" are different combinations.
"""

from __future__ import annotations

import hashlib
import json
from typing import Iterable

from medcache.core.errors import InvalidInputError
from medcache.core.models import MedicationRef


def compute_fingerprint(medications: Iterable[MedicationRef]) -> str:
    """Compute the SHA-256 hex fingerprint of a medication combination.

    Args:
        medications: Non-empty sequence of MedicationRef, in any order.

    Returns:
        64-char lowercase hex digest.

    Raises:
        InvalidInputError: If the list is empty or a name is blank.
    """
    canonical = canonical_form(medications)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def canonical_form(medications: Iterable[MedicationRef]) -> str:
    """Return the canonical text that gets hashed."""
    keys = sorted(_canonical_keys(medications))
    return json.dumps(keys, ensure_ascii=False, separators=(",", ":"))


def validate_medications(medications: Iterable[MedicationRef] | None) -> list[MedicationRef]:
    """Check a medication list is usable and return it as a list.

    Raises:
        InvalidInputError: If the list is empty or a name is blank.
    """
    if medications is None:
        raise InvalidInputError("Medication list is required")
    meds = list(medications)
    if not meds:
        raise InvalidInputError("Medication list must not be empty")
    for i, med in enumerate(meds):
        if not isinstance(med, MedicationRef):
            raise InvalidInputError(f"Item {i} is not a MedicationRef: {med!r}")
        if not med.name.strip():
            raise InvalidInputError(f"Medication at position {i} has a blank name")
    return meds


def _canonical_keys(medications: Iterable[MedicationRef]) -> list[tuple[str, str]]:
    return [med.canonical_key for med in validate_medications(medications)]
