# src/core/errors.py - v1
"""Error taxonomy shared by the cache, history, catalog and provider layers.

Only InvalidInputError and ProviderFailureError are allowed to escape
InteractionCacheService.get_or_compute; every other category is recovered
locally and only shows up in the logs.
"""

from __future__ import annotations


class MedcacheError(Exception):
    """Base class for all medcache errors."""


class InvalidInputError(MedcacheError, ValueError):
    """Empty or malformed medication list."""


class StoreUnavailableError(MedcacheError):
    """A backing store (cache, history, catalog) could not be read or written."""


class DuplicateFingerprintError(MedcacheError):
    """A cache entry already exists for this fingerprint."""

    def __init__(self, fingerprint: str):
        self.fingerprint = fingerprint
        super().__init__(f"Cache entry already exists for fingerprint {fingerprint[:12]}")


class CatalogUpsertRaceError(MedcacheError):
    """A catalog row for this normalized name was created concurrently."""

    def __init__(self, normalized_name: str):
        self.normalized_name = normalized_name
        super().__init__(f"Catalog entry already exists for {normalized_name!r}")


class ProviderFailureError(MedcacheError):
    """The analysis provider could not produce an analysis."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"Could not complete analysis ({provider}): {reason}. Please retry."
        )


class EnrichmentError(MedcacheError):
    """Enrichment of a single medication failed."""

    def __init__(self, medication: str, reason: str):
        self.medication = medication
        self.reason = reason
        super().__init__(f"Enrichment failed for {medication!r}: {reason}")
