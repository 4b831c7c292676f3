# src/analysis/base_provider.py - v1
"""Abstract analysis provider interface.

A provider turns a medication list into free-form interaction analysis text.
The cache service treats the result as an opaque payload.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from medcache.analysis.models import AnalysisResult
from medcache.core.models import MedicationRef


class AnalysisProvider(ABC):
    """Produces an interaction analysis for a medication combination."""

    @abstractmethod
    async def analyze(self, medications: list[MedicationRef]) -> AnalysisResult:
        """Analyze *medications*.

        Raises:
            ProviderFailureError: On any failure, including an empty reply.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and error messages."""
