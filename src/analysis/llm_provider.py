# src/analysis/llm_provider.py - v1
"""LLM-backed interaction analysis provider."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from medcache.analysis.base_provider import AnalysisProvider
from medcache.analysis.models import AnalysisResult
from medcache.core.errors import ProviderFailureError
from medcache.core.models import MedicationRef
from medcache.llm.models import Message

if TYPE_CHECKING:
    from medcache.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).parent / "prompts"
_USER_PROMPT_PATH = _PROMPT_DIR / "interaction_analysis.txt"
_SYSTEM_PROMPT_PATH = _PROMPT_DIR / "interaction_system.txt"

MIN_MAX_TOKENS = 4000
MAX_MAX_TOKENS = 16000
TOKENS_PER_MEDICATION = 800
BASE_TOKENS = 2000


def compute_max_tokens(medication_count: int) -> int:
    """Scale the completion budget with the number of medications.

    >>> compute_max_tokens(2), compute_max_tokens(5), compute_max_tokens(30)
    (4000, 6000, 16000)
    """
    estimated = max(MIN_MAX_TOKENS, medication_count * TOKENS_PER_MEDICATION + BASE_TOKENS)
    return min(estimated, MAX_MAX_TOKENS)


class LLMAnalysisProvider(AnalysisProvider):
    """Builds the interaction prompt and calls a BaseLLMClient."""

    def __init__(
        self,
        llm: BaseLLMClient,
        temperature: float = 0.2,
        timeout_s: float = 60.0,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._timeout_s = timeout_s
        self._templates: tuple[str, str] | None = None

    @property
    def name(self) -> str:
        return self._llm.provider_name

    def _load_templates(self) -> tuple[str, str]:
        if self._templates is None:
            self._templates = (
                _SYSTEM_PROMPT_PATH.read_text(encoding="utf-8"),
                _USER_PROMPT_PATH.read_text(encoding="utf-8"),
            )
        return self._templates

    def build_prompt(self, medications: list[MedicationRef]) -> tuple[str, str]:
        """Return (system, user) prompts for *medications*."""
        system_template, user_template = self._load_templates()
        count = len(medications)
        medication_list = ", ".join(_describe(m) for m in medications)
        checklist = "\n".join(f"- [ ] {_describe(m)}" for m in medications)
        return (
            system_template.format(medication_count=count).strip(),
            user_template.format(
                medication_count=count,
                medication_list=medication_list,
                medication_checklist=checklist,
            ),
        )

    async def analyze(self, medications: list[MedicationRef]) -> AnalysisResult:
        system, prompt = self.build_prompt(medications)
        max_tokens = compute_max_tokens(len(medications))
        logger.info(
            "Requesting analysis of %d medication(s), max_tokens=%d",
            len(medications), max_tokens,
        )

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._llm.complete(
                    messages=[Message(role="user", content=prompt)],
                    system=system,
                    max_tokens=max_tokens,
                    temperature=self._temperature,
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise ProviderFailureError(
                self.name, f"timed out after {self._timeout_s:.0f}s"
            ) from e
        except Exception as e:
            raise ProviderFailureError(self.name, str(e) or type(e).__name__) from e

        text = response.content.strip()
        if not text:
            raise ProviderFailureError(self.name, "empty analysis returned")

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Analysis completed in %dms, %d tokens used",
            duration_ms, response.total_tokens,
        )
        return AnalysisResult(
            analysis_text=text,
            tokens_used=response.total_tokens,
            model=response.model,
            duration_ms=duration_ms,
        )


def _describe(medication: MedicationRef) -> str:
    name = medication.name.strip()
    dosage = medication.dosage.strip()
    return f"{name} ({dosage})" if dosage else name
