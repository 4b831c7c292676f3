# src/enrichment/extractor.py - v1
"""Structured attribute extraction for the medication catalog.

The LLM reply is expected to hold a {"medications": [...]} object. Replies
are often wrapped in prose or code fences, so the outermost {...} span is
parsed. Placeholder strings ("Not specified", "Não especificado") become
null so they never block a later backfill.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from medcache.catalog.normalizer import normalize_medication_name
from medcache.core.models import MedicationRef, StructuredAttributes
from medcache.llm.models import Message

if TYPE_CHECKING:
    from medcache.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).parent / "prompts"
_USER_PROMPT_PATH = _PROMPT_DIR / "attribute_extraction.txt"
_SYSTEM_PROMPT_PATH = _PROMPT_DIR / "attribute_extraction_system.txt"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

PLACEHOLDER_VALUES = frozenset({
    "",
    "not specified",
    "não especificado",
    "nao especificado",
    "n/a",
    "unknown",
    "desconhecido",
})

# Reply key -> StructuredAttributes field, where they differ.
_FIELD_ALIASES: dict[str, str] = {
    "main_indications": "indications",
    "common_side_effects": "side_effects",
    "important_interactions": "interactions",
    "monitoring": "monitoring_params",
}


class ExtractionError(Exception):
    """The extraction reply could not be parsed."""


class StructuredExtractionProvider(ABC):
    """Produces structured attributes for a list of medications."""

    @abstractmethod
    async def extract_attributes(
        self, medications: list[MedicationRef]
    ) -> list[StructuredAttributes | None]:
        """Return one entry per medication, in input order (None if unknown)."""


class LLMExtractionProvider(StructuredExtractionProvider):
    """Single LLM call returning attributes for every medication."""

    def __init__(
        self,
        llm: BaseLLMClient,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    def build_prompt(self, medications: list[MedicationRef]) -> tuple[str, str]:
        medication_list = ", ".join(
            f"{m.name.strip()} ({m.dosage.strip()})" if m.dosage.strip() else m.name.strip()
            for m in medications
        )
        user = _USER_PROMPT_PATH.read_text(encoding="utf-8").format(
            medication_list=medication_list,
            medication_count=len(medications),
        )
        system = _SYSTEM_PROMPT_PATH.read_text(encoding="utf-8").strip()
        return system, user

    async def extract_attributes(
        self, medications: list[MedicationRef]
    ) -> list[StructuredAttributes | None]:
        system, prompt = self.build_prompt(medications)
        response = await self._llm.complete(
            messages=[Message(role="user", content=prompt)],
            system=system,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        raw_items = parse_extraction_response(response.content)
        logger.debug(
            "Extraction returned %d item(s) for %d medication(s)",
            len(raw_items), len(medications),
        )
        return align_attributes(medications, raw_items)


def parse_extraction_response(content: str) -> list[dict[str, Any]]:
    """Pull the medications array out of an LLM reply.

    Raises:
        ExtractionError: No JSON object, invalid JSON, or no medications list.
    """
    match = _JSON_OBJECT.search(content)
    if match is None:
        raise ExtractionError("no JSON object found in extraction reply")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"invalid JSON in extraction reply: {e}") from e
    items = data.get("medications") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ExtractionError("extraction reply has no 'medications' list")
    return [item for item in items if isinstance(item, dict)]


def to_attributes(raw: dict[str, Any]) -> StructuredAttributes | None:
    """Map one reply item to StructuredAttributes, dropping placeholders."""
    fields: dict[str, Any] = {}
    for key, value in raw.items():
        field = _FIELD_ALIASES.get(key, key)
        if field not in StructuredAttributes.model_fields:
            continue
        cleaned = _clean(value)
        if cleaned is not None:
            fields[field] = cleaned
    try:
        attributes = StructuredAttributes(**fields)
    except ValidationError as e:
        logger.debug("Skipping malformed extraction item: %s", e)
        return None
    return None if attributes.is_empty() else attributes


def align_attributes(
    medications: list[MedicationRef], raw_items: list[dict[str, Any]]
) -> list[StructuredAttributes | None]:
    """Pair reply items with medications.

    Position is used when the counts match and no item names a different
    medication than the one at its position; otherwise items are matched by
    normalized name.
    """
    if len(raw_items) == len(medications) and all(
        _item_name(item) is None or _names_match(_item_name(item), med.name)
        for med, item in zip(medications, raw_items)
    ):
        return [to_attributes(item) for item in raw_items]

    named = [(_item_name(item), item) for item in raw_items if _item_name(item) is not None]
    aligned: list[StructuredAttributes | None] = []
    for medication in medications:
        item = next(
            (item for name, item in named if _names_match(name, medication.name)), None
        )
        aligned.append(to_attributes(item) if item is not None else None)
    return aligned


def _item_name(item: dict[str, Any]) -> str | None:
    name = item.get("name")
    if isinstance(name, str) and name.strip():
        return name
    return None


def _names_match(reply_name: str, medication_name: str) -> bool:
    """Same normalized name, allowing a trailing dosage on either side."""
    a = normalize_medication_name(reply_name)
    b = normalize_medication_name(medication_name)
    return a == b or a.startswith(b + " ") or b.startswith(a + " ")


def _is_placeholder(value: str) -> bool:
    return value.strip().lower() in PLACEHOLDER_VALUES


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return None if _is_placeholder(value) else value.strip()
    if isinstance(value, list):
        items = [str(v).strip() for v in value if v is not None and not _is_placeholder(str(v))]
        return items or None
    if isinstance(value, dict):
        mapping = {
            str(k): str(v).strip()
            for k, v in value.items()
            if v is not None and not _is_placeholder(str(v))
        }
        return mapping or None
    return str(value)
