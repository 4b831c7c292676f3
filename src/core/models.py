# src/core/models.py - v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


# === MEDICATIONS ===


class MedicationRef(BaseModel):
    """A (name, dosage) pair as supplied by the caller.

    The raw values are kept for display. Equality and hashing use the
    trimmed, lower-cased pair, so " Omeprazol " / "20MG" equals
    "omeprazol" / "20mg".
    """

    model_config = ConfigDict(frozen=True)

    name: str
    dosage: str = ""

    @field_validator("dosage", mode="before")
    @classmethod
    def _none_dosage(cls, v: Any) -> Any:  # noqa: N805
        return "" if v is None else v

    @property
    def canonical_key(self) -> tuple[str, str]:
        """Trimmed, lower-cased (name, dosage)."""
        return (self.name.strip().lower(), self.dosage.strip().lower())

    @property
    def label(self) -> str:
        """Human-readable "name dosage" string for logs and prompts."""
        return f"{self.name.strip()} {self.dosage.strip()}".strip()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MedicationRef):
            return NotImplemented
        return self.canonical_key == other.canonical_key

    def __hash__(self) -> int:
        return hash(self.canonical_key)

    @classmethod
    def parse(cls, text: str) -> MedicationRef:
        """Parse "Name:dosage" (CLI form). The dosage part is optional."""
        name, _, dosage = text.partition(":")
        return cls(name=name.strip(), dosage=dosage.strip())


# === ENRICHMENT ATTRIBUTES ===


class StructuredAttributes(BaseModel):
    """Pharmacological attributes attached to a catalog entry.

    Every field is nullable. Enrichment is additive-only: a non-null field is
    never overwritten by a later sighting.
    """

    active_ingredient: str | None = None
    therapeutic_class: str | None = None
    mechanism_of_action: str | None = None
    indications: list[str] | None = None
    contraindications: list[str] | None = None
    side_effects: list[str] | None = None
    interactions: list[str] | None = None
    special_populations: dict[str, str] | None = None
    monitoring_params: list[str] | None = None
    administration_instructions: str | None = None
    dosage_forms: list[str] | None = None
    storage_conditions: str | None = None
    pharmacy_category: str | None = None

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        return all(v is None for v in self.model_dump().values())

    def backfilled_with(self, other: StructuredAttributes | None) -> StructuredAttributes:
        """Return a copy whose null fields are filled from *other*."""
        if other is None:
            return self.model_copy()
        current = self.model_dump()
        incoming = other.model_dump()
        merged = {
            key: current[key] if current[key] is not None else incoming[key]
            for key in current
        }
        return StructuredAttributes(**merged)
