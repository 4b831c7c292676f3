# src/catalog/normalizer.py - v1
"""Catalog key normalization for medication names."""

from __future__ import annotations

import re

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_medication_name(name: str) -> str:
    """Lower-case, trim, strip punctuation, collapse whitespace.

    >>> normalize_medication_name("  Ácido   Acetilsalicílico (AAS) ")
    'ácido acetilsalicílico aas'
    """
    text = name.lower().strip()
    text = _PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
