"""Duplicate detection for application records.

This module provides functions for:
- Name normalization (case, punctuation, whitespace)
- Token-set Jaccard similarity
- Locating the record a company/position pair belongs to (exact, then fuzzy)
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from apptrail.tracker.models import ApplicationRecord

DEFAULT_MATCH_THRESHOLD = 0.8

# Anything that is not a word character or whitespace; \w keeps non-Latin letters
_PUNCTUATION = re.compile(r"[^\w\s]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def normalize_name(value: str) -> str:
    """Normalize a company or position name for fuzzy comparison.

    Lowercases, replaces punctuation with spaces and collapses whitespace,
    so "Acme, Inc." and "acme inc" compare equal.
    """
    value = _PUNCTUATION.sub(" ", value.lower())
    return _WHITESPACE.sub(" ", value).strip()


def tokenize(value: str) -> set[str]:
    normalized = normalize_name(value)
    return set(normalized.split(" ")) if normalized else set()


def jaccard_similarity(first: str, second: str) -> float:
    """Return |A & B| / |A | B| over the normalized token sets.

    Two empty names are not considered similar.
    """
    tokens_a = tokenize(first)
    tokens_b = tokenize(second)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def is_exact_match(record: ApplicationRecord, company: str, position: str) -> bool:
    return (
        record.company.strip().lower() == company.strip().lower()
        and record.position.strip().lower() == position.strip().lower()
    )


def is_fuzzy_match(
    record: ApplicationRecord,
    company: str,
    position: str,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> bool:
    """Both company and position must independently reach the threshold."""
    return (
        jaccard_similarity(record.company, company) >= threshold
        and jaccard_similarity(record.position, position) >= threshold
    )


def find_match(
    records: Iterable[ApplicationRecord],
    company: str,
    position: str,
    threshold: float | None = None,
) -> ApplicationRecord | None:
    """Find the existing record a company/position pair belongs to.

    Exact (trimmed, case-insensitive) matches win outright. Fuzzy matching is
    only attempted when no exact match exists, and returns the first
    qualifying record in iteration order; candidates are not ranked by score.

    Args:
        records: Known application records.
        company: Company name to look up.
        position: Position title to look up.
        threshold: Minimum Jaccard similarity for both fields.

    Returns:
        The matching record, or None when nothing matches.
    """
    if threshold is None:
        threshold = DEFAULT_MATCH_THRESHOLD

    candidates = list(records)
    for record in candidates:
        if is_exact_match(record, company, position):
            return record

    for record in candidates:
        if is_fuzzy_match(record, company, position, threshold):
            return record

    return None
