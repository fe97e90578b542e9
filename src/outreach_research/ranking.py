"""Deduplication and confidence ranking of extracted items."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from outreach_research.models import InsightItem

DEDUPE_PREFIX_CHARS = 50


def dedupe_key(text: str) -> str:
    return text.lower()[:DEDUPE_PREFIX_CHARS]


def dedupe_and_rank(items: Iterable[InsightItem]) -> list[InsightItem]:
    """Drop near-duplicates and sort by confidence, highest first.

    Two items are duplicates when the lowercase first 50 characters of
    their text match. The first occurrence wins regardless of confidence;
    the sort is stable so equal-confidence items keep input order.
    """
    seen: set[str] = set()
    unique: list[InsightItem] = []
    for item in items:
        key = dedupe_key(item.text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    unique.sort(key=lambda item: item.confidence, reverse=True)
    return unique
