"""Persistence for research results and per-industry knowledge."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from outreach_research.models import IndustryKnowledge, ResearchResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from outreach_research.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

RESEARCH_COLLECTION = "research"
KNOWLEDGE_COLLECTION = "industry_knowledge"


def _industry_is(industry: str) -> Callable[[dict[str, Any]], bool]:
    wanted = industry.strip().lower()
    return lambda doc: str(doc.get("industry", "")).strip().lower() == wanted


def _timestamp(doc: dict[str, Any]) -> datetime:
    value = datetime.fromisoformat(str(doc["timestamp"]))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class ResearchRepository:
    """Stores ResearchResult documents and IndustryKnowledge summaries.

    Industry names match case-insensitively everywhere.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._research = store.collection(RESEARCH_COLLECTION)
        self._knowledge = store.collection(KNOWLEDGE_COLLECTION)

    # -----------------------------------------------------------------------
    # Research results
    # -----------------------------------------------------------------------

    def find_fresh(
        self,
        industry: str,
        max_age: timedelta = timedelta(hours=24),
        now: datetime | None = None,
    ) -> ResearchResult | None:
        """Return the newest result for ``industry`` younger than ``max_age``."""
        cutoff = (now or datetime.now(tz=UTC)) - max_age
        matches = _industry_is(industry)
        docs = [
            doc
            for doc in self._research.find(matches)
            if _timestamp(doc) >= cutoff
        ]
        if not docs:
            return None
        newest = max(docs, key=_timestamp)
        return ResearchResult.model_validate(newest)

    def latest(self, industry: str) -> ResearchResult | None:
        docs = self._research.find(_industry_is(industry))
        if not docs:
            return None
        return ResearchResult.model_validate(max(docs, key=_timestamp))

    def save(self, result: ResearchResult) -> None:
        self._research.insert_one(result.model_dump(mode="json"))
        logger.info(
            "research_saved",
            industry=result.industry,
            insights=len(result.insights),
            videos=len(result.video_sources),
        )

    def list_recent(self, industry: str | None = None, limit: int = 10) -> list[ResearchResult]:
        """Newest results first, optionally filtered by industry substring."""
        needle = (industry or "").strip().lower()
        docs = sorted(
            self._research.find(
                lambda doc: needle in str(doc.get("industry", "")).lower()
            ),
            key=_timestamp,
            reverse=True,
        )
        return [ResearchResult.model_validate(doc) for doc in docs[:limit]]

    def delete_by_industry(self, industry: str) -> int:
        removed = self._research.delete_many(_industry_is(industry))
        logger.info("research_deleted", industry=industry, removed=removed)
        return removed

    # -----------------------------------------------------------------------
    # Industry knowledge
    # -----------------------------------------------------------------------

    def upsert_knowledge(self, result: ResearchResult) -> IndustryKnowledge:
        """Replace the knowledge record for the result's industry."""
        knowledge = IndustryKnowledge.from_result(result)
        self._knowledge.replace_one(
            _industry_is(result.industry),
            knowledge.model_dump(mode="json"),
            upsert=True,
        )
        logger.info("industry_knowledge_updated", industry=result.industry)
        return knowledge

    def get_knowledge(self, industry: str) -> IndustryKnowledge | None:
        doc = self._knowledge.find_one(_industry_is(industry))
        if doc is None:
            return None
        return IndustryKnowledge.model_validate(doc)
