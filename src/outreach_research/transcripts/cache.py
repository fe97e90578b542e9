"""Transcript cache keyed by YouTube video ID."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from outreach_research.models import CacheStats, TranscriptMethod, TranscriptRecord

if TYPE_CHECKING:
    from outreach_research.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

COLLECTION = "youtube_transcripts"


class TranscriptCache:
    """Upsert-by-key transcript store with no eviction.

    Storage failures propagate as ``StoreError``; callers on the research
    path log and continue.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._collection = store.collection(COLLECTION)

    def get(self, video_id: str) -> TranscriptRecord | None:
        doc = self._collection.find_one({"video_id": video_id})
        if doc is None or not doc.get("transcript"):
            return None
        return TranscriptRecord.model_validate(doc)

    def lookup(self, video_id: str) -> TranscriptRecord | None:
        """Administrative lookup by video ID.

        Same miss rules as ``get``; an absent record is ``None``, never an
        exception.
        """
        record = self.get(video_id)
        logger.info("transcript_cache_lookup", video_id=video_id, found=record is not None)
        return record

    def put(
        self,
        video_id: str,
        transcript: str,
        method: TranscriptMethod | str = TranscriptMethod.UNKNOWN,
    ) -> TranscriptRecord:
        """Insert or fully replace the record for ``video_id``."""
        record = TranscriptRecord(
            video_id=video_id,
            transcript=transcript,
            method=TranscriptMethod(method),
        )
        inserted = self._collection.replace_one(
            {"video_id": video_id},
            record.model_dump(mode="json"),
            upsert=True,
        )
        logger.info(
            "transcript_cached",
            video_id=video_id,
            method=str(record.method),
            length=record.length,
            operation="inserted" if inserted else "updated",
        )
        return record

    def delete(self, video_id: str) -> bool:
        deleted = self._collection.delete_one({"video_id": video_id})
        logger.info("transcript_cache_delete", video_id=video_id, deleted=deleted)
        return deleted

    def stats(self) -> CacheStats:
        total = self._collection.count()
        if total == 0:
            return CacheStats()
        return CacheStats(
            total_cached=total,
            total_length=int(self._collection.sum("length")),
            avg_length=round(self._collection.average("length"), 1),
            methods=[str(m) for m in self._collection.distinct("method")],
            method_breakdown=self._collection.group_count("method"),
        )
