"""Transcript fetcher: cache lookup, then sources in priority order."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from outreach_research.exceptions import StoreError
from outreach_research.models import FetchedTranscript

if TYPE_CHECKING:
    from collections.abc import Sequence

    from outreach_research.transcripts.cache import TranscriptCache
    from outreach_research.transcripts.sources import TranscriptSource

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 120.0


class TranscriptFetcher:
    """Return transcript text for a video, writing fresh results to the cache.

    Sources and cache I/O are blocking and run in worker threads; each
    source call is bounded by ``timeout``.
    A source that raises, times out, or yields fewer than ``min_length``
    characters is skipped in favour of the next one.
    """

    def __init__(
        self,
        cache: TranscriptCache,
        sources: Sequence[TranscriptSource],
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._cache = cache
        self._sources = list(sources)
        self._timeout = timeout

    async def _cached(self, video_id: str) -> FetchedTranscript | None:
        try:
            record = await asyncio.to_thread(self._cache.get, video_id)
        except StoreError as exc:
            logger.warning("transcript_cache_read_failed", video_id=video_id, error=str(exc))
            return None
        if record is None:
            return None
        logger.debug("transcript_cache_hit", video_id=video_id, method=str(record.method))
        return FetchedTranscript(
            transcript=record.transcript,
            method=record.method,
            from_cache=True,
        )

    async def _try_source(self, source: TranscriptSource, video_id: str) -> str | None:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(source.fetch, video_id),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning(
                "transcript_source_timeout",
                video_id=video_id,
                method=str(source.method),
                timeout=self._timeout,
            )
        except Exception as exc:
            logger.warning(
                "transcript_source_failed",
                video_id=video_id,
                method=str(source.method),
                error=str(exc),
            )
        return None

    async def fetch(
        self,
        video_id: str,
        use_cache: bool = True,
        min_length: int = 100,
    ) -> FetchedTranscript | None:
        """Fetch a transcript for ``video_id``.

        Args:
            video_id: YouTube video identifier.
            use_cache: Consult the cache before any source and store fresh
                results in it.
            min_length: Minimum transcript length in characters.

        Returns:
            The transcript with its method and cache flag, or ``None`` when
            every source failed or returned too little text.
        """
        if use_cache:
            cached = await self._cached(video_id)
            if cached is not None:
                return cached

        for source in self._sources:
            if not source.available:
                continue
            text = await self._try_source(source, video_id)
            if not text or len(text) < min_length:
                continue

            logger.info(
                "transcript_fetched",
                video_id=video_id,
                method=str(source.method),
                length=len(text),
            )
            if use_cache:
                try:
                    await asyncio.to_thread(self._cache.put, video_id, text, source.method)
                except StoreError as exc:
                    logger.warning(
                        "transcript_cache_write_failed", video_id=video_id, error=str(exc)
                    )
            return FetchedTranscript(transcript=text, method=source.method, from_cache=False)

        logger.info("transcript_unavailable", video_id=video_id)
        return None
