"""Research aggregator: the per-industry pipeline state machine.

States::

    IDLE -> CACHE_CHECK -> DONE                                   (fresh hit)
                        -> QUERYING -> PROCESSING -> SUMMARIZING
                           -> PERSISTING -> DONE                  (fresh run)

Query- and video-level failures are logged and skipped; a run always ends
in DONE with a (possibly empty) result. Blank industry names and rejected
credentials are the only errors that reach the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from outreach_research.config import ResearchSettings
from outreach_research.exceptions import (
    ConfigurationError,
    OutreachResearchError,
    StoreError,
    TransientExternalError,
)
from outreach_research.logging import (
    generate_run_id,
    log_video_source,
    step_logging_context,
)
from outreach_research.models import (
    AnalysisResult,
    Depth,
    FetchedTranscript,
    ResearchResult,
    TranscriptionStats,
    VideoCandidate,
    VideoSource,
)
from outreach_research.outcome import Outcome
from outreach_research.queries import build_queries
from outreach_research.ranking import dedupe_and_rank

if TYPE_CHECKING:
    from outreach_research.analyzer import ContentAnalyzer
    from outreach_research.config import Settings
    from outreach_research.models import ResearchQuery
    from outreach_research.repository import ResearchRepository
    from outreach_research.store import DocumentStore
    from outreach_research.transcripts.fetcher import TranscriptFetcher
    from outreach_research.youtube import YouTubeSearchClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_SEARCH_TIMEOUT = 30.0
_DEFAULT_ANALYSIS_TIMEOUT = 180.0


class ResearchState(StrEnum):
    """Aggregator lifecycle states."""

    IDLE = "idle"
    CACHE_CHECK = "cache_check"
    QUERYING = "querying"
    PROCESSING = "processing"
    SUMMARIZING = "summarizing"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass(slots=True)
class _VideoContribution:
    analysis: AnalysisResult
    source: VideoSource


@dataclass(slots=True)
class _Accumulator:
    stats: TranscriptionStats = field(default_factory=TranscriptionStats)
    contributions: list[_VideoContribution] = field(default_factory=list)


class ResearchAggregator:
    """Orchestrate search -> transcript -> analysis -> ranking -> persistence."""

    def __init__(
        self,
        search: YouTubeSearchClient,
        fetcher: TranscriptFetcher,
        analyzer: ContentAnalyzer,
        repository: ResearchRepository,
        settings: ResearchSettings | None = None,
        search_results: int = 15,
        transcript_min_length: int = 100,
        search_timeout: float = _DEFAULT_SEARCH_TIMEOUT,
        analysis_timeout: float = _DEFAULT_ANALYSIS_TIMEOUT,
    ) -> None:
        self._search = search
        self._fetcher = fetcher
        self._analyzer = analyzer
        self._repository = repository
        self._settings = settings or ResearchSettings()
        self._search_results = search_results
        self._min_length = transcript_min_length
        self._search_timeout = search_timeout
        self._analysis_timeout = analysis_timeout
        self._state = ResearchState.IDLE

    @property
    def state(self) -> ResearchState:
        return self._state

    def _transition(self, state: ResearchState) -> None:
        logger.debug("research_state", previous=str(self._state), state=str(state))
        self._state = state

    def _videos_per_query(self, depth: Depth) -> int:
        if depth == Depth.DEEP:
            return self._settings.deep_videos
        return self._settings.standard_videos

    # -----------------------------------------------------------------------
    # Collaborator calls, wrapped as outcomes
    # -----------------------------------------------------------------------

    async def _search_videos(self, query: ResearchQuery) -> Outcome[list[VideoCandidate]]:
        try:
            videos = await asyncio.wait_for(
                self._search.search(query.term, self._search_results),
                timeout=self._search_timeout,
            )
        except ConfigurationError:
            raise
        except TimeoutError:
            return Outcome.failure(TransientExternalError(f"search timed out: {query.term}"))
        except OutreachResearchError as exc:
            return Outcome.failure(exc)
        return Outcome.success(videos)

    async def _fetch_transcript(
        self, video: VideoCandidate
    ) -> Outcome[FetchedTranscript | None]:
        try:
            fetched = await self._fetcher.fetch(
                video.id, use_cache=True, min_length=self._min_length
            )
        except Exception as exc:
            return Outcome.failure(exc)
        return Outcome.success(fetched)

    async def _analyze(
        self, transcript: str, industry: str, video: VideoCandidate
    ) -> Outcome[AnalysisResult]:
        try:
            return await asyncio.wait_for(
                self._analyzer.analyze(transcript, industry, video),
                timeout=self._analysis_timeout,
            )
        except TimeoutError:
            return Outcome.failure(TransientExternalError(f"analysis timed out: {video.id}"))

    # -----------------------------------------------------------------------
    # Per-video work
    # -----------------------------------------------------------------------

    async def _process_video(
        self,
        video: VideoCandidate,
        industry: str,
        acc: _Accumulator,
    ) -> _VideoContribution | None:
        acc.stats.attempted += 1

        fetched_outcome = await self._fetch_transcript(video)
        if not fetched_outcome.ok:
            logger.warning(
                "video_transcript_error", video_id=video.id, error=str(fetched_outcome.error)
            )
            return None
        fetched = fetched_outcome.value
        if fetched is None:
            logger.info("video_no_transcript", video_id=video.id, title=video.title)
            return None

        acc.stats.record_success(fetched.method, fetched.from_cache)
        log_video_source(
            video.id,
            "transcribed",
            {"method": str(fetched.method), "from_cache": fetched.from_cache},
        )

        analysis_outcome = await self._analyze(fetched.transcript, industry, video)
        if not analysis_outcome.ok:
            logger.warning(
                "video_analysis_skipped", video_id=video.id, error=str(analysis_outcome.error)
            )
            return None
        analysis = analysis_outcome.unwrap()

        log_video_source(video.id, "analyzed", {"insights": len(analysis.insights)})
        return _VideoContribution(
            analysis=analysis,
            source=VideoSource(
                id=video.id,
                title=video.title,
                channel=video.channel_title,
                url=video.url,
                relevance_score=analysis.relevance_score,
                key_insights=analysis.insights[:3],
                transcript_method=fetched.method,
                transcript_cached=fetched.from_cache,
            ),
        )

    async def _process_query_videos(
        self,
        videos: list[VideoCandidate],
        industry: str,
        acc: _Accumulator,
    ) -> None:
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_videos)

        async def _guarded(video: VideoCandidate) -> _VideoContribution | None:
            async with semaphore:
                try:
                    return await self._process_video(video, industry, acc)
                except Exception as exc:
                    logger.error("video_processing_failed", video_id=video.id, error=str(exc))
                    return None

        # Contributions merge in candidate order whatever the completion order
        results = await asyncio.gather(*(_guarded(video) for video in videos))
        acc.contributions.extend(item for item in results if item is not None)

    # -----------------------------------------------------------------------
    # Pipeline
    # -----------------------------------------------------------------------

    def _check_cache(self, industry: str) -> ResearchResult | None:
        try:
            cached = self._repository.find_fresh(
                industry, max_age=timedelta(hours=self._settings.freshness_hours)
            )
        except StoreError as exc:
            logger.warning("research_cache_read_failed", industry=industry, error=str(exc))
            return None
        if cached is not None:
            cached.from_cache = True
            logger.info(
                "research_cache_hit",
                industry=industry,
                insights=len(cached.insights),
            )
        return cached

    async def run(
        self,
        industry: str,
        depth: Depth | str = Depth.STANDARD,
        use_cache: bool = True,
        company_size: str | None = None,
    ) -> ResearchResult:
        """Run (or reuse) research for ``industry``.

        Args:
            industry: Industry label, matched case-insensitively.
            depth: ``standard`` or ``deep``; caps videos per query.
            use_cache: Reuse a result younger than the freshness window.
            company_size: Employee bracket for company-size queries.

        Returns:
            The research result; ``from_cache`` is set when reused.

        Raises:
            ValueError: If ``industry`` is blank.
            ConfigurationError: If the search service rejects the credentials.
        """
        depth = Depth(depth)
        structlog.contextvars.bind_contextvars(run_id=generate_run_id(), industry=industry)
        try:
            return await self._run(industry.strip(), depth, use_cache, company_size)
        finally:
            structlog.contextvars.unbind_contextvars("run_id", "industry")

    async def _run(
        self,
        industry: str,
        depth: Depth,
        use_cache: bool,
        company_size: str | None,
    ) -> ResearchResult:
        self._transition(ResearchState.CACHE_CHECK)
        if use_cache:
            cached = self._check_cache(industry)
            if cached is not None:
                self._transition(ResearchState.DONE)
                return cached

        self._transition(ResearchState.QUERYING)
        queries = build_queries(industry, company_size)
        limit = self._videos_per_query(depth)
        acc = _Accumulator()

        self._transition(ResearchState.PROCESSING)
        with step_logging_context("processing", queries=len(queries)) as log:
            for query in queries:
                search_outcome = await self._search_videos(query)
                if not search_outcome.ok:
                    log.warning("query_failed", query=query.term, error=str(search_outcome.error))
                    continue
                videos = search_outcome.unwrap()
                if not videos:
                    log.info("query_no_videos", query=query.term)
                    continue
                await self._process_query_videos(videos[:limit], industry, acc)

        self._transition(ResearchState.SUMMARIZING)
        result = self._assemble(industry, acc)
        result.ai_summary = await self._analyzer.summarize(result)

        self._transition(ResearchState.PERSISTING)
        self._persist(result)

        self._transition(ResearchState.DONE)
        logger.info(
            "research_complete",
            insights=len(result.insights),
            videos=len(result.video_sources),
            attempted=result.transcription_stats.attempted,
            successful=result.transcription_stats.successful,
            cached=result.transcription_stats.cached,
            success_rate=result.transcription_stats.success_rate,
        )
        return result

    @staticmethod
    def _assemble(industry: str, acc: _Accumulator) -> ResearchResult:
        result = ResearchResult(industry=industry, transcription_stats=acc.stats)
        for contribution in acc.contributions:
            result.insights.extend(contribution.analysis.insights)
            result.strategies.extend(contribution.analysis.strategies)
            result.pain_points.extend(contribution.analysis.pain_points)
            result.approaches.extend(contribution.analysis.approaches)
            result.video_sources.append(contribution.source)

        result.transcription_stats.finalize()
        result.insights = dedupe_and_rank(result.insights)
        result.strategies = dedupe_and_rank(result.strategies)
        result.pain_points = dedupe_and_rank(result.pain_points)
        return result

    def _persist(self, result: ResearchResult) -> None:
        try:
            self._repository.save(result)
        except StoreError as exc:
            logger.error("research_save_failed", industry=result.industry, error=str(exc))
        try:
            self._repository.upsert_knowledge(result)
        except StoreError as exc:
            logger.error("knowledge_update_failed", industry=result.industry, error=str(exc))

    async def aclose(self) -> None:
        await self._search.aclose()


def build_aggregator(settings: Settings, store: DocumentStore | None = None) -> ResearchAggregator:
    """Wire a ResearchAggregator from ``settings``.

    Raises:
        ConfigurationError: If the YouTube key or the language model is
            missing.
    """
    from outreach_research.analyzer import ContentAnalyzer
    from outreach_research.llm import LLMClient
    from outreach_research.repository import ResearchRepository
    from outreach_research.store import DocumentStore
    from outreach_research.transcripts import (
        CaptionSource,
        TranscriptCache,
        TranscriptFetcher,
        WhisperSource,
    )
    from outreach_research.youtube import YouTubeSearchClient

    store = store or DocumentStore(settings.storage.directory)
    llm = LLMClient(
        model=settings.llm.model,
        fallback_models=settings.llm.fallback_models,
        timeout=settings.llm.timeout,
        retries=settings.llm.retries,
    )
    search = YouTubeSearchClient(
        api_key=settings.youtube.api_key,
        base_url=settings.youtube.base_url,
        timeout=settings.youtube.timeout,
        retries=settings.youtube.retries,
    )
    fetcher = TranscriptFetcher(
        cache=TranscriptCache(store),
        sources=[
            CaptionSource(
                settings.transcripts.languages, timeout=settings.transcripts.timeout
            ),
            WhisperSource(
                settings.transcripts.work_dir,
                enabled=settings.transcripts.asr_enabled,
                timeout=settings.transcripts.timeout,
            ),
        ],
        timeout=settings.transcripts.timeout,
    )
    analyzer = ContentAnalyzer(
        llm,
        char_budget=settings.research.transcript_char_budget,
        confidence_threshold=settings.research.confidence_threshold,
        max_tokens=settings.llm.analysis_max_tokens,
        temperature=settings.llm.analysis_temperature,
        summary_max_tokens=settings.llm.summary_max_tokens,
        summary_temperature=settings.llm.summary_temperature,
    )
    return ResearchAggregator(
        search=search,
        fetcher=fetcher,
        analyzer=analyzer,
        repository=ResearchRepository(store),
        settings=settings.research,
        search_results=settings.youtube.search_results,
        transcript_min_length=settings.transcripts.min_length,
    )
