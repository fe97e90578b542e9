"""Pydantic data model for the YouTube research pipeline."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class TranscriptMethod(StrEnum):
    """Retrieval technique that produced a transcript."""

    CAPTIONS = "captions"
    ASR_FALLBACK = "asr-fallback"
    UNKNOWN = "unknown"


class Depth(StrEnum):
    """How many candidates per query a research run processes."""

    STANDARD = "standard"
    DEEP = "deep"


# ---------------------------------------------------------------------------
# Search and transcripts
# ---------------------------------------------------------------------------


class ResearchQuery(BaseModel):
    """A single search query derived from an industry name."""

    term: str
    source: str
    intent: str


class VideoCandidate(BaseModel):
    """Video metadata returned by the search index."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    channel_title: str = ""
    description: str = ""
    published_at: str = ""

    @property
    def url(self) -> str:
        return f"https://youtube.com/watch?v={self.id}"


class TranscriptRecord(BaseModel):
    """Cached transcript keyed by video ID.

    ``length`` is always recomputed from ``transcript``.
    """

    video_id: str
    transcript: str
    method: TranscriptMethod = TranscriptMethod.UNKNOWN
    cached_at: datetime = Field(default_factory=_utcnow)
    length: int = 0

    @model_validator(mode="after")
    def _sync_length(self) -> TranscriptRecord:
        self.length = len(self.transcript)
        return self


class FetchedTranscript(BaseModel):
    """Transcript returned by the fetcher."""

    transcript: str
    method: TranscriptMethod
    from_cache: bool = False


class CacheStats(BaseModel):
    """Aggregate view over the transcript cache."""

    total_cached: int = 0
    total_length: int = 0
    avg_length: float = 0.0
    methods: list[str] = Field(default_factory=list)
    method_breakdown: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class InsightItem(BaseModel):
    """One extracted insight, strategy, pain point, or approach."""

    text: str
    relevance: str = ""
    application: str = ""
    confidence: int = Field(ge=0, le=10)


class AnalysisResult(BaseModel):
    """Structured extraction for a single video."""

    insights: list[InsightItem] = Field(default_factory=list)
    strategies: list[InsightItem] = Field(default_factory=list)
    pain_points: list[InsightItem] = Field(default_factory=list)
    approaches: list[InsightItem] = Field(default_factory=list)
    relevance_score: float = 0.0


# ---------------------------------------------------------------------------
# Research results
# ---------------------------------------------------------------------------


class VideoSource(BaseModel):
    """A video that contributed to a research result."""

    id: str
    title: str
    channel: str = ""
    url: str
    relevance_score: float = 0.0
    key_insights: list[InsightItem] = Field(default_factory=list, max_length=3)
    transcript_method: TranscriptMethod = TranscriptMethod.UNKNOWN
    transcript_cached: bool = False


class TranscriptionStats(BaseModel):
    """Transcript retrieval counters for one research run."""

    attempted: int = 0
    successful: int = 0
    cached: int = 0
    methods: dict[str, int] = Field(default_factory=dict)
    success_rate: int = 0

    def record_success(self, method: TranscriptMethod, from_cache: bool) -> None:
        self.successful += 1
        if from_cache:
            self.cached += 1
        key = str(method)
        self.methods[key] = self.methods.get(key, 0) + 1

    def finalize(self) -> None:
        """Compute ``success_rate`` as a rounded percentage."""
        if self.attempted > 0:
            self.success_rate = round(self.successful / self.attempted * 100)
        else:
            self.success_rate = 0


class ResearchResult(BaseModel):
    """Outcome of one research run for an industry.

    ``from_cache`` annotates results served from a previous run and is not
    persisted.
    """

    industry: str
    timestamp: datetime = Field(default_factory=_utcnow)
    insights: list[InsightItem] = Field(default_factory=list)
    strategies: list[InsightItem] = Field(default_factory=list)
    pain_points: list[InsightItem] = Field(default_factory=list)
    approaches: list[InsightItem] = Field(default_factory=list)
    video_sources: list[VideoSource] = Field(default_factory=list)
    transcription_stats: TranscriptionStats = Field(default_factory=TranscriptionStats)
    ai_summary: str = ""
    from_cache: bool = Field(default=False, exclude=True)


class IndustryKnowledge(BaseModel):
    """Rolling per-industry summary, replaced after each fresh run."""

    industry: str
    last_updated: datetime = Field(default_factory=_utcnow)
    total_insights: int = 0
    total_strategies: int = 0
    total_pain_points: int = 0
    top_insights: list[InsightItem] = Field(default_factory=list, max_length=20)
    top_strategies: list[InsightItem] = Field(default_factory=list, max_length=15)
    top_pain_points: list[InsightItem] = Field(default_factory=list, max_length=15)
    research_summary: str = ""
    transcription_stats: TranscriptionStats = Field(default_factory=TranscriptionStats)

    @classmethod
    def from_result(cls, result: ResearchResult) -> IndustryKnowledge:
        return cls(
            industry=result.industry,
            total_insights=len(result.insights),
            total_strategies=len(result.strategies),
            total_pain_points=len(result.pain_points),
            top_insights=result.insights[:20],
            top_strategies=result.strategies[:15],
            top_pain_points=result.pain_points[:15],
            research_summary=result.ai_summary,
            transcription_stats=result.transcription_stats,
        )
