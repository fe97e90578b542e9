"""Content analyzer: transcript -> structured marketing knowledge.

Sends a transcript prefix plus video and industry context to the language
model, decodes the JSON reply against a strict schema, and drops items
below the confidence threshold. Failures come back as ``Outcome``
failures instead of exceptions so the research loop can skip the video.
"""

from __future__ import annotations

from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from outreach_research.exceptions import MalformedResponseError, TransientExternalError
from outreach_research.llm import extract_json
from outreach_research.models import AnalysisResult, InsightItem
from outreach_research.outcome import Outcome

if TYPE_CHECKING:
    from outreach_research.llm import LLMClient
    from outreach_research.models import ResearchResult, VideoCandidate

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_PROMPTS_DIR = Path(__file__).parent / "prompts"

DEFAULT_CHAR_BUDGET = 8000
DEFAULT_CONFIDENCE_THRESHOLD = 6
SUMMARY_FALLBACK = "Summary generation failed. Please review individual insights."


@cache
def _load_prompt(name: str) -> dict[str, str]:
    """Load a prompt template file from the package ``prompts`` directory."""
    path = _PROMPTS_DIR / f"{name}.yaml"
    with path.open(encoding="utf-8") as f:
        result: dict[str, str] = yaml.safe_load(f)
    return result


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class _AnalysisPayload(BaseModel):
    """Wire shape of the model's JSON reply."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    insights: list[InsightItem] = Field(default_factory=list)
    strategies: list[InsightItem] = Field(default_factory=list)
    pain_points: list[InsightItem] = Field(default_factory=list, alias="painPoints")
    approaches: list[InsightItem] = Field(default_factory=list)
    relevance_score: float = Field(default=0.0, alias="relevanceScore")


def parse_analysis(content: str, threshold: int = DEFAULT_CONFIDENCE_THRESHOLD) -> AnalysisResult:
    """Decode and confidence-filter a raw analysis reply.

    Raises:
        MalformedResponseError: If the reply is not JSON or does not match
            the schema.
    """
    try:
        payload = _AnalysisPayload.model_validate(extract_json(content))
    except (ValueError, ValidationError) as exc:
        raise MalformedResponseError(f"Unparseable analysis response: {exc}") from exc

    def keep(items: list[InsightItem]) -> list[InsightItem]:
        return [item for item in items if item.confidence >= threshold]

    return AnalysisResult(
        insights=keep(payload.insights),
        strategies=keep(payload.strategies),
        pain_points=keep(payload.pain_points),
        approaches=keep(payload.approaches),
        relevance_score=payload.relevance_score,
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class ContentAnalyzer:
    """Extract insights, strategies, pain points and approaches per video."""

    def __init__(
        self,
        llm: LLMClient,
        char_budget: int = DEFAULT_CHAR_BUDGET,
        confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
        max_tokens: int = 1500,
        temperature: float = 0.3,
        summary_max_tokens: int = 2000,
        summary_temperature: float = 0.4,
    ) -> None:
        self._llm = llm
        self._char_budget = char_budget
        self._threshold = confidence_threshold
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._summary_max_tokens = summary_max_tokens
        self._summary_temperature = summary_temperature

    def build_prompt(self, transcript: str, industry: str, video: VideoCandidate) -> str:
        template = _load_prompt("analyzer")["user"]
        return template.format(
            industry=industry,
            title=video.title,
            channel=video.channel_title,
            transcript=transcript[: self._char_budget],
        )

    async def analyze(
        self,
        transcript: str,
        industry: str,
        video: VideoCandidate,
    ) -> Outcome[AnalysisResult]:
        """Analyze one transcript.

        Returns:
            Success with the filtered ``AnalysisResult``, or a failure
            carrying ``TransientExternalError`` (model call failed) or
            ``MalformedResponseError`` (reply not decodable).
        """
        prompt = self.build_prompt(transcript, industry, video)
        try:
            content = await self._llm.complete(
                prompt,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=_load_prompt("analyzer")["system"],
            )
        except TransientExternalError as exc:
            logger.warning("analysis_call_failed", video_id=video.id, error=str(exc))
            return Outcome.failure(exc)

        try:
            result = parse_analysis(content, self._threshold)
        except MalformedResponseError as exc:
            logger.warning("analysis_malformed", video_id=video.id, error=str(exc))
            return Outcome.failure(exc)

        logger.info(
            "analysis_ok",
            video_id=video.id,
            insights=len(result.insights),
            strategies=len(result.strategies),
            pain_points=len(result.pain_points),
            approaches=len(result.approaches),
        )
        return Outcome.success(result)

    async def summarize(self, result: ResearchResult) -> str:
        """Free-text summary and recommendations over an aggregated result."""
        template = _load_prompt("summary")["user"]
        prompt = template.format(
            industry=result.industry,
            num_insights=len(result.insights),
            num_strategies=len(result.strategies),
            num_pain_points=len(result.pain_points),
            num_videos=len(result.video_sources),
            success_rate=result.transcription_stats.success_rate,
            top_insights="; ".join(item.text for item in result.insights[:10]),
            top_pain_points="; ".join(item.text for item in result.pain_points[:10]),
        )
        try:
            return await self._llm.complete(
                prompt,
                max_tokens=self._summary_max_tokens,
                temperature=self._summary_temperature,
            )
        except TransientExternalError as exc:
            logger.error("summary_failed", industry=result.industry, error=str(exc))
            return SUMMARY_FALLBACK
