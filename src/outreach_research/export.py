"""Research result export: JSON, CSV and plain-text summary."""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from datetime import datetime

    from outreach_research.models import InsightItem, ResearchResult

EXPORT_FORMATS = ("json", "csv", "summary")

_CSV_HEADERS = [
    "Title",
    "Channel",
    "URL",
    "Relevance Score",
    "Transcript Method",
    "Transcript Cached",
]


class ExportPayload(BaseModel):
    """A rendered export ready to write or download."""

    filename: str
    data: str
    mime_type: str


def _filename_stem(industry: str, timestamp: datetime) -> str:
    stamp = timestamp.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")
    return f"youtube-research-{industry}-{stamp}"


def to_csv(result: ResearchResult) -> str:
    """One row per contributing video."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(_CSV_HEADERS)
    for video in result.video_sources:
        writer.writerow(
            [
                video.title,
                video.channel,
                video.url,
                video.relevance_score,
                str(video.transcript_method),
                str(video.transcript_cached).lower(),
            ]
        )
    return buffer.getvalue()


def _numbered(title: str, items: list[InsightItem], limit: int = 5) -> list[str]:
    lines = [f"{title}:", "-" * (len(title) + 1)]
    lines.extend(f"{i}. {item.text}" for i, item in enumerate(items[:limit], start=1))
    lines.append("")
    return lines


def to_summary(result: ResearchResult) -> str:
    """Plain-text report for reading or pasting into a brief."""
    stats = result.transcription_stats
    lines: list[str] = [
        f"{result.industry.upper()} MARKETING RESEARCH SUMMARY",
        "=" * 50,
        "",
        f"Research Date: {result.timestamp.date().isoformat()}",
        f"Total Videos Analyzed: {len(result.video_sources)}",
        f"Transcripts Obtained: {stats.successful}/{stats.attempted} "
        f"({stats.success_rate}%, {stats.cached} cached)",
        "",
    ]
    lines.extend(_numbered("KEY INSIGHTS", result.insights))
    if result.strategies:
        lines.extend(_numbered("ACTIONABLE STRATEGIES", result.strategies))
    if result.pain_points:
        lines.extend(_numbered("TOP PAIN POINTS", result.pain_points))
    if result.ai_summary:
        lines.extend(["SUMMARY:", "-" * 8, result.ai_summary, ""])
    return "\n".join(lines).strip() + "\n"


def export_result(result: ResearchResult, fmt: str = "json") -> ExportPayload:
    """Render ``result`` in ``fmt``.

    Raises:
        ValueError: If ``fmt`` is not one of ``EXPORT_FORMATS``.
    """
    stem = _filename_stem(result.industry, result.timestamp)
    if fmt == "json":
        return ExportPayload(
            filename=f"{stem}.json",
            data=result.model_dump_json(indent=2),
            mime_type="application/json",
        )
    if fmt == "csv":
        return ExportPayload(filename=f"{stem}.csv", data=to_csv(result), mime_type="text/csv")
    if fmt == "summary":
        return ExportPayload(
            filename=f"{stem}-summary.txt",
            data=to_summary(result),
            mime_type="text/plain",
        )
    raise ValueError(f"Unsupported export format: {fmt!r}")
