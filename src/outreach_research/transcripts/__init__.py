"""Transcript retrieval: cache, sources, and the fetcher that combines them."""

from outreach_research.transcripts.cache import TranscriptCache
from outreach_research.transcripts.fetcher import TranscriptFetcher
from outreach_research.transcripts.sources import (
    CaptionSource,
    TranscriptSource,
    WhisperSource,
)

__all__ = [
    "CaptionSource",
    "TranscriptCache",
    "TranscriptFetcher",
    "TranscriptSource",
    "WhisperSource",
]
