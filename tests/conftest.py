"""Shared pytest fixtures for the outreach-research test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from outreach_research.models import InsightItem, VideoCandidate
from outreach_research.store import DocumentStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's shell, .env and config.yaml out of the tests."""
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
    monkeypatch.delenv("OUTREACH_RESEARCH_YOUTUBE__API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path) -> DocumentStore:
    """Return an empty document store rooted in a temp directory."""
    return DocumentStore(tmp_path / "store")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _make_video(video_id: str, title: str = "") -> VideoCandidate:
    return VideoCandidate(
        id=video_id,
        title=title or f"Video {video_id}",
        channel_title="Growth Channel",
    )


def _make_item(text: str, confidence: int = 8) -> InsightItem:
    return InsightItem(
        text=text,
        relevance="high",
        application="use in cold email",
        confidence=confidence,
    )


@pytest.fixture()
def make_video() -> Callable[..., VideoCandidate]:
    return _make_video


@pytest.fixture()
def make_item() -> Callable[..., InsightItem]:
    return _make_item


@pytest.fixture()
def long_transcript() -> str:
    """Transcript comfortably above the 100-character minimum."""
    return (
        "Today we talk about cold outreach for software companies. "
        "Personalize the first line, keep the ask small, and follow up twice. "
    ) * 3
