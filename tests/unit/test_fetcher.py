"""Unit tests for outreach_research.transcripts (fetcher and sources)."""

from __future__ import annotations

import asyncio
import os
import threading
import time
from types import SimpleNamespace
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest
import requests
from youtube_transcript_api import NoTranscriptFound, TranscriptsDisabled

from outreach_research.exceptions import StoreError
from outreach_research.models import TranscriptMethod
from outreach_research.transcripts import (
    CaptionSource,
    TranscriptCache,
    TranscriptFetcher,
    WhisperSource,
)
from outreach_research.transcripts.sources import _TimeoutSession, clean_transcript_text

if TYPE_CHECKING:
    from pathlib import Path

    from outreach_research.store import DocumentStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeSource:
    def __init__(
        self,
        method: TranscriptMethod,
        text: str | None = None,
        error: Exception | None = None,
        available: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.method = method
        self._text = text
        self._error = error
        self._available = available
        self._delay = delay
        self.calls: list[str] = []

    @property
    def available(self) -> bool:
        return self._available

    def fetch(self, video_id: str) -> str | None:
        self.calls.append(video_id)
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._text


# ---------------------------------------------------------------------------
# TranscriptFetcher
# ---------------------------------------------------------------------------


class TestFetcherCache:
    """Cache-first behavior."""

    @pytest.mark.asyncio()
    async def test_cache_hit_skips_sources(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        cache = TranscriptCache(store)
        cache.put("vid", long_transcript, TranscriptMethod.CAPTIONS)
        source = _FakeSource(TranscriptMethod.CAPTIONS, text="other " * 50)

        result = await TranscriptFetcher(cache, [source]).fetch("vid")

        assert result is not None
        assert result.from_cache is True
        assert result.transcript == long_transcript
        assert result.method == TranscriptMethod.CAPTIONS
        assert source.calls == []

    @pytest.mark.asyncio()
    async def test_fresh_fetch_is_cached(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        cache = TranscriptCache(store)
        source = _FakeSource(TranscriptMethod.CAPTIONS, text=long_transcript)
        fetcher = TranscriptFetcher(cache, [source])

        first = await fetcher.fetch("vid")
        second = await fetcher.fetch("vid")

        assert first is not None and first.from_cache is False
        assert second is not None and second.from_cache is True
        assert first.transcript == second.transcript
        assert source.calls == ["vid"]

    @pytest.mark.asyncio()
    async def test_use_cache_false_bypasses_and_does_not_write(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        cache = TranscriptCache(store)
        cache.put("vid", "cached " * 40, TranscriptMethod.CAPTIONS)
        source = _FakeSource(TranscriptMethod.ASR_FALLBACK, text=long_transcript)

        result = await TranscriptFetcher(cache, [source]).fetch("vid", use_cache=False)

        assert result is not None
        assert result.from_cache is False
        assert result.method == TranscriptMethod.ASR_FALLBACK
        record = cache.get("vid")
        assert record is not None
        assert record.transcript.startswith("cached")

    @pytest.mark.asyncio()
    async def test_cache_write_failure_still_returns_text(
        self, long_transcript: str
    ) -> None:
        cache = MagicMock()
        cache.get.return_value = None
        cache.put.side_effect = StoreError("disk full")
        source = _FakeSource(TranscriptMethod.CAPTIONS, text=long_transcript)

        result = await TranscriptFetcher(cache, [source]).fetch("vid")

        assert result is not None
        assert result.transcript == long_transcript


class TestFetcherSources:
    """Source priority, length floor, failures and timeouts."""

    @pytest.mark.asyncio()
    async def test_short_caption_falls_through_to_asr(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        captions = _FakeSource(TranscriptMethod.CAPTIONS, text="too short")
        asr = _FakeSource(TranscriptMethod.ASR_FALLBACK, text=long_transcript)

        result = await TranscriptFetcher(TranscriptCache(store), [captions, asr]).fetch("v")

        assert result is not None
        assert result.method == TranscriptMethod.ASR_FALLBACK

    @pytest.mark.asyncio()
    async def test_failing_source_is_skipped(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        captions = _FakeSource(TranscriptMethod.CAPTIONS, error=RuntimeError("boom"))
        asr = _FakeSource(TranscriptMethod.ASR_FALLBACK, text=long_transcript)

        result = await TranscriptFetcher(TranscriptCache(store), [captions, asr]).fetch("v")

        assert result is not None
        assert result.method == TranscriptMethod.ASR_FALLBACK

    @pytest.mark.asyncio()
    async def test_unavailable_source_is_not_called(self, store: DocumentStore) -> None:
        asr = _FakeSource(TranscriptMethod.ASR_FALLBACK, text="x" * 500, available=False)

        result = await TranscriptFetcher(TranscriptCache(store), [asr]).fetch("v")

        assert result is None
        assert asr.calls == []

    @pytest.mark.asyncio()
    async def test_all_sources_fail_returns_none(self, store: DocumentStore) -> None:
        sources = [
            _FakeSource(TranscriptMethod.CAPTIONS, text=None),
            _FakeSource(TranscriptMethod.ASR_FALLBACK, text=""),
        ]
        result = await TranscriptFetcher(TranscriptCache(store), sources).fetch("v")
        assert result is None
        assert TranscriptCache(store).get("v") is None

    @pytest.mark.asyncio()
    async def test_min_length_is_configurable(self, store: DocumentStore) -> None:
        source = _FakeSource(TranscriptMethod.CAPTIONS, text="short text")
        fetcher = TranscriptFetcher(TranscriptCache(store), [source])
        result = await fetcher.fetch("v", min_length=5)
        assert result is not None

    @pytest.mark.asyncio()
    async def test_slow_source_times_out(
        self, store: DocumentStore, long_transcript: str
    ) -> None:
        slow = _FakeSource(TranscriptMethod.CAPTIONS, text=long_transcript, delay=0.5)
        asr = _FakeSource(TranscriptMethod.ASR_FALLBACK, text=long_transcript)

        fetcher = TranscriptFetcher(TranscriptCache(store), [slow, asr], timeout=0.05)
        result = await fetcher.fetch("v")

        assert result is not None
        assert result.method == TranscriptMethod.ASR_FALLBACK

    @pytest.mark.asyncio()
    async def test_cache_io_runs_off_the_event_loop(self, long_transcript: str) -> None:
        loop_thread = threading.get_ident()
        io_threads: list[int] = []

        def _record(*_args: object) -> None:
            io_threads.append(threading.get_ident())

        cache = MagicMock()
        cache.get.side_effect = _record
        cache.put.side_effect = _record
        source = _FakeSource(TranscriptMethod.CAPTIONS, text=long_transcript)

        result = await TranscriptFetcher(cache, [source]).fetch("vid")

        assert result is not None
        assert len(io_threads) == 2
        assert loop_thread not in io_threads


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TestCleanTranscriptText:
    """Marker stripping and whitespace normalisation."""

    def test_strips_markers_and_collapses_whitespace(self) -> None:
        raw = "[Music]  hello \n\n world [Applause]"
        assert clean_transcript_text(raw) == "hello world"


class TestCaptionSource:
    """youtube-transcript-api integration with a mocked API object."""

    def _api_with(self, transcript_list: MagicMock) -> MagicMock:
        api = MagicMock()
        api.list.return_value = transcript_list
        return api

    def test_prefers_manual_transcript(self) -> None:
        manual = MagicMock()
        manual.fetch.return_value = [
            SimpleNamespace(text="hello"),
            SimpleNamespace(text="[Music] world"),
        ]
        transcript_list = MagicMock()
        transcript_list.find_manually_created_transcript.return_value = manual

        source = CaptionSource(["en"], api=self._api_with(transcript_list))

        assert source.fetch("vid") == "hello world"
        transcript_list.find_generated_transcript.assert_not_called()

    def test_falls_back_to_generated_transcript(self) -> None:
        generated = MagicMock()
        generated.fetch.return_value = [SimpleNamespace(text="auto captions")]
        transcript_list = MagicMock()
        transcript_list.find_manually_created_transcript.side_effect = NoTranscriptFound(
            "vid", ["en"], transcript_list
        )
        transcript_list.find_generated_transcript.return_value = generated

        source = CaptionSource(["en"], api=self._api_with(transcript_list))

        assert source.fetch("vid") == "auto captions"

    def test_disabled_transcripts_return_none(self) -> None:
        api = MagicMock()
        api.list.side_effect = TranscriptsDisabled("vid")
        assert CaptionSource(["en"], api=api).fetch("vid") is None

    def test_no_language_match_returns_none(self) -> None:
        transcript_list = MagicMock()
        not_found = NoTranscriptFound("vid", ["en"], transcript_list)
        transcript_list.find_manually_created_transcript.side_effect = not_found
        transcript_list.find_generated_transcript.side_effect = not_found

        source = CaptionSource(["en"], api=self._api_with(transcript_list))

        assert source.fetch("vid") is None


class TestWhisperSource:
    """Availability gating of the speech-to-text fallback."""

    def test_disabled_is_unavailable(self, tmp_path: Path) -> None:
        with patch("outreach_research.transcripts.sources.shutil.which", return_value="/bin/x"):
            assert WhisperSource(tmp_path, enabled=False).available is False

    def test_missing_binary_is_unavailable(self, tmp_path: Path) -> None:
        with patch("outreach_research.transcripts.sources.shutil.which", return_value=None):
            assert WhisperSource(tmp_path, enabled=True).available is False

    def test_enabled_with_binaries_is_available(self, tmp_path: Path) -> None:
        with patch("outreach_research.transcripts.sources.shutil.which", return_value="/bin/x"):
            assert WhisperSource(tmp_path, enabled=True).available is True

    def test_download_failure_returns_none(self, tmp_path: Path) -> None:
        failed = SimpleNamespace(returncode=1, stderr="ERROR: private video", stdout="")
        with patch(
            "outreach_research.transcripts.sources.subprocess.run", return_value=failed
        ) as run:
            assert WhisperSource(tmp_path).fetch("vid") is None
        assert run.call_count == 1
        assert run.call_args.args[0][0] == "yt-dlp"


def _slow_binaries(directory: Path, seconds: int) -> None:
    directory.mkdir()
    for name in ("yt-dlp", "whisper-cli"):
        script = directory / name
        script.write_text(f"#!/bin/sh\nexec sleep {seconds}\n", encoding="utf-8")
        script.chmod(0o755)


class TestSourceTimeouts:
    """A timed-out source stops its own work instead of leaving it running."""

    def test_slow_download_is_killed(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _slow_binaries(tmp_path / "bin", seconds=3)
        monkeypatch.setenv("PATH", f"{tmp_path / 'bin'}{os.pathsep}{os.environ['PATH']}")
        source = WhisperSource(tmp_path / "work", timeout=0.2)

        started = time.monotonic()
        assert source.fetch("vid") is None
        assert time.monotonic() - started < 2.0

    def test_fetcher_run_ends_within_timeout(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, store: DocumentStore
    ) -> None:
        _slow_binaries(tmp_path / "bin", seconds=3)
        monkeypatch.setenv("PATH", f"{tmp_path / 'bin'}{os.pathsep}{os.environ['PATH']}")
        source = WhisperSource(tmp_path / "work", enabled=True, timeout=0.2)
        fetcher = TranscriptFetcher(TranscriptCache(store), [source], timeout=0.2)

        started = time.monotonic()
        assert asyncio.run(fetcher.fetch("vid")) is None
        assert time.monotonic() - started < 2.0

    def test_caption_session_applies_default_timeout(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        sent = MagicMock()
        monkeypatch.setattr(requests.Session, "request", sent)

        _TimeoutSession(7.5).get("https://www.youtube.com/watch?v=vid")

        assert sent.call_args.kwargs["timeout"] == 7.5

    def test_caption_source_uses_timeout_session(self) -> None:
        with patch("outreach_research.transcripts.sources.YouTubeTranscriptApi") as api_cls:
            CaptionSource(["en"], timeout=4.0)
        session = api_cls.call_args.kwargs["http_client"]
        assert isinstance(session, _TimeoutSession)
        assert session.timeout == 4.0
