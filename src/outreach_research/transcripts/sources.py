"""Transcript sources, tried by the fetcher in fixed priority order.

Captions come from ``youtube-transcript-api`` (manually-created transcript
first, then auto-generated). The speech-to-text fallback downloads the
audio with ``yt-dlp`` and transcribes it with ``whisper-cli``.
"""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Protocol

import requests
import structlog
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    YouTubeTranscriptApi,
)

from outreach_research.models import TranscriptMethod

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_MARKER_RE = re.compile(r"\[[^\]]*\]")
_WHITESPACE_RE = re.compile(r"\s+")

_DEFAULT_TIMEOUT_SECONDS = 120.0

_DEFAULT_TIMEOUT_SECONDS = 120.0


def clean_transcript_text(text: str) -> str:
    """Strip ``[Music]``-style markers and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _MARKER_RE.sub("", text)).strip()


class TranscriptSource(Protocol):
    """A single way of obtaining transcript text for a video."""

    method: TranscriptMethod

    @property
    def available(self) -> bool: ...

    def fetch(self, video_id: str) -> str | None:
        """Return transcript text, or ``None`` when the video has none."""
        ...


# ---------------------------------------------------------------------------
# Platform captions
# ---------------------------------------------------------------------------


class _TimeoutSession(requests.Session):
    """Session that applies a default timeout to every request."""

    def __init__(self, timeout: float) -> None:
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):  # type: ignore[no-untyped-def,override]
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


class CaptionSource:
    """YouTube captions via youtube-transcript-api."""

    method = TranscriptMethod.CAPTIONS

    def __init__(
        self,
        languages: list[str] | None = None,
        api: YouTubeTranscriptApi | None = None,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._languages = languages or ["en", "en-US", "en-GB"]
        self._api = api or YouTubeTranscriptApi(http_client=_TimeoutSession(timeout))

    @property
    def available(self) -> bool:
        return True

    def fetch(self, video_id: str) -> str | None:
        try:
            transcript_list = self._api.list(video_id)
        except CouldNotRetrieveTranscript as exc:
            logger.debug(
                "captions_unavailable", video_id=video_id, reason=type(exc).__name__
            )
            return None

        try:
            transcript = transcript_list.find_manually_created_transcript(
                self._languages
            )
        except NoTranscriptFound:
            try:
                transcript = transcript_list.find_generated_transcript(self._languages)
            except NoTranscriptFound:
                logger.debug("captions_no_language_match", video_id=video_id)
                return None

        snippets = transcript.fetch()
        text = " ".join(snippet.text for snippet in snippets)
        return clean_transcript_text(text)


# ---------------------------------------------------------------------------
# Speech-to-text fallback
# ---------------------------------------------------------------------------


class WhisperSource:
    """Audio download with yt-dlp followed by whisper-cli transcription.

    Both child processes share one ``timeout`` budget; a process that
    overruns it is killed and the video yields no transcript.
    """

    method = TranscriptMethod.ASR_FALLBACK

    def __init__(
        self,
        work_dir: Path,
        enabled: bool = True,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._work_dir = work_dir
        self._enabled = enabled
        self._timeout = timeout

    @property
    def available(self) -> bool:
        return (
            self._enabled
            and shutil.which("yt-dlp") is not None
            and shutil.which("whisper-cli") is not None
        )

    def _run(
        self, args: list[str], deadline: float, video_id: str
    ) -> subprocess.CompletedProcess[str] | None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("asr_timeout", video_id=video_id, command=args[0])
            return None
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=remaining,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                "asr_timeout", video_id=video_id, command=args[0], timeout=self._timeout
            )
            return None

    def fetch(self, video_id: str) -> str | None:
        self._work_dir.mkdir(parents=True, exist_ok=True)
        video_url = f"https://www.youtube.com/watch?v={video_id}"
        deadline = time.monotonic() + self._timeout

        with tempfile.TemporaryDirectory(dir=self._work_dir) as tmp:
            audio_path = Path(tmp) / "audio.m4a"
            transcript_base = Path(tmp) / "transcript"

            download = self._run(
                ["yt-dlp", "-f", "bestaudio", "-o", str(audio_path), video_url],
                deadline,
                video_id,
            )
            if download is None:
                return None
            if download.returncode != 0:
                logger.debug(
                    "asr_download_failed",
                    video_id=video_id,
                    stderr=download.stderr[-300:],
                )
                return None

            whisper = self._run(
                [
                    "whisper-cli",
                    "-f",
                    str(audio_path),
                    "-otxt",
                    "-of",
                    str(transcript_base),
                ],
                deadline,
                video_id,
            )
            if whisper is None:
                return None
            transcript_path = transcript_base.with_suffix(".txt")
            if whisper.returncode != 0 or not transcript_path.exists():
                logger.debug(
                    "asr_transcribe_failed",
                    video_id=video_id,
                    stderr=whisper.stderr[-300:],
                )
                return None

            text = transcript_path.read_text(encoding="utf-8", errors="ignore")
        return clean_transcript_text(text)
