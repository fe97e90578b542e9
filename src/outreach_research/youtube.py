"""YouTube Data API v3 search client.

Candidates are returned in the API's own relevance order; nothing is
re-ranked locally.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from outreach_research.exceptions import (
    ConfigurationError,
    QuotaExceededError,
    TransientExternalError,
)
from outreach_research.models import VideoCandidate

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Quota costs (units per call)
# ---------------------------------------------------------------------------

QUOTA_SEARCH = 100
QUOTA_VIDEOS = 1
DAILY_QUOTA = 10_000

_DEFAULT_BASE_URL = "https://www.googleapis.com/youtube/v3"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    return str(payload.get("error", {}).get("message", "")) or response.text[:200]


def _raise_for_status(response: httpx.Response) -> None:
    """Translate API error statuses into the package taxonomy."""
    if response.status_code < 400:
        return
    message = _error_message(response)
    if response.status_code == 403:
        lowered = message.lower()
        if "quota" in lowered:
            raise QuotaExceededError(f"YouTube API quota exceeded: {message}")
        if "key" in lowered:
            raise ConfigurationError(f"Invalid YouTube API key: {message}")
        raise TransientExternalError(f"YouTube API access denied: {message}")
    if response.status_code == 400:
        raise TransientExternalError(f"Invalid search query parameters: {message}")
    raise TransientExternalError(
        f"YouTube API error {response.status_code}: {message}"
    )


def _format_items(items: list[dict[str, Any]]) -> list[VideoCandidate]:
    candidates: list[VideoCandidate] = []
    for item in items:
        video_id = item.get("id", {}).get("videoId")
        if not video_id:
            continue
        snippet = item.get("snippet", {})
        candidates.append(
            VideoCandidate(
                id=video_id,
                title=snippet.get("title", ""),
                channel_title=snippet.get("channelTitle", ""),
                description=snippet.get("description", ""),
                published_at=snippet.get("publishedAt", ""),
            )
        )
    return candidates


class YouTubeSearchClient:
    """Async client for the YouTube Data API search and videos endpoints.

    Attributes:
        quota_used: Quota units consumed by this client instance.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = 15.0,
        retries: int = 3,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                "YouTube API key not configured. Set YOUTUBE_API_KEY or "
                "OUTREACH_RESEARCH_YOUTUBE__API_KEY."
            )
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._retries = retries
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.quota_used = 0

    async def __aenter__(self) -> YouTubeSearchClient:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------

    async def _request(self, endpoint: str, params: dict[str, Any]) -> httpx.Response:
        @retry(
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async def _do_get() -> httpx.Response:
            return await self._client.get(
                f"{self._base_url}/{endpoint}",
                params={**params, "key": self._api_key},
            )

        return await _do_get()

    async def _get(
        self,
        endpoint: str,
        params: dict[str, Any],
        quota_cost: int,
    ) -> dict[str, Any]:
        try:
            response = await self._request(endpoint, params)
        except httpx.TransportError as exc:
            raise TransientExternalError(f"YouTube {endpoint} request failed: {exc}") from exc
        self.quota_used += quota_cost
        _raise_for_status(response)
        payload: dict[str, Any] = response.json()
        return payload

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def search(self, query: str, max_results: int = 15) -> list[VideoCandidate]:
        """Search videos matching ``query``.

        When a multi-word query finds nothing, the search is retried once
        with only its first word.

        Args:
            query: Free-text search query.
            max_results: Upper bound on returned candidates (1-50).

        Returns:
            Candidates in the API's relevance order; possibly empty.

        Raises:
            TransientExternalError: On network, quota, or request errors.
            ConfigurationError: When the API rejects the key.
        """
        params = {
            "q": query,
            "part": "snippet",
            "type": "video",
            "maxResults": max_results,
            "order": "relevance",
        }
        payload = await self._get("search", params, QUOTA_SEARCH)
        candidates = _format_items(payload.get("items", []))

        if not candidates and " " in query.strip():
            simple_query = query.split()[0]
            logger.info("search_retry_simplified", query=query, simple_query=simple_query)
            payload = await self._get("search", {**params, "q": simple_query}, QUOTA_SEARCH)
            candidates = _format_items(payload.get("items", []))

        logger.info("search_complete", query=query, found=len(candidates))
        return candidates[:max_results]

    async def video_details(self, video_id: str) -> dict[str, Any] | None:
        """Fetch snippet, statistics and duration for one video."""
        payload = await self._get(
            "videos",
            {"id": video_id, "part": "snippet,statistics,contentDetails"},
            QUOTA_VIDEOS,
        )
        items = payload.get("items", [])
        if not items:
            return None
        video = items[0]
        snippet = video.get("snippet", {})
        stats = video.get("statistics", {})
        return {
            "id": video_id,
            "title": snippet.get("title", ""),
            "description": snippet.get("description", ""),
            "channel_title": snippet.get("channelTitle", ""),
            "published_at": snippet.get("publishedAt", ""),
            "duration": video.get("contentDetails", {}).get("duration", ""),
            "view_count": int(stats.get("viewCount", 0) or 0),
            "like_count": int(stats.get("likeCount", 0) or 0),
            "comment_count": int(stats.get("commentCount", 0) or 0),
            "tags": snippet.get("tags", []),
        }

    async def probe(self) -> int:
        """Run a one-result search to verify key and connectivity.

        Returns:
            Number of videos returned (0 or 1).
        """
        payload = await self._get(
            "search",
            {"q": "marketing", "part": "snippet", "type": "video", "maxResults": 1},
            QUOTA_SEARCH,
        )
        return len(payload.get("items", []))
