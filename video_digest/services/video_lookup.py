from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from video_digest.errors import RemoteCallError
from video_digest.models.digest import RankedVideo, VideoCandidate
from video_digest.services.common import as_dict, as_list
from video_digest.services.google_api import (
    build_google_service,
    http_status_of,
    summarize_exception_message,
)

LOGGER = logging.getLogger("video_digest.video_lookup")

MAX_SEARCH_RESULTS = 50


class VideoLookup:
    def __init__(self, *, api_key: str, client: Any | None = None) -> None:
        self._api_key = api_key
        self._client = client

    def _youtube(self) -> Any:
        if self._client is None:
            self._client = build_google_service("youtube", "v3", developerKey=self._api_key)
        return self._client

    def search(self, term: str, max_results: int) -> list[VideoCandidate]:
        if not 1 <= max_results <= MAX_SEARCH_RESULTS:
            raise ValueError(f"max_results must be between 1 and {MAX_SEARCH_RESULTS}")

        response = self._execute(
            "youtube.search",
            lambda client: client.search().list(
                part="snippet",
                q=term,
                maxResults=max_results,
                type="video",
            ),
        )

        candidates: list[VideoCandidate] = []
        seen: set[str] = set()
        for raw_item in as_list(response.get("items")):
            item = as_dict(raw_item)
            video_id = _coerce_nonempty_string(as_dict(item.get("id")).get("videoId"))
            if video_id is None or video_id in seen:
                continue
            seen.add(video_id)
            title = _coerce_nonempty_string(as_dict(item.get("snippet")).get("title"))
            candidates.append(VideoCandidate(video_id=video_id, title=title or video_id))
        return candidates

    def fetch_statistics(self, video_ids: Sequence[str]) -> list[dict[str, Any]]:
        if not video_ids:
            return []
        response = self._execute(
            "youtube.videos",
            lambda client: client.videos().list(
                part="snippet,statistics",
                id=",".join(video_ids),
            ),
        )
        return [as_dict(item) for item in as_list(response.get("items"))]

    def lookup(self, term: str, max_results: int) -> list[RankedVideo]:
        candidates = self.search(term, max_results)
        LOGGER.debug("youtube search term=%r candidates=%d", term, len(candidates))
        items = self.fetch_statistics([candidate.video_id for candidate in candidates])
        ranked = rank(items)
        for index, video in enumerate(ranked, start=1):
            LOGGER.info("%s", video.message_line(index))
        return ranked

    def _execute(self, service: str, build_request: Callable[[Any], Any]) -> dict[str, Any]:
        try:
            response = build_request(self._youtube()).execute()
        except Exception as exc:
            raise RemoteCallError(
                f"YouTube request failed ({service}): {summarize_exception_message(exc)}",
                service=service,
                status_code=http_status_of(exc),
            ) from exc
        return as_dict(response)


def rank(items: Sequence[dict[str, Any]]) -> list[RankedVideo]:
    """Order by numeric view count, highest first; equal counts keep provider order."""
    videos: list[RankedVideo] = []
    for item in items:
        video_id = _coerce_nonempty_string(item.get("id")) or ""
        title = _coerce_nonempty_string(as_dict(item.get("snippet")).get("title")) or video_id
        view_count = _coerce_view_count(as_dict(item.get("statistics")).get("viewCount"))
        videos.append(RankedVideo(video_id=video_id, title=title, view_count=view_count))
    return sorted(videos, key=lambda video: video.view_count, reverse=True)


def _coerce_view_count(raw_value: object) -> int:
    # The API returns counts as decimal strings; comparing them as text would
    # put "9" above "10".
    if isinstance(raw_value, bool):
        return 0
    if isinstance(raw_value, int):
        return max(0, raw_value)
    if isinstance(raw_value, float):
        return max(0, int(raw_value))
    if isinstance(raw_value, str):
        try:
            return max(0, int(raw_value.strip()))
        except ValueError:
            return 0
    return 0


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    return None
