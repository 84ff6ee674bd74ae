"""YouTube adapters for single video, channel uploads and trending lists.

Metadata comes from the YouTube Data API v3 over httpx; transcripts come from
the caption tracks yt-dlp discovers for a video.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional, Sequence

import httpx
import yt_dlp
from dateutil import parser as dateparser

from newsdesk.models import VIDEO, ScrapedItem

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

CHANNEL_ID_PREFIX = "UC"
CHANNEL_ID_LENGTH = 24

TRENDING_SCHEME = "youtube_trending://"

_VIDEO_ID_PATTERNS = (
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([\w-]{6,})"),
    re.compile(r"youtu\.be/([\w-]{6,})"),
    re.compile(r"youtube\.com/(?:shorts|embed|live)/([\w-]{6,})"),
)

_CHANNEL_PATTERNS = (
    re.compile(r"youtube\.com/channel/([^/?&#]+)"),
    re.compile(r"youtube\.com/@([^/?&#]+)"),
    re.compile(r"youtube\.com/c/([^/?&#]+)"),
    re.compile(r"youtube\.com/user/([^/?&#]+)"),
)


class YouTubeError(Exception):
    """The YouTube API returned an error or an unexpected payload."""


class ChannelResolutionError(YouTubeError):
    """A handle or alias could not be resolved to a channel id."""


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def extract_video_id(url: str) -> Optional[str]:
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_channel_ref(url: str) -> Optional[str]:
    """Channel id, handle or legacy alias embedded in a channel URL."""
    for pattern in _CHANNEL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_channel_id(ref: str) -> bool:
    """Canonical channel ids start with UC and are 24 characters long."""
    return ref.startswith(CHANNEL_ID_PREFIX) and len(ref) == CHANNEL_ID_LENGTH


def trending_region(url: str, default: str = "CA") -> str:
    """Region code for a trending source: 'youtube_trending://US', 'US' or empty."""
    region = (url or "").strip()
    if region.startswith(TRENDING_SCHEME):
        region = region[len(TRENDING_SCHEME):]
    region = region.strip("/ ").upper()
    return region if re.fullmatch(r"[A-Z]{2}", region) else default


def _parse_published(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return dateparser.isoparse(raw)
    except (ValueError, OverflowError):
        return None


def _best_thumbnail(snippet: dict) -> Optional[str]:
    thumbs = snippet.get("thumbnails") or {}
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbs.get(size) or {}).get("url")
        if url:
            return url
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class YouTubeClient:
    """Thin read-only client over the parts of the Data API the adapters need."""

    def __init__(
        self,
        api_key: str,
        timeout: int = 15,
        http: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.http = http or httpx.Client(timeout=timeout, follow_redirects=True)

    def _get(self, endpoint: str, **params) -> dict:
        if not self.api_key:
            raise YouTubeError("No YouTube API key configured")
        params["key"] = self.api_key
        resp = self.http.get(f"{API_BASE}/{endpoint}", params=params)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise YouTubeError(f"{endpoint}: HTTP {resp.status_code}") from e
        return resp.json()

    def resolve_channel_id(self, handle: str) -> str:
        """Look up a channel id by handle, then by legacy username."""
        clean = handle.lstrip("@")
        for lookup in ("forHandle", "forUsername"):
            data = self._get("channels", part="id", **{lookup: clean})
            items = data.get("items") or []
            if items and items[0].get("id"):
                logger.info(f"  [YouTube] Resolved {handle} to {items[0]['id']} via {lookup}")
                return items[0]["id"]
        raise ChannelResolutionError(f"Could not resolve channel id for: {handle}")

    def list_channel_videos(self, channel_id: str, max_results: int = 15) -> list[dict]:
        """Newest videos from the channel's uploads playlist."""
        data = self._get("channels", part="contentDetails", id=channel_id)
        items = data.get("items") or []
        if not items:
            raise YouTubeError(f"Channel not found: {channel_id}")
        uploads = (
            items[0].get("contentDetails", {})
            .get("relatedPlaylists", {})
            .get("uploads")
        )
        if not uploads:
            raise YouTubeError(f"No uploads playlist for channel {channel_id}")

        data = self._get(
            "playlistItems",
            part="snippet,contentDetails",
            playlistId=uploads,
            maxResults=max_results,
        )
        videos = []
        for item in data.get("items") or []:
            snippet = item.get("snippet") or {}
            video_id = (item.get("contentDetails") or {}).get("videoId")
            if not video_id:
                continue
            videos.append({
                "id": video_id,
                "title": snippet.get("title") or "Untitled",
                "description": snippet.get("description") or "",
                "published_at": snippet.get("publishedAt"),
                "thumbnail_url": _best_thumbnail(snippet),
            })
        return videos

    def get_trending_videos(self, region: str = "CA", max_results: int = 10) -> list[dict]:
        data = self._get(
            "videos",
            part="snippet",
            chart="mostPopular",
            regionCode=region,
            maxResults=max_results,
        )
        return [self._video_from_resource(v) for v in data.get("items") or []]

    def get_video_details(self, video_id: str) -> Optional[dict]:
        data = self._get("videos", part="snippet", id=video_id)
        items = data.get("items") or []
        if not items:
            return None
        return self._video_from_resource(items[0])

    def fetch_transcript(self, video_id: str, languages: Sequence[str]) -> Optional[str]:
        """Transcript text in the first available language, or None.

        Manual subtitles win over automatic captions for the same language.
        """
        opts = {"quiet": True, "no_warnings": True, "skip_download": True}
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(WATCH_URL.format(video_id=video_id), download=False)

        subtitles = info.get("subtitles") or {}
        captions = info.get("automatic_captions") or {}
        for lang in languages:
            tracks = subtitles.get(lang) or captions.get(lang)
            if not tracks:
                continue
            track = next((t for t in tracks if t.get("ext") == "json3"), None)
            if track is None:
                continue
            text = self._download_json3(track["url"])
            if text:
                return text
        return None

    def _download_json3(self, url: str) -> str:
        resp = self.http.get(url)
        resp.raise_for_status()
        data = resp.json()
        parts = [
            seg.get("utf8", "")
            for event in data.get("events") or []
            for seg in event.get("segs") or []
        ]
        return re.sub(r"\s+", " ", " ".join(parts)).strip()

    @staticmethod
    def _video_from_resource(resource: dict) -> dict:
        snippet = resource.get("snippet") or {}
        return {
            "id": resource.get("id"),
            "title": snippet.get("title") or "Untitled",
            "description": snippet.get("description") or "",
            "published_at": snippet.get("publishedAt"),
            "thumbnail_url": _best_thumbnail(snippet),
        }

    def close(self):
        self.http.close()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

def _transcript_or_description(
    client: YouTubeClient, video: dict, languages: Sequence[str]
) -> str:
    try:
        transcript = client.fetch_transcript(video["id"], languages)
    except Exception as e:
        logger.debug(f"  [YouTube] Transcript lookup failed for {video['id']}: {e}")
        transcript = None
    if transcript:
        return transcript
    logger.info(f"  [YouTube] No transcript for {video['id']}, using description")
    return video.get("description", "")


def _video_to_item(video: dict, content: str, url: Optional[str] = None) -> ScrapedItem:
    return ScrapedItem(
        title=video["title"],
        content=content,
        url=url or WATCH_URL.format(video_id=video["id"]),
        published=_parse_published(video.get("published_at")),
        content_kind=VIDEO,
        video_id=video["id"],
        image_url=video.get("thumbnail_url"),
    )


def scrape_single_video(
    url: str, client: YouTubeClient, languages: Sequence[str] = ("en", "zh-Hans")
) -> list[ScrapedItem]:
    video_id = extract_video_id(url)
    if not video_id:
        raise YouTubeError(f"Invalid YouTube video URL: {url}")

    video = client.get_video_details(video_id) or {
        "id": video_id,
        "title": f"YouTube Video: {video_id}",
        "description": "",
    }
    content = _transcript_or_description(client, video, languages)
    return [_video_to_item(video, content, url=url)]


def scrape_channel(
    url: str,
    client: YouTubeClient,
    channel_id: Optional[str] = None,
    max_videos: int = 15,
    languages: Sequence[str] = ("en", "zh-Hans"),
) -> list[ScrapedItem]:
    """Newest uploads of a channel. Resolution failures raise ChannelResolutionError."""
    if not channel_id:
        ref = extract_channel_ref(url)
        if not ref:
            raise ChannelResolutionError(f"Invalid YouTube channel URL: {url}")
        channel_id = ref if is_channel_id(ref) else client.resolve_channel_id(ref)

    videos = client.list_channel_videos(channel_id, max_videos)
    logger.info(f"  [YouTube] Channel {channel_id}: {len(videos)} videos")
    return [
        _video_to_item(video, _transcript_or_description(client, video, languages))
        for video in videos
    ]


def scrape_trending(
    region: str,
    client: YouTubeClient,
    max_videos: int = 10,
    languages: Sequence[str] = ("en", "zh-Hans"),
) -> list[ScrapedItem]:
    videos = client.get_trending_videos(region, max_videos)
    logger.info(f"  [YouTube] Trending {region}: {len(videos)} videos")
    return [
        _video_to_item(video, _transcript_or_description(client, video, languages))
        for video in videos
    ]
