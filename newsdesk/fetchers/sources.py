"""Dispatch a configured source to the adapter for its kind."""

import logging
from typing import Optional

from newsdesk.fetchers.html_scraper import scrape_web_page
from newsdesk.fetchers.rss_fetcher import scrape_rss
from newsdesk.fetchers.youtube import (
    YouTubeClient,
    scrape_channel,
    scrape_single_video,
    scrape_trending,
    trending_region,
)
from newsdesk.models import CHANNEL, RSS, SINGLE_VIDEO, TRENDING, WEB, ScrapedItem, Source

logger = logging.getLogger(__name__)


def scrape_source(
    source: Source, cfg: dict, youtube: Optional[YouTubeClient] = None
) -> list[ScrapedItem]:
    """Scrape one source. A failure is logged and yields an empty list."""
    try:
        return _dispatch(source, cfg, youtube)
    except Exception as e:
        logger.error(f"  [Source] {source.name} ({source.kind}) failed: {e}")
        return []


def _dispatch(source: Source, cfg: dict, youtube: Optional[YouTubeClient]) -> list[ScrapedItem]:
    languages = cfg.get("transcript_languages", ["en", "zh-Hans"])

    if source.kind == RSS:
        return scrape_rss(
            source.url,
            max_items=cfg.get("rss_max_items", 5),
            timeout=cfg.get("feed_timeout", 15),
            og_timeout=cfg.get("og_image_timeout", 5),
        )
    if source.kind == WEB:
        return scrape_web_page(
            source.url,
            timeout=cfg.get("feed_timeout", 15),
            max_chars=cfg.get("web_body_max_chars", 5000),
        )

    if source.kind not in (SINGLE_VIDEO, CHANNEL, TRENDING):
        raise ValueError(f"Unknown source kind: {source.kind}")

    own_client = youtube is None
    client = youtube or YouTubeClient(
        cfg.get("youtube_api_key", ""), timeout=cfg.get("feed_timeout", 15)
    )
    try:
        if source.kind == SINGLE_VIDEO:
            return scrape_single_video(source.url, client, languages)
        if source.kind == CHANNEL:
            return scrape_channel(
                source.url,
                client,
                channel_id=source.channel_id,
                max_videos=cfg.get("channel_max_videos", 15),
                languages=languages,
            )
        region = trending_region(source.url, cfg.get("default_trending_region", "CA"))
        return scrape_trending(
            region,
            client,
            max_videos=cfg.get("trending_max_videos", 10),
            languages=languages,
        )
    finally:
        if own_client:
            client.close()
