"""Tests for per-kind source dispatch."""

from unittest.mock import MagicMock, patch

from newsdesk.fetchers.sources import scrape_source
from newsdesk.models import CHANNEL, RSS, SINGLE_VIDEO, TRENDING, WEB, ScrapedItem, Source

CFG = {
    "rss_max_items": 5,
    "feed_timeout": 15,
    "og_image_timeout": 5,
    "web_body_max_chars": 5000,
    "channel_max_videos": 15,
    "trending_max_videos": 10,
    "default_trending_region": "CA",
    "transcript_languages": ["en", "zh-Hans"],
}


def _item() -> ScrapedItem:
    return ScrapedItem(title="t", content="c", url="https://example.com/t")


class TestScrapeSource:
    @patch("newsdesk.fetchers.sources.scrape_rss")
    def test_rss(self, mock_rss) -> None:
        mock_rss.return_value = [_item()]

        items = scrape_source(Source(name="Feed", url="https://example.com/rss", kind=RSS), CFG)

        assert len(items) == 1
        mock_rss.assert_called_once_with("https://example.com/rss", max_items=5, timeout=15, og_timeout=5)

    @patch("newsdesk.fetchers.sources.scrape_web_page")
    def test_web(self, mock_web) -> None:
        mock_web.return_value = [_item()]

        scrape_source(Source(name="Page", url="https://example.com/p", kind=WEB), CFG)

        mock_web.assert_called_once_with("https://example.com/p", timeout=15, max_chars=5000)

    @patch("newsdesk.fetchers.sources.scrape_channel")
    def test_channel_uses_stored_id_and_shared_client(self, mock_channel) -> None:
        youtube = MagicMock()
        source = Source(name="CBC", url="https://www.youtube.com/@cbcnews", kind=CHANNEL, channel_id="UCxyz")

        scrape_source(source, CFG, youtube=youtube)

        args, kwargs = mock_channel.call_args
        assert args == ("https://www.youtube.com/@cbcnews", youtube)
        assert kwargs["channel_id"] == "UCxyz"
        assert kwargs["max_videos"] == 15
        youtube.close.assert_not_called()

    @patch("newsdesk.fetchers.sources.scrape_trending")
    def test_trending_region(self, mock_trending) -> None:
        youtube = MagicMock()

        scrape_source(Source(name="Trending", url="youtube_trending://us", kind=TRENDING), CFG, youtube=youtube)

        mock_trending.assert_called_once_with("US", youtube, max_videos=10, languages=["en", "zh-Hans"])

    @patch("newsdesk.fetchers.sources.YouTubeClient")
    @patch("newsdesk.fetchers.sources.scrape_single_video")
    def test_own_client_is_closed(self, mock_single, mock_client_cls) -> None:
        mock_single.return_value = [_item()]

        scrape_source(Source(name="Clip", url="https://youtu.be/abcdefghijk", kind=SINGLE_VIDEO), CFG)

        mock_client_cls.return_value.close.assert_called_once()

    @patch("newsdesk.fetchers.sources.scrape_rss")
    def test_failure_yields_empty_list(self, mock_rss) -> None:
        mock_rss.side_effect = RuntimeError("connection refused")

        assert scrape_source(Source(name="Feed", url="https://example.com/rss"), CFG) == []

    def test_unknown_kind_yields_empty_list(self) -> None:
        assert scrape_source(Source(name="Odd", url="x", kind="podcast"), CFG) == []
