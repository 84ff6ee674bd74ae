"""Tests for the RSS adapter and its image chain."""

from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from newsdesk.fetchers.rss_fetcher import entries_to_items, extract_entry_image, scrape_rss


def _rss(items: list[str]) -> bytes:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">'
        "<channel><title>Local News</title><link>https://news.example.com</link>"
        + "".join(items)
        + "</channel></rss>"
    ).encode()


def _item(n: int, extra: str = "", description: str = "Plain text") -> str:
    return (
        f"<item><title>Story {n}</title><link>https://news.example.com/{n}</link>"
        f"<description>{description}</description>"
        f"<pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>{extra}</item>"
    )


class TestExtractEntryImage:
    def test_enclosure_first(self) -> None:
        entry = {
            "enclosures": [
                {"href": "https://cdn.example.com/a.mp3", "type": "audio/mpeg"},
                {"href": "https://cdn.example.com/a.jpg", "type": "image/jpeg"},
            ],
            "media_thumbnail": [{"url": "https://cdn.example.com/thumb.jpg"}],
        }
        assert extract_entry_image(entry) == "https://cdn.example.com/a.jpg"

    def test_media_thumbnail(self) -> None:
        entry = {
            "media_thumbnail": [{"url": "https://cdn.example.com/thumb.jpg"}],
            "media_content": [{"url": "https://cdn.example.com/full.jpg", "medium": "image"}],
        }
        assert extract_entry_image(entry) == "https://cdn.example.com/thumb.jpg"

    def test_media_content_skips_video(self) -> None:
        entry = {
            "media_content": [
                {"url": "https://cdn.example.com/clip.mp4", "medium": "video"},
                {"url": "https://cdn.example.com/still.png", "type": "image/png"},
            ]
        }
        assert extract_entry_image(entry) == "https://cdn.example.com/still.png"

    def test_image_tag(self) -> None:
        assert extract_entry_image({"image": {"href": "https://cdn.example.com/i.jpg"}}) == (
            "https://cdn.example.com/i.jpg"
        )

    def test_img_in_content_before_description(self) -> None:
        entry = {
            "content": [{"value": '<p><img src="https://cdn.example.com/content.jpg"></p>'}],
            "summary": '<img src="https://cdn.example.com/summary.jpg">',
        }
        assert extract_entry_image(entry) == "https://cdn.example.com/content.jpg"

    def test_no_image(self) -> None:
        assert extract_entry_image({"summary": "just words"}) is None


class TestEntriesToItems:
    def test_plain_text_and_date(self) -> None:
        entry = {
            "title": " Budget passes ",
            "link": "https://news.example.com/budget",
            "summary": "<p>Council <b>voted</b> 9-4.</p>",
            "published": "Mon, 01 Jan 2024 12:00:00 GMT",
        }

        item = entries_to_items([entry], "https://news.example.com/rss")[0]

        assert item.title == "Budget passes"
        assert item.content == "Council voted 9-4."
        assert item.published == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert item.content_kind == "article"

    def test_cap(self) -> None:
        entries = [{"title": f"t{n}", "link": f"https://e.com/{n}"} for n in range(8)]

        assert len(entries_to_items(entries, "https://e.com/rss", max_items=5)) == 5


class TestScrapeRss:
    @patch("newsdesk.fetchers.rss_fetcher.fetch_og_image")
    @patch("newsdesk.fetchers.rss_fetcher.httpx.get")
    def test_caps_items_and_fills_missing_images(self, mock_get, mock_og) -> None:
        items = [
            _item(0, extra='<media:thumbnail url="https://cdn.example.com/0.jpg"/>'),
            _item(1, description='&lt;p&gt;Hi &lt;img src="https://cdn.example.com/1.jpg"/&gt;&lt;/p&gt;'),
        ] + [_item(n) for n in range(2, 8)]
        mock_get.return_value = Mock(content=_rss(items))
        mock_og.return_value = "https://cdn.example.com/og.jpg"

        result = scrape_rss("https://news.example.com/rss", max_items=5, og_timeout=5)

        assert [i.title for i in result] == [f"Story {n}" for n in range(5)]
        assert result[0].image_url == "https://cdn.example.com/0.jpg"
        assert result[1].image_url == "https://cdn.example.com/1.jpg"
        assert result[2].image_url == "https://cdn.example.com/og.jpg"
        assert mock_og.call_count == 3
        mock_og.assert_any_call("https://news.example.com/2", timeout=5)

    @patch("newsdesk.fetchers.rss_fetcher.httpx.get")
    def test_http_error_propagates_to_dispatcher(self, mock_get) -> None:
        mock_get.return_value.raise_for_status.side_effect = RuntimeError("503")

        with pytest.raises(RuntimeError):
            scrape_rss("https://news.example.com/rss")
