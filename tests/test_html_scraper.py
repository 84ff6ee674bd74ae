"""Tests for the web page adapter and lead-image heuristics."""

from unittest.mock import Mock, patch

import httpx
from lxml import html as lxml_html

from newsdesk.fetchers.html_scraper import (
    extract_image,
    extract_title,
    fetch_og_image,
    is_valid_image_url,
    make_absolute_url,
    parse_web_page,
    scrape_web_page,
)

PAGE = """
<html>
<head>
  <title>Fallback title</title>
  <meta property="og:title" content="Transit expansion approved">
  <meta property="og:image" content="/img/lead.jpg">
  <script>var tracking = "noise";</script>
</head>
<body>
  <nav>Home | News | Sports</nav>
  <header>Site header</header>
  <article>
    <h1>Transit expansion approved</h1>
    <p>The province approved   the new line.</p>
    <div class="ad">Buy now</div>
    <p>Construction starts in spring.</p>
  </article>
  <footer>Copyright</footer>
</body>
</html>
"""


class TestParseWebPage:
    def test_title_body_and_image(self) -> None:
        item = parse_web_page(PAGE, "https://news.example.com/story", max_chars=5000)

        assert item.title == "Transit expansion approved"
        assert item.image_url == "https://news.example.com/img/lead.jpg"
        assert "The province approved the new line." in item.content
        assert "Construction starts in spring." in item.content
        assert "Buy now" not in item.content
        assert "Home | News" not in item.content
        assert "tracking" not in item.content
        assert item.content_kind == "article"

    def test_truncates_body(self) -> None:
        page = f"<html><body><article>{'word ' * 2000}</article></body></html>"

        item = parse_web_page(page, "https://example.com", max_chars=5000)

        assert len(item.content) == 5000

    def test_title_fallbacks(self) -> None:
        doc = lxml_html.fromstring('<html><head><meta name="twitter:title" content="Tweet title"><title>T</title></head></html>')
        assert extract_title(doc) == "Tweet title"

        doc = lxml_html.fromstring("<html><head><title> Page </title></head><body></body></html>")
        assert extract_title(doc) == "Page"

        doc = lxml_html.fromstring("<html><body><p>x</p></body></html>")
        assert extract_title(doc) == "Untitled"


class TestExtractImage:
    def test_rejects_logo_then_uses_article_image(self) -> None:
        doc = lxml_html.fromstring(
            '<html><head><meta property="og:image" content="https://cdn.example.com/logo.png"></head>'
            '<body><article><img src="//cdn.example.com/photo.jpg"></article></body></html>'
        )
        assert extract_image(doc, "https://example.com/a") == "https://cdn.example.com/photo.jpg"

    def test_none_when_no_candidates(self) -> None:
        doc = lxml_html.fromstring("<html><body><p>text</p></body></html>")
        assert extract_image(doc, "https://example.com") is None


class TestImageUrlHelpers:
    def test_is_valid_image_url(self) -> None:
        assert is_valid_image_url("https://cdn.example.com/photo.jpg")
        assert is_valid_image_url("https://cdn.example.com/image?id=5")
        assert not is_valid_image_url("data:image/png;base64,AAAA")
        assert not is_valid_image_url("https://cdn.example.com/icon.svg")
        assert not is_valid_image_url("https://cdn.example.com/placeholder.jpg")
        assert not is_valid_image_url("https://cdn.example.com/user-avatar.png")
        assert not is_valid_image_url("https://cdn.example.com/script.js")

    def test_make_absolute_url(self) -> None:
        assert make_absolute_url("//cdn.example.com/a.jpg", "https://x.com") == "https://cdn.example.com/a.jpg"
        assert make_absolute_url("../a.jpg", "https://x.com/news/story") == "https://x.com/a.jpg"
        assert make_absolute_url("https://y.com/a.jpg", "https://x.com") == "https://y.com/a.jpg"


class TestFetching:
    @patch("newsdesk.fetchers.html_scraper.httpx.get")
    def test_scrape_web_page(self, mock_get) -> None:
        mock_get.return_value = Mock(text=PAGE, url="https://news.example.com/story")

        items = scrape_web_page("https://news.example.com/story")

        assert len(items) == 1
        assert items[0].url == "https://news.example.com/story"

    @patch("newsdesk.fetchers.html_scraper.httpx.get")
    def test_fetch_og_image(self, mock_get) -> None:
        mock_get.return_value = Mock(text=PAGE)

        assert fetch_og_image("https://news.example.com/story", timeout=5) == (
            "https://news.example.com/img/lead.jpg"
        )
        assert mock_get.call_args.kwargs["timeout"] == 5

    @patch("newsdesk.fetchers.html_scraper.httpx.get")
    def test_fetch_og_image_never_raises(self, mock_get) -> None:
        mock_get.side_effect = httpx.ConnectTimeout("slow")

        assert fetch_og_image("https://news.example.com/story") is None
