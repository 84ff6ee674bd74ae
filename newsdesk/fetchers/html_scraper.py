"""Single web page adapter plus the lead-image heuristics shared with RSS."""

import logging
import re
from typing import Optional
from urllib.parse import urljoin

import httpx
from lxml import html as lxml_html

from newsdesk.models import ARTICLE, ScrapedItem

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_TITLE_META = (
    'meta[property="og:title"]',
    'meta[name="twitter:title"]',
)

_IMAGE_META = (
    'meta[property="og:image"]',
    'meta[property="og:image:secure_url"]',
    'meta[name="twitter:image"]',
    'meta[name="twitter:image:src"]',
)

_IMAGE_ELEMENTS = (
    "article img",
    ".article-image img",
    ".featured-image img",
    ".post-thumbnail img",
    'img[itemprop="image"]',
    "img",
)

_NOISE = (
    "script", "style", "noscript", "iframe", "nav", "header", "footer", "aside",
    ".ads", ".ad", ".advertisement", "[class*='sponsor']",
)

_BODY_SELECTORS = ("article", "main", ".content", ".post-content", ".entry-content", "body")

_REJECTED_IMAGE = re.compile(r"^data:|\.svg(\?|$)|placeholder|dummy|avatar|logo", re.IGNORECASE)
_IMAGE_EXT = re.compile(r"\.(jpe?g|png|webp|gif)($|\?)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def scrape_web_page(url: str, timeout: int = 15, max_chars: int = 5000) -> list[ScrapedItem]:
    """Fetch one page and turn it into a single article item."""
    resp = httpx.get(url, timeout=timeout, follow_redirects=True, headers=HEADERS)
    resp.raise_for_status()
    item = parse_web_page(resp.text, str(resp.url), max_chars)
    logger.info(f"  [Web]  {url}: {len(item.content)} chars")
    return [item]


def parse_web_page(html_text: str, url: str, max_chars: int = 5000) -> ScrapedItem:
    doc = lxml_html.fromstring(html_text)
    title = extract_title(doc)
    # Images first: header/aside often hold the lead image and get stripped below
    image_url = extract_image(doc, url)
    body = extract_body(doc, max_chars)
    return ScrapedItem(
        title=title,
        content=body,
        url=url,
        content_kind=ARTICLE,
        image_url=image_url,
    )


def extract_title(doc) -> str:
    for sel in _TITLE_META:
        for el in doc.cssselect(sel):
            content = (el.get("content") or "").strip()
            if content:
                return content
    for el in doc.cssselect("title"):
        text = (el.text_content() or "").strip()
        if text:
            return text
    return "Untitled"


def extract_image(doc, base_url: str) -> Optional[str]:
    """Lead image by priority: Open Graph, Twitter card, then article images."""
    for sel in _IMAGE_META:
        for el in doc.cssselect(sel):
            content = (el.get("content") or "").strip()
            if content and is_valid_image_url(content):
                return make_absolute_url(content, base_url)
    for sel in _IMAGE_ELEMENTS:
        for el in doc.cssselect(sel):
            src = (el.get("src") or el.get("data-src") or "").strip()
            if src and is_valid_image_url(src):
                return make_absolute_url(src, base_url)
    return None


def extract_body(doc, max_chars: int = 5000) -> str:
    for sel in _NOISE:
        for el in doc.cssselect(sel):
            if el.getparent() is not None:
                el.drop_tree()

    text = ""
    for sel in _BODY_SELECTORS:
        found = doc.cssselect(sel)
        if found:
            text = found[0].text_content() or ""
            break
    return re.sub(r"\s+", " ", text).strip()[:max_chars]


def fetch_og_image(url: str, timeout: int = 5) -> Optional[str]:
    """Best effort: read the og:image / twitter:image of an article page."""
    try:
        resp = httpx.get(url, timeout=timeout, follow_redirects=True, headers=HEADERS)
        resp.raise_for_status()
        doc = lxml_html.fromstring(resp.text)
    except Exception as e:
        logger.debug(f"  [Image] og:image fetch failed for {url}: {e}")
        return None

    for sel in _IMAGE_META[:3]:
        for el in doc.cssselect(sel):
            content = (el.get("content") or "").strip()
            if content:
                return make_absolute_url(content, url)
    return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_valid_image_url(url: str) -> bool:
    """Reject data URIs, SVGs and placeholder/avatar/logo images."""
    if not url or _REJECTED_IMAGE.search(url):
        return False
    return bool(_IMAGE_EXT.search(url)) or "image" in url.lower()


def make_absolute_url(url: str, base_url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    return urljoin(base_url, url)
