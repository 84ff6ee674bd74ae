"""RSS/Atom adapter: newest entries of a feed, each with a best-effort lead image."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

import feedparser
import httpx
from dateutil import parser as dateparser
from lxml import etree, html as lxml_html

from newsdesk.fetchers.html_scraper import HEADERS, fetch_og_image
from newsdesk.models import ARTICLE, ScrapedItem

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def scrape_rss(
    url: str, max_items: int = 5, timeout: int = 15, og_timeout: int = 5
) -> list[ScrapedItem]:
    """Fetch a feed and return at most max_items items."""
    resp = httpx.get(url, timeout=timeout, follow_redirects=True, headers=HEADERS)
    resp.raise_for_status()

    feed = feedparser.parse(resp.content)
    if feed.bozo and not feed.entries:
        logger.warning(f"  [RSS]  Failed to parse {url}: {feed.bozo_exception}")
        return []

    items = entries_to_items(feed.entries, url, max_items)

    # Entries without an image: try the article page's Open Graph tags
    for item in items:
        if not item.image_url and item.url:
            item.image_url = fetch_og_image(item.url, timeout=og_timeout)

    logger.info(f"  [RSS]  {url}: {len(items)} items")
    return items


def entries_to_items(entries, feed_url: str, max_items: int = 5) -> list[ScrapedItem]:
    """Convert feedparser entries to ScrapedItems."""
    items = []
    for entry in entries[:max_items]:
        title = (entry.get("title") or "").strip() or "Untitled"
        link = (entry.get("link") or "").strip() or feed_url
        items.append(ScrapedItem(
            title=title,
            content=_entry_text(entry),
            url=link,
            published=_parse_date(entry),
            content_kind=ARTICLE,
            image_url=extract_entry_image(entry),
        ))
    return items


def extract_entry_image(entry) -> Optional[str]:
    """Image for a feed entry, trying each place feeds commonly put one, in order."""
    # 1. <enclosure type="image/...">
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]

    # 2. <media:thumbnail>
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]

    # 3. <media:content>, images only when the medium/type is declared
    media = entry.get("media_content") or []
    for content in media:
        kind = (content.get("medium") or content.get("type") or "image").lower()
        if content.get("url") and kind.startswith("image"):
            return content["url"]

    # 4. <media:group>; feedparser flattens its children into media_content
    for content in media:
        if content.get("url") and _looks_like_image(content["url"]):
            return content["url"]

    # 5. <image> tag (string, {url}, or {href})
    image = entry.get("image")
    if isinstance(image, str) and image:
        return image
    if isinstance(image, dict):
        found = image.get("url") or image.get("href")
        if found:
            return found

    # 6. First <img> inside the content, then the description
    for fragment in _html_fragments(entry):
        src = _first_img_src(fragment)
        if src:
            return src

    return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _html_fragments(entry) -> list[str]:
    fragments = [c.get("value", "") for c in entry.get("content") or []]
    fragments.append(entry.get("summary") or entry.get("description") or "")
    return [f for f in fragments if f]


def _first_img_src(fragment: str) -> Optional[str]:
    if "<img" not in fragment:
        return None
    try:
        doc = lxml_html.fromstring(fragment)
    except (etree.ParserError, ValueError):
        return None
    for img in doc.iter("img"):
        src = (img.get("src") or "").strip()
        if src:
            return src
    return None


def _looks_like_image(url: str) -> bool:
    return bool(re.search(r"\.(jpe?g|png|webp|gif)($|\?)", url, re.IGNORECASE))


def _entry_text(entry) -> str:
    """Plain text of the entry's content, falling back to its summary."""
    raw = ""
    for fragment in _html_fragments(entry):
        raw = fragment
        break
    if not raw:
        return ""
    try:
        text = lxml_html.fromstring(raw).text_content()
    except (etree.ParserError, ValueError):
        text = re.sub(r"<[^>]+>", "", raw)
    return re.sub(r"\s+", " ", text).strip()


def _parse_date(entry) -> Optional[datetime]:
    """Try to parse a date from a feed entry."""
    for field in ("published", "updated", "created"):
        raw = entry.get(f"{field}_parsed") or entry.get(field)
        if raw is None:
            continue
        if hasattr(raw, "tm_year"):
            try:
                # feedparser normalises *_parsed to UTC
                return datetime(*raw[:6], tzinfo=timezone.utc)
            except (OverflowError, ValueError):
                continue
        if isinstance(raw, str):
            try:
                return dateparser.parse(raw)
            except (ValueError, OverflowError):
                continue
    return None
