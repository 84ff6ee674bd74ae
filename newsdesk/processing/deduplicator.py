from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from rapidfuzz import fuzz

logger = logging.getLogger(__name__)

_TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term",
    "ref", "source", "fbclid", "gclid",
}


class SimilarityUnavailable(Exception):
    """The fuzzy similarity lookup could not run."""


def normalize_url(url: str) -> str:
    """Normalize a URL for comparison: lowercase host, strip tracking params, trailing slashes."""
    try:
        parsed = urlparse(url.strip())
        # Lowercase scheme and host
        scheme = parsed.scheme.lower()
        netloc = parsed.netloc.lower()
        # Remove www. prefix
        if netloc.startswith("www."):
            netloc = netloc[4:]
        params = parse_qs(parsed.query)
        filtered = {k: v for k, v in params.items() if k.lower() not in _TRACKING_PARAMS}
        query = urlencode(filtered, doseq=True) if filtered else ""
        # Strip trailing slash from path
        path = parsed.path.rstrip("/")
        return urlunparse((scheme, netloc, path, parsed.params, query, ""))
    except Exception:
        return url.strip().lower()


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    title = re.sub(r"[^\w\s]", " ", title.lower())
    return re.sub(r"\s+", " ", title).strip()


def title_similarity(a: str, b: str) -> float:
    """Similarity of two titles in [0, 1]."""
    a_norm, b_norm = normalize_title(a), normalize_title(b)
    if not a_norm or not b_norm:
        return 0.0
    # token_set_ratio scores any subset as 100; too lenient for one- or two-word titles
    if min(len(a_norm.split()), len(b_norm.split())) < 3:
        return fuzz.ratio(a_norm, b_norm) / 100.0
    return fuzz.token_set_ratio(a_norm, b_norm) / 100.0


def is_duplicate(
    db,
    title: str,
    url: str,
    window_hours: int = 48,
    threshold: float = 0.8,
    video_id: Optional[str] = None,
) -> bool:
    """True if a similar item already exists.

    Uses the store's fuzzy lookup within the time window. If that lookup is
    unavailable, falls back to an exact match on video id (for videos) or URL.
    """
    try:
        matches = db.find_similar(title, url, window_hours, threshold)
    except SimilarityUnavailable as e:
        logger.warning(f"  [Dedup] Similarity lookup unavailable ({e}), using exact match")
        return db.find_exact(url, video_id) is not None

    if matches:
        best = max(matches, key=lambda m: m.get("similarity", 0.0))
        logger.info(
            f"  [Dedup] Duplicate of #{best['id']} "
            f"({best.get('similarity', 0.0):.2f}): {title[:60]}"
        )
        return True
    return False
