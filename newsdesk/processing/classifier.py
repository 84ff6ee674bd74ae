"""Category normalisation, place tags and the second-pass classification job."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from newsdesk.processing.prompts import PromptBuilder, find_places, parse_classification
from newsdesk.storage.database import DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)

LOCAL = "Local"
TRENDING = "Trending"

# Free-text labels the models produce (English or Chinese) -> canonical label
CATEGORY_ALIASES = {
    "local": LOCAL, "本地": LOCAL,
    "trending": TRENDING, "hot": TRENDING, "热点": TRENDING,
    "politics": "Politics", "political": "Politics", "政治": "Politics",
    "tech": "Technology", "technology": "Technology", "science": "Technology", "科技": "Technology",
    "finance": "Finance", "business": "Finance", "economy": "Finance", "财经": "Finance",
    "entertainment": "Entertainment", "culture": "Entertainment", "文化娱乐": "Entertainment",
    "娱乐": "Entertainment",
    "sports": "Sports", "sport": "Sports", "体育": "Sports",
    "in-depth": "In-Depth", "indepth": "In-Depth", "in depth": "In-Depth",
    "deep dive": "In-Depth", "深度": "In-Depth",
}


def normalize_category(label: Optional[str], known: Sequence[str] = DEFAULT_CATEGORIES) -> str:
    """Map a model's category label to a canonical one, defaulting to Trending."""
    if not label:
        return TRENDING
    cleaned = label.strip().strip("\"'#*").strip()
    lowered = cleaned.lower()

    for name in known:
        if lowered == name.lower():
            return name
    if lowered in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[lowered]

    # Containment, longest alias first so "in-depth technology" is In-Depth
    for alias in sorted(CATEGORY_ALIASES, key=len, reverse=True):
        if _mentions(lowered, alias):
            return CATEGORY_ALIASES[alias]
    return TRENDING


def _mentions(text: str, alias: str) -> bool:
    # Latin aliases must be whole words; CJK text has no word boundaries
    if alias.isascii():
        return re.search(rf"\b{re.escape(alias)}\b", text) is not None
    return alias in text


# ---------------------------------------------------------------------------
# Place tags
# ---------------------------------------------------------------------------

def _place_key(text: str) -> str:
    return re.sub(r"\s+", "", text.lstrip("#")).lower()


def place_tag(canonical: str) -> str:
    """'Richmond Hill' -> '#RichmondHill'."""
    return "#" + re.sub(r"\s+", "", canonical)


def resolve_place(name: Optional[str], places: dict[str, str]) -> Optional[str]:
    """Canonical gazetteer name for a place name, alias or place tag."""
    if not name:
        return None
    key = _place_key(name)
    for alias, canonical in places.items():
        if _place_key(alias) == key:
            return canonical
    return None


def ensure_place_tag(
    category: str,
    tags: Sequence[str],
    location: Optional[str],
    text: str,
    places: dict[str, str],
) -> tuple[str, list[str], Optional[str]]:
    """Make a Local classification carry a recognised place tag.

    Returns (category, tags, location). The tag comes from the location when
    it resolves in the gazetteer, otherwise from the first place mentioned in
    text. A Local item with no recognisable place is demoted to Trending.
    """
    tags = list(tags)
    canonical_location = resolve_place(location, places)
    if category != LOCAL:
        return category, tags, canonical_location or location

    for tag in tags:
        found = resolve_place(tag, places)
        if found:
            return category, tags, canonical_location or found

    place = canonical_location
    if not place:
        mentioned = find_places(text, places)
        place = mentioned[0] if mentioned else None
    if not place:
        logger.info("  [Classify] Local without a recognised place, using Trending")
        return TRENDING, tags, location

    return category, [place_tag(place)] + tags, place


# ---------------------------------------------------------------------------
# Classification job
# ---------------------------------------------------------------------------

@dataclass
class ClassificationStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


def run_classification(
    db,
    provider,
    prompts: PromptBuilder,
    limit: int = 50,
    delay: float = 0.3,
    sleep: Callable[[float], None] = time.sleep,
) -> ClassificationStats:
    """Classify the newest items that have no category yet."""
    items = db.list_uncategorized(limit)
    stats = ClassificationStats(processed=len(items))
    if not items:
        logger.info("  [Classify] No uncategorized items")
        return stats

    category_ids = db.get_categories()
    places = prompts.gazetteer()

    for index, item in enumerate(items):
        if index:
            sleep(delay)

        summary = item.summary or (item.body or "")[:500]
        prompt = prompts.build_classification(item.title, summary, item.commentary)
        try:
            parsed = parse_classification(provider.complete(prompt.user, system=prompt.system))
        except Exception as e:
            logger.error(f"  [Classify] #{item.id} failed: {e}")
            stats.failed += 1
            continue
        if parsed is None:
            logger.warning(f"  [Classify] #{item.id} returned no usable JSON")
            stats.failed += 1
            continue

        category = normalize_category(parsed["category"])
        category, tags, location = ensure_place_tag(
            category,
            parsed["tags"],
            parsed["location"],
            " ".join(filter(None, (item.title, item.summary, item.body))),
            places,
        )
        category_id = category_ids.get(category)
        if category_id is None:
            logger.warning(f"  [Classify] Unknown category '{category}' for #{item.id}")
            stats.failed += 1
            continue

        try:
            db.update_item(item.id, category_id=category_id, tags=tags, location=location)
        except Exception as e:
            logger.error(f"  [Classify] Could not save #{item.id}: {e}")
            stats.failed += 1
            continue

        stats.succeeded += 1
        logger.info(f"  [Classify] {item.title[:40]} -> {category} {' '.join(tags[:3])}")

    logger.info(
        f"  [Classify] Done: {stats.succeeded} classified, {stats.failed} failed "
        f"of {stats.processed}"
    )
    return stats
