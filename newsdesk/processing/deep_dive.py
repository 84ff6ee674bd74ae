"""Deep-dive enhancement for published In-Depth items.

Adds a background analysis and a forward-looking prediction and rewrites the
commentary as a long-form column.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from newsdesk.processing.prompts import PromptBuilder

logger = logging.getLogger(__name__)

IN_DEPTH = "In-Depth"

DEEP_DIVE_PROMPT = """\
You are a senior long-form columnist who places news in its wider historical and future context.

Enhance the following story.

Title: {title}
Summary: {summary}
Current commentary: {commentary}

1. Background: how did this come about? What were the key turning points?
2. Prediction: what are the short and long term consequences? What does it mean for ordinary readers?
3. Commentary: rewrite the commentary as an in-depth column in the manner of The Economist or The New Yorker.

Respond with JSON only:
{{"background": "200-300 characters", "prediction": "200-300 characters", "enhanced_commentary": "500-800 characters"}}"""


@dataclass
class DeepDiveStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


def parse_deep_dive(text: str) -> Optional[dict]:
    json_match = re.search(r"\{.*\}", text or "", re.DOTALL)
    if not json_match:
        return None
    try:
        data = json.loads(json_match.group())
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    result = {
        key: str(data.get(key) or "").strip()
        for key in ("background", "prediction", "enhanced_commentary")
    }
    return result if any(result.values()) else None


def run_deep_dive(
    db,
    provider,
    prompts: PromptBuilder,
    limit: int = 20,
    delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> DeepDiveStats:
    category_id = db.get_categories().get(IN_DEPTH)
    if category_id is None:
        logger.error(f"  [DeepDive] No '{IN_DEPTH}' category, nothing to do")
        return DeepDiveStats()

    items = db.list_deep_dive_candidates(category_id, limit)
    stats = DeepDiveStats(processed=len(items))
    if not items:
        logger.info("  [DeepDive] No items need enhancement")
        return stats

    for index, item in enumerate(items):
        if index:
            sleep(delay)

        prompt = DEEP_DIVE_PROMPT.format(
            title=item.title,
            summary=item.summary or (item.body or "")[:500],
            commentary=item.commentary,
        )
        try:
            enhancement = parse_deep_dive(provider.complete(prompt, system=prompts.system()))
        except Exception as e:
            logger.error(f"  [DeepDive] #{item.id} failed: {e}")
            stats.failed += 1
            continue
        if enhancement is None:
            logger.warning(f"  [DeepDive] #{item.id} returned no usable JSON")
            stats.failed += 1
            continue

        fields = {
            "deep_background": enhancement["background"],
            "deep_prediction": enhancement["prediction"],
        }
        if enhancement["enhanced_commentary"]:
            fields["commentary"] = enhancement["enhanced_commentary"]
        try:
            db.update_item(item.id, **fields)
        except Exception as e:
            logger.error(f"  [DeepDive] Could not save #{item.id}: {e}")
            stats.failed += 1
            continue

        stats.succeeded += 1
        logger.info(f"  [DeepDive] Enhanced: {item.title[:50]}")

    logger.info(
        f"  [DeepDive] Done: {stats.succeeded} enhanced, {stats.failed} failed of {stats.processed}"
    )
    return stats
