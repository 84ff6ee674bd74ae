"""Two-stage batch: scrape every source into drafts, then enrich the backlog.

Progress goes to the persisted PipelineStatus after every source and every
draft so another process can poll it. Everything runs sequentially.
"""

import logging
import uuid
from typing import Optional

from newsdesk.context import PipelineContext
from newsdesk.fetchers.sources import scrape_source
from newsdesk.models import (
    CHANNEL,
    BatchRun,
    ContentItem,
    PipelineStatus,
    Source,
    utcnow,
)
from newsdesk.processing.classifier import TRENDING, ensure_place_tag, normalize_category
from newsdesk.processing.deduplicator import is_duplicate

logger = logging.getLogger(__name__)

PUBLISHED = "published"
SKIPPED = "skipped"
FAILED = "failed"


class PipelineAlreadyRunning(RuntimeError):
    """A run was requested while the persisted status says one is in progress."""


def new_batch_id() -> str:
    return f"{utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"


def is_deep_dive_style(style: str) -> bool:
    """Sources whose style names a deep dive get the long three-part commentary."""
    lowered = (style or "").lower()
    return "deep" in lowered or "in-depth" in lowered or "深度" in lowered


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run_pipeline(ctx: PipelineContext, source_ref: Optional[str] = None) -> BatchRun:
    """Run both stages. Raises PipelineAlreadyRunning if a run is in progress.

    An unexpected error is recorded in PipelineStatus.error and re-raised.
    """
    db = ctx.db
    if db.get_status().is_running:
        raise PipelineAlreadyRunning("A pipeline run is already in progress")

    batch = BatchRun(batch_id=new_batch_id())
    status = PipelineStatus(
        is_running=True,
        current_source="Starting",
        started_at=batch.started_at,
        last_completed_at=db.get_status().last_completed_at,
    )
    db.upsert_status(status)
    logger.info(f"  Batch {batch.batch_id}")

    try:
        sources = select_sources(ctx, source_ref)
        scrape_stage(ctx, sources, batch, status)
        enrich_stage(ctx, batch, status)
    except Exception as e:
        logger.exception(f"  Pipeline failed: {e}")
        status.is_running = False
        status.current_source = "Failed"
        status.error = str(e) or e.__class__.__name__
        db.upsert_status(status)
        raise

    batch.completed_at = utcnow()
    status.is_running = False
    status.current_source = "Done"
    status.last_completed_at = batch.completed_at
    status.error = None
    db.upsert_status(status)
    return batch


def reset_status(db) -> PipelineStatus:
    """Force-clear a stuck running flag."""
    status = db.get_status()
    status.is_running = False
    status.current_source = "Reset"
    db.upsert_status(status)
    logger.info("  Pipeline status reset")
    return status


def select_sources(ctx: PipelineContext, source_ref: Optional[str] = None) -> list[Source]:
    """One targeted source, or every active source that has not failed its test."""
    if source_ref is not None:
        source = ctx.db.find_source(source_ref)
        if source is None:
            raise ValueError(f"Source not found: {source_ref}")
        return [source]

    sources = []
    for source in ctx.db.get_active_sources():
        if source.test_status == "failed":
            logger.info(f"  Skipping {source.name}: last source test failed")
            continue
        sources.append(source)
    return sources


# ---------------------------------------------------------------------------
# Stage 1: scrape
# ---------------------------------------------------------------------------

def scrape_stage(
    ctx: PipelineContext, sources: list[Source], batch: BatchRun, status: PipelineStatus
):
    cfg, db = ctx.cfg, ctx.db
    max_dupes = cfg.get("max_consecutive_duplicates", 3)

    logger.info(f"\n[1/2] Scraping {len(sources)} sources...")
    status.total = len(sources)
    status.progress = 0

    for index, source in enumerate(sources, 1):
        status.current_source = f"Scraping {source.name} ({index}/{len(sources)})"
        db.upsert_status(status)
        try:
            items = scrape_source(source, cfg, ctx.youtube)
            batch.scraped += len(items)
            consecutive = 0
            for item in items:
                if is_duplicate(
                    db,
                    item.title,
                    item.url,
                    window_hours=cfg.get("dedup_window_hours", 48),
                    threshold=cfg.get("dedup_threshold", 0.8),
                    video_id=item.video_id,
                ):
                    batch.duplicates += 1
                    consecutive += 1
                    # Channel uploads are scanned in full; other sources stop after a run of known items
                    if consecutive >= max_dupes and source.kind != CHANNEL:
                        logger.info(f"  [{source.name}] {consecutive} duplicates in a row, stopping")
                        break
                    continue
                consecutive = 0

                db.insert_draft(ContentItem(
                    source_id=source.id,
                    url=item.url,
                    title=item.title,
                    body=item.content,
                    content_kind=item.content_kind,
                    video_id=item.video_id,
                    image_url=item.image_url,
                    published=item.published,
                    batch_id=batch.batch_id,
                ))
                batch.drafts += 1

            db.update_source_last_fetched(source.id)
            batch.sources_processed += 1
            logger.info(f"  [{source.name}] {len(items)} scraped")
        except Exception as e:
            batch.sources_failed += 1
            logger.error(f"  [{source.name}] Source failed: {e}")
        finally:
            status.progress = index
            db.upsert_status(status)

    logger.info(
        f"  Scraped {batch.scraped}, {batch.duplicates} duplicates, {batch.drafts} new drafts"
    )


# ---------------------------------------------------------------------------
# Stage 2: enrich
# ---------------------------------------------------------------------------

def enrich_stage(ctx: PipelineContext, batch: BatchRun, status: PipelineStatus):
    cfg, db = ctx.cfg, ctx.db
    drafts = db.list_unpublished(cfg.get("enrich_batch_limit", 200), oldest_first=True)

    logger.info(f"\n[2/2] Enriching {len(drafts)} drafts (oldest first)...")
    status.total = len(drafts)
    status.progress = 0
    db.upsert_status(status)

    completed_at = utcnow()
    categories = db.get_categories()
    places = ctx.prompts.gazetteer()
    sources: dict[Optional[int], Optional[Source]] = {}
    delay = cfg.get("enrich_delay_seconds", 0.5)
    max_attempts = cfg.get("max_enrich_attempts", 5)

    for index, draft in enumerate(drafts, 1):
        if index > 1:
            ctx.sleep(delay)
        status.current_source = f"Enriching {index}/{len(drafts)}: {draft.title[:40]}"
        try:
            if draft.source_id not in sources:
                sources[draft.source_id] = (
                    db.get_source(draft.source_id) if draft.source_id is not None else None
                )
            source = sources[draft.source_id]
            outcome = enrich_draft(
                ctx, draft, source.style if source else "", completed_at, categories, places
            )
        except Exception as e:
            logger.error(f"  [Enrich] #{draft.id} failed, left as draft: {e}")
            outcome = FAILED
            _record_failure(db, draft, str(e) or e.__class__.__name__, max_attempts)

        if outcome == PUBLISHED:
            batch.published += 1
        elif outcome == SKIPPED:
            batch.skipped += 1
        else:
            batch.failed += 1

        status.progress = index
        db.upsert_status(status)

    logger.info(
        f"  Published {batch.published}, skipped {batch.skipped}, left as draft {batch.failed}"
    )


def enrich_draft(
    ctx: PipelineContext,
    draft: ContentItem,
    style: str,
    completed_at,
    categories: dict[str, int],
    places: dict[str, str],
) -> str:
    """Enrich one draft and apply the publish/skip/retain decision."""
    db = ctx.db
    result = ctx.ai.enrich(
        draft.body, draft.title, style, draft.content_kind, is_deep_dive_style(style)
    )

    if result.should_skip:
        db.delete_item(draft.id)
        logger.info(f"  [Enrich] Skipped ({result.reason or 'service content'}): {draft.title[:60]}")
        return SKIPPED

    if result.degraded:
        _record_failure(db, draft, "All AI providers failed", ctx.cfg.get("max_enrich_attempts", 5))
        logger.warning(f"  [Enrich] No provider available, left as draft: {draft.title[:60]}")
        return FAILED

    category = normalize_category(result.category, list(categories))
    text = " ".join(filter(None, (draft.title, result.summary, draft.body)))
    category, tags, location = ensure_place_tag(
        category, result.tags, result.location, text, places
    )
    category_id = categories.get(category, categories.get(TRENDING))
    if category_id is None:
        raise RuntimeError(f"No category id for '{category}'")

    db.update_item(
        draft.id,
        title=result.translated_title or draft.title,
        summary=result.summary,
        commentary=result.commentary,
        category_id=category_id,
        tags=tags,
        location=location,
        is_published=True,
        batch_completed_at=completed_at,
        published_at=utcnow(),
        last_error=None,
    )
    logger.info(f"  [Enrich] Published [{category}] {draft.title[:60]}")
    return PUBLISHED


def _record_failure(db, draft: ContentItem, error: str, max_attempts: int):
    try:
        attempts = db.record_enrich_failure(draft.id, error)
    except Exception as e:
        logger.error(f"  [Enrich] Could not record failure for #{draft.id}: {e}")
        return
    if attempts >= max_attempts:
        logger.warning(
            f"  [Enrich] #{draft.id} has failed enrichment {attempts} times: {draft.title[:60]}"
        )
