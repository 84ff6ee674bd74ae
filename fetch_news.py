#!/usr/bin/env python3
"""Newsdesk: scrape, deduplicate, enrich and publish pipeline."""

import argparse
import json
import sys
import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path

from newsdesk.config import PROVIDERS, load_config
from newsdesk.context import build_context
from newsdesk.pipeline import PipelineAlreadyRunning, reset_status, run_pipeline
from newsdesk.processing.classifier import run_classification
from newsdesk.processing.deep_dive import run_deep_dive
from newsdesk.storage.database import Database


def setup_logging(log_path: Path):
    """Set up rotating file handler for pipeline logs."""
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Create rotating handler: rotates at midnight, keeps 7 days
    handler = TimedRotatingFileHandler(
        filename=log_path,
        when='midnight',
        interval=1,
        backupCount=7,
        encoding='utf-8'
    )
    handler.suffix = '%Y-%m-%d'

    logging.basicConfig(
        level=logging.INFO,
        format='%(message)s',
        handlers=[handler, logging.StreamHandler(sys.stdout)]
    )

    return logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Newsdesk content pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Scrape all active sources, then enrich the backlog")
    run.add_argument("--source", help="Only scrape this source (id or name)")

    sub.add_parser("status", help="Print the current pipeline status as JSON")
    sub.add_parser("reset", help="Force-clear a stuck running flag")
    sub.add_parser("classify", help="Classify items that have no category")
    sub.add_parser("deep-dive", help="Add background and prediction to In-Depth items")

    cleanup = sub.add_parser("cleanup", help="Delete unpinned items older than the retention window")
    cleanup.add_argument("--hours", type=int, help="Retention window in hours")

    providers = sub.add_parser("providers", help="AI provider health")
    providers.add_argument("action", choices=["status", "reset"])
    providers.add_argument("--provider", choices=PROVIDERS, help="Only reset this provider")
    return parser


def cmd_run(cfg, args, logger) -> int:
    start_time = datetime.now()
    logger.info("\n" + "=" * 60)
    logger.info("Newsdesk - Content Pipeline")
    logger.info(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    if args.source:
        logger.info(f"Source:  {args.source}")
    logger.info("=" * 60)

    ctx = build_context(cfg)
    try:
        batch = run_pipeline(ctx, args.source)
    except PipelineAlreadyRunning as e:
        logger.error(f"ERROR: {e}. Use 'reset' if the previous run died.")
        return 1
    except Exception as e:
        logger.error(f"ERROR: Pipeline failed: {e}")
        return 1
    finally:
        ctx.close()

    end_time = datetime.now()
    duration = (end_time - start_time).total_seconds()
    logger.info("\n" + "=" * 60)
    logger.info("Pipeline Complete!")
    logger.info(f"  Batch:       {batch.batch_id}")
    logger.info(f"  Started:     {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Finished:    {end_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Duration:    {duration:.1f}s")
    logger.info(f"  Sources:     {batch.sources_processed} ok, {batch.sources_failed} failed")
    logger.info(f"  Scraped:     {batch.scraped} items")
    logger.info(f"  Duplicates:  {batch.duplicates}")
    logger.info(f"  Drafts:      {batch.drafts} new")
    logger.info(f"  Published:   {batch.published}")
    logger.info(f"  Skipped:     {batch.skipped}")
    logger.info(f"  Left draft:  {batch.failed}")
    logger.info("=" * 60)
    return 0


def cmd_status(cfg, args, logger) -> int:
    with Database(cfg["db_path"]) as db:
        status = db.get_status()
    print(json.dumps(status.to_dict(), indent=2, ensure_ascii=False))
    return 0


def cmd_reset(cfg, args, logger) -> int:
    with Database(cfg["db_path"]) as db:
        reset_status(db)
    return 0


def cmd_classify(cfg, args, logger) -> int:
    logger.info("\nClassifying uncategorized items...")
    ctx = build_context(cfg)
    try:
        stats = run_classification(
            ctx.db,
            ctx.ai,
            ctx.prompts,
            limit=cfg["classify_batch_limit"],
            delay=cfg["classify_delay_seconds"],
        )
    finally:
        ctx.close()
    logger.info(f"  Classified {stats.succeeded}/{stats.processed} ({stats.failed} failed)")
    return 0


def cmd_deep_dive(cfg, args, logger) -> int:
    logger.info("\nRunning deep-dive enhancement...")
    ctx = build_context(cfg)
    try:
        stats = run_deep_dive(
            ctx.db,
            ctx.ai,
            ctx.prompts,
            limit=cfg["deep_dive_batch_limit"],
            delay=cfg["deep_dive_delay_seconds"],
        )
    finally:
        ctx.close()
    logger.info(f"  Enhanced {stats.succeeded}/{stats.processed} ({stats.failed} failed)")
    return 0


def cmd_cleanup(cfg, args, logger) -> int:
    hours = args.hours or cfg["retention_hours"]
    with Database(cfg["db_path"]) as db:
        deleted = db.delete_items_older_than(hours)
    logger.info(f"  Deleted {deleted} items older than {hours}h")
    return 0


def cmd_providers(cfg, args, logger) -> int:
    ctx = build_context(cfg)
    logger.info(
        "  Note: failure counters are kept in memory per process; this report only "
        "covers this command, not a running pipeline"
    )
    try:
        if args.action == "reset":
            ctx.ai.reset(args.provider)
        print(json.dumps(ctx.ai.status(), indent=2))
    finally:
        ctx.close()
    return 0


COMMANDS = {
    "run": cmd_run,
    "status": cmd_status,
    "reset": cmd_reset,
    "classify": cmd_classify,
    "deep-dive": cmd_deep_dive,
    "cleanup": cmd_cleanup,
    "providers": cmd_providers,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config()
    logger = setup_logging(Path(cfg["log_path"]))
    return COMMANDS[args.command](cfg, args, logger)


if __name__ == "__main__":
    sys.exit(main())
