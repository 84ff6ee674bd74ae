"""Runtime state shared by one pipeline instance.

Everything that would otherwise be a process-wide global (config cache,
provider failure counters, the database handle) hangs off a PipelineContext
so independent pipelines can coexist, e.g. in tests.
"""

import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional

from newsdesk.alerts import Alerter
from newsdesk.config import PROVIDERS
from newsdesk.fetchers.youtube import YouTubeClient
from newsdesk.processing.prompts import ConfigCache, PromptBuilder
from newsdesk.providers.base import build_provider
from newsdesk.providers.failover import FailoverController, FailureState
from newsdesk.storage.database import Database


@dataclass
class PipelineContext:
    cfg: dict
    db: Database
    prompts: PromptBuilder
    ai: FailoverController
    youtube: Optional[YouTubeClient] = None
    sleep: Callable[[float], None] = field(default=time.sleep)

    def close(self):
        if self.youtube is not None:
            self.youtube.close()
        self.db.close()


def build_context(
    cfg: dict,
    db: Optional[Database] = None,
    failure_state: Optional[FailureState] = None,
) -> PipelineContext:
    """Wire the database, prompt builder, providers and failover from config."""
    db = db or Database(cfg["db_path"])
    cache = ConfigCache(db, ttl_seconds=cfg.get("config_cache_ttl_seconds", 300))
    prompts = PromptBuilder(
        cache,
        target_language=cfg.get("target_language", "Simplified Chinese"),
        max_content_length=cfg.get("max_content_length", 3000),
    )

    primary_name = cfg.get("primary_provider", "gemini")
    backup_name = next(name for name in PROVIDERS if name != primary_name)
    ai = FailoverController(
        build_provider(primary_name, cfg, prompts),
        build_provider(backup_name, cfg, prompts),
        state=failure_state or FailureState(PROVIDERS),
        alerter=Alerter(cfg.get("alert_webhook_url")),
        threshold=cfg.get("failure_threshold", 3),
        cooldown=timedelta(minutes=cfg.get("alert_cooldown_minutes", 30)),
    )

    youtube = None
    if cfg.get("youtube_api_key"):
        youtube = YouTubeClient(cfg["youtube_api_key"], timeout=cfg.get("feed_timeout", 15))

    return PipelineContext(cfg=cfg, db=db, prompts=prompts, ai=ai, youtube=youtube)
