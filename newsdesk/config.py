import os
from pathlib import Path

import yaml


CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

PROVIDERS = ("gemini", "claude")


def load_config(path: Path = CONFIG_PATH) -> dict:
    """Load config.yaml, with env var overrides for secrets and provider choice."""
    cfg: dict = {}
    if Path(path).exists():
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}

    # Env vars take precedence for API keys
    for key, env_names in (
        ("anthropic_api_key", ("ANTHROPIC_API_KEY",)),
        ("gemini_api_key", ("GEMINI_API_KEY", "GOOGLE_API_KEY")),
        ("youtube_api_key", ("YOUTUBE_API_KEY",)),
        ("alert_webhook_url", ("ALERT_WEBHOOK_URL",)),
    ):
        for env_name in env_names:
            value = os.environ.get(env_name)
            if value:
                cfg[key] = value
                break

    env_provider = os.environ.get("AI_PROVIDER")
    if env_provider:
        cfg["primary_provider"] = env_provider.lower()

    # Resolve paths relative to project root
    project_root = Path(__file__).parent.parent
    cfg["db_path"] = str(project_root / cfg.get("db_path", "data/newsdesk.db"))
    cfg["log_path"] = str(project_root / cfg.get("log_path", "data/pipeline.log"))

    # Providers
    cfg.setdefault("primary_provider", "gemini")
    if cfg["primary_provider"] not in PROVIDERS:
        raise ValueError(
            f"Invalid primary_provider '{cfg['primary_provider']}', expected one of {PROVIDERS}"
        )
    cfg.setdefault("claude_model", "claude-sonnet-4-5-20250929")
    cfg.setdefault("gemini_model", "gemini-2.5-flash")
    cfg.setdefault("max_content_length", 3000)
    cfg.setdefault("max_output_tokens", 2048)
    cfg.setdefault("target_language", "Simplified Chinese")

    # Dedup
    cfg.setdefault("dedup_threshold", 0.8)
    cfg.setdefault("dedup_window_hours", 48)
    cfg.setdefault("max_consecutive_duplicates", 3)

    # Sources
    cfg.setdefault("rss_max_items", 5)
    cfg.setdefault("channel_max_videos", 15)
    cfg.setdefault("trending_max_videos", 10)
    cfg.setdefault("default_trending_region", "CA")
    cfg.setdefault("transcript_languages", ["en", "zh-Hans"])
    cfg.setdefault("feed_timeout", 15)
    cfg.setdefault("og_image_timeout", 5)
    cfg.setdefault("web_body_max_chars", 5000)

    # Stages
    cfg.setdefault("enrich_batch_limit", 200)
    cfg.setdefault("enrich_delay_seconds", 0.5)
    cfg.setdefault("max_enrich_attempts", 5)
    cfg.setdefault("classify_batch_limit", 50)
    cfg.setdefault("classify_delay_seconds", 0.3)
    cfg.setdefault("deep_dive_batch_limit", 20)
    cfg.setdefault("deep_dive_delay_seconds", 0.5)
    cfg.setdefault("retention_hours", 168)

    # Failover
    cfg.setdefault("failure_threshold", 3)
    cfg.setdefault("alert_cooldown_minutes", 30)
    cfg.setdefault("config_cache_ttl_seconds", 300)

    return cfg

