"""Operator alerts for persistently failing AI providers.

Alerts always go to the log at ERROR. When ``alert_webhook_url`` is set they
are also POSTed there as JSON (Slack/Discord-style ``text`` payload).
"""

import logging
from typing import Optional

import httpx

from newsdesk.models import utcnow

logger = logging.getLogger(__name__)


class Alerter:
    def __init__(self, webhook_url: Optional[str] = None, timeout: int = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def provider_failing(self, provider: str, error: Exception, failures: int, threshold: int):
        now = utcnow()
        logger.error("=" * 60)
        logger.error(f"[ALERT] AI provider {provider.upper()} is failing")
        logger.error(f"  Error:     {error}")
        logger.error(f"  Failures:  {failures}/{threshold}")
        logger.error(f"  Time:      {now.isoformat()}")
        logger.error("  Check the API key and quota for this provider")
        logger.error("=" * 60)

        if not self.webhook_url:
            return
        payload = {
            "text": (
                f"AI provider {provider} failing: {failures} consecutive failures "
                f"(threshold {threshold}). Last error: {error}"
            ),
            "provider": provider,
            "failures": failures,
            "error": str(error),
            "time": now.isoformat(),
        }
        try:
            httpx.post(self.webhook_url, json=payload, timeout=self.timeout).raise_for_status()
        except Exception as e:
            # A bad webhook must never interrupt failover
            logger.warning(f"  [Alert] Webhook delivery failed: {e}")
