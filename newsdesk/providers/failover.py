"""Primary/backup failover across the two AI backends.

Each backend has a consecutive-failure counter. A success resets it; a
failure bumps it, and once it reaches the threshold an alert is sent,
at most once per cooldown window per backend. When both backends fail,
``enrich`` returns a degraded placeholder instead of raising.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from newsdesk.alerts import Alerter
from newsdesk.models import ARTICLE, Analyzed, EnrichmentResult, utcnow
from newsdesk.providers.base import EnrichmentProvider

logger = logging.getLogger(__name__)

UNAVAILABLE_SUMMARY = "(AI service temporarily unavailable) "
UNAVAILABLE_COMMENTARY = "(AI commentary temporarily unavailable, please try again later)"


class AllProvidersFailed(RuntimeError):
    """Both the primary and the backup provider raised."""


@dataclass
class ProviderHealth:
    failures: int = 0
    last_alert_at: Optional[datetime] = None


class FailureState:
    """In-memory failure counters, one per provider name."""

    def __init__(self, providers=("gemini", "claude")):
        self._health = {name: ProviderHealth() for name in providers}

    def get(self, provider: str) -> ProviderHealth:
        return self._health.setdefault(provider, ProviderHealth())

    def names(self) -> list[str]:
        return list(self._health)

    def reset(self, provider: Optional[str] = None):
        if provider is None:
            for health in self._health.values():
                health.failures = 0
            return
        if provider not in self._health:
            raise ValueError(f"Unknown provider: {provider}")
        self._health[provider].failures = 0


def degraded_result(body: str, title: str) -> Analyzed:
    return Analyzed(
        summary=f"{UNAVAILABLE_SUMMARY}{(body or '')[:150]}...",
        commentary=UNAVAILABLE_COMMENTARY,
        translated_title=title,
        degraded=True,
    )


class FailoverController:
    """Implements the provider interface on top of a primary and a backup."""

    name = "failover"

    def __init__(
        self,
        primary: EnrichmentProvider,
        backup: EnrichmentProvider,
        state: Optional[FailureState] = None,
        alerter: Optional[Alerter] = None,
        threshold: int = 3,
        cooldown: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.primary = primary
        self.backup = backup
        self.state = state or FailureState((primary.name, backup.name))
        self.alerter = alerter or Alerter()
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def enrich(
        self,
        body: str,
        title: str,
        style: str,
        content_kind: str = ARTICLE,
        is_deep_dive: bool = False,
    ) -> EnrichmentResult:
        """Never raises: falls back to a degraded placeholder when both fail."""
        try:
            return self._call(
                lambda p: p.enrich(body, title, style, content_kind, is_deep_dive)
            )
        except AllProvidersFailed:
            logger.error("  [Failover] All AI providers failed, returning degraded result")
            return degraded_result(body, title)

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        """Raw completion with the same failover; raises AllProvidersFailed."""
        return self._call(lambda p: p.complete(prompt, system=system))

    complete_with_failover = complete

    def _call(self, fn):
        try:
            result = fn(self.primary)
        except Exception as primary_error:
            self._record_failure(self.primary.name, primary_error)
        else:
            self._record_success(self.primary.name)
            return result

        logger.info(f"  [Failover] Switching to backup provider: {self.backup.name}")
        try:
            result = fn(self.backup)
        except Exception as backup_error:
            self._record_failure(self.backup.name, backup_error)
            raise AllProvidersFailed(
                f"{self.primary.name} and {self.backup.name} both failed: {backup_error}"
            ) from backup_error
        self._record_success(self.backup.name)
        logger.info(f"  [Failover] {self.backup.name} succeeded")
        return result

    # ------------------------------------------------------------------
    # Counters and alerts
    # ------------------------------------------------------------------

    def _record_success(self, provider: str):
        health = self.state.get(provider)
        if health.failures:
            logger.info(f"  [Failover] {provider} recovered, resetting failure count")
        health.failures = 0

    def _record_failure(self, provider: str, error: Exception):
        health = self.state.get(provider)
        health.failures += 1
        logger.error(
            f"  [Failover] {provider} failed ({health.failures}/{self.threshold}): {error}"
        )
        if health.failures < self.threshold:
            return
        now = self._clock()
        if health.last_alert_at is not None and now - health.last_alert_at < self.cooldown:
            return
        health.last_alert_at = now
        self.alerter.provider_failing(provider, error, health.failures, self.threshold)

    def status(self) -> dict[str, dict]:
        report = {}
        for provider in self.state.names():
            health = self.state.get(provider)
            healthy = health.failures < self.threshold
            report[provider] = {
                "failures": health.failures,
                "healthy": healthy,
                "status": "healthy" if healthy else "unhealthy",
                "last_alert_at": health.last_alert_at.isoformat() if health.last_alert_at else None,
            }
        return report

    def reset(self, provider: Optional[str] = None):
        self.state.reset(provider)
        logger.info(f"  [Failover] Reset failure count for {provider or 'all providers'}")
