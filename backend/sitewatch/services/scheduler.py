"""Scheduler service - runs periodic health check rounds.

Round design:
- One round probes every non-pending site once
- A round that is still running when the next tick fires causes that tick
  to be skipped entirely, never queued
- Probes fan out under a fixed concurrency cap and the round waits for all
  of them before it completes
- Stopping the scheduler prevents new rounds; an in-flight round finishes
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import Settings
from ..models import HealthCheck, Site
from .alerter import AlerterService
from .checker import CertCheckError, CheckerService, SiteCheckResult, days_until
from .docker_client import DockerClient
from .failure_state import FailureTracker
from .history import HealthHistoryStore
from .registry import SiteRegistry

logger = logging.getLogger(__name__)

# Maximum concurrent site checks within one round
MAX_CONCURRENT_CHECKS = 10

# Certificates expiring within this many days trigger a warning
CERT_WARN_DAYS = 14


class SchedulerService:
    """Service for scheduling and running health check rounds."""

    def __init__(
        self,
        checker: CheckerService,
        alerter: AlerterService,
        tracker: FailureTracker,
        history: HealthHistoryStore,
        registry: SiteRegistry,
        interval_minutes: float = 5,
        max_concurrent_checks: int = MAX_CONCURRENT_CHECKS,
        health_retention_days: int = 30,
        activity_retention_days: int = 90,
        cert_warn_days: int = CERT_WARN_DAYS,
    ):
        self.checker = checker
        self.alerter = alerter
        self.tracker = tracker
        self.history = history
        self.registry = registry
        self.interval_minutes = interval_minutes
        self.max_concurrent_checks = max_concurrent_checks
        self.health_retention_days = health_retention_days
        self.activity_retention_days = activity_retention_days
        self.cert_warn_days = cert_warn_days

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._round_in_progress = False
        self.rounds_completed = 0
        self.rounds_skipped = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulerService":
        """Wire up a scheduler and its collaborators from application settings."""
        registry = SiteRegistry()
        tracker = FailureTracker(settings.alert_threshold)
        checker = CheckerService(
            timeout=settings.probe_timeout_seconds,
            docker=DockerClient(settings.docker_socket, timeout=settings.probe_timeout_seconds),
            registry=registry,
        )
        return cls(
            checker=checker,
            alerter=AlerterService.from_settings(settings, tracker),
            tracker=tracker,
            history=HealthHistoryStore(),
            registry=registry,
            interval_minutes=settings.health_check_interval,
            max_concurrent_checks=settings.max_concurrent_checks,
            health_retention_days=settings.health_retention_days,
            activity_retention_days=settings.activity_retention_days,
            cert_warn_days=settings.cert_warn_days,
        )

    @property
    def round_in_progress(self) -> bool:
        return self._round_in_progress

    def start(self):
        """Start the scheduler. The first round runs immediately."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_round,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="health_round",
            replace_existing=True,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        # APScheduler drops a tick that would overlap the running round
        # before run_round is called; count it here
        self.scheduler.add_listener(self._on_tick_skipped, EVENT_JOB_MAX_INSTANCES)
        self.scheduler.start()
        self._running = True
        logger.info(
            f"Health checker started (interval={self.interval_minutes}m, "
            f"max_concurrent={self.max_concurrent_checks}, threshold={self.tracker.alert_threshold})"
        )

    def stop(self):
        """Stop scheduling new rounds. A round already running is not cancelled."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Health checker stopped")

    async def run_round(self) -> bool:
        """Probe every active site once.

        Returns False when skipped because the previous round is still running.
        """
        # Test-and-set with no await in between, so it cannot interleave
        if self._round_in_progress:
            self._record_skip()
            return False
        self._round_in_progress = True

        try:
            await self._prune()

            try:
                sites = await self.registry.list_sites()
            except Exception as e:
                logger.error(f"Health checker: failed to get sites: {e}")
                return True

            active_sites = [site for site in sites if site.status != "pending"]
            logger.debug(f"Checking {len(active_sites)} sites out of {len(sites)} total")

            semaphore = asyncio.Semaphore(self.max_concurrent_checks)

            async def check_with_limit(site: Site):
                async with semaphore:
                    await self._check_site_safely(site)

            await asyncio.gather(*[check_with_limit(site) for site in active_sites])
            self.rounds_completed += 1
            return True
        finally:
            self._round_in_progress = False

    def _record_skip(self):
        self.rounds_skipped += 1
        logger.info("Health checker: previous round still running, skipping cycle")

    def _on_tick_skipped(self, event):
        self._record_skip()

    async def _prune(self):
        """Delete history past the retention windows. Failures are not fatal."""
        try:
            deleted = await self.history.prune_health_checks(self.health_retention_days)
            if deleted:
                logger.info(f"Pruned {deleted} health checks older than {self.health_retention_days} days")
        except Exception as e:
            logger.error(f"Error pruning health checks: {e}")

        try:
            deleted = await self.history.prune_activity(self.activity_retention_days)
            if deleted:
                logger.info(f"Pruned {deleted} activity entries older than {self.activity_retention_days} days")
        except Exception as e:
            logger.error(f"Error pruning activity log: {e}")

    async def _check_site_safely(self, site: Site):
        try:
            await self.check_site(site)
        except Exception as e:
            logger.error(f"Error checking site {site.id}: {e}")

    async def check_site(self, site: Site) -> SiteCheckResult:
        """Probe one site, record the result and dispatch any notifications."""
        result = SiteCheckResult()
        result.http = await self.checker.probe_http(site)

        if site.ssl_enabled and site.domain:
            result.cert_expiry = await self._check_certificate(site)

        result.container = await self.checker.probe_container(site)

        await self._save(site, result)

        # Decide under the tracker's lock, notify after it is released
        transition = self.tracker.record(site.id, result.is_down)

        if transition.should_alert:
            await self.alerter.send_alert(
                site.id, site.domain, transition.consecutive_failures, result.detail
            )
        if transition.should_recover:
            await self.alerter.send_recovery(site.domain)

        return result

    async def _check_certificate(self, site: Site) -> Optional[datetime]:
        """Store the certificate expiry and warn when it is close."""
        try:
            expiry = await self.checker.probe_cert_expiry(site.domain)
        except CertCheckError as e:
            logger.warning(f"Health checker: cert check failed for {site.domain}: {e}")
            return None
        except Exception as e:
            logger.error(f"Health checker: unexpected cert check error for {site.domain}: {e}")
            return None

        try:
            await self.registry.update_ssl_expiry(site.id, expiry)
        except Exception as e:
            logger.error(f"Health checker: failed to store ssl_expiry for site {site.id}: {e}")

        days = days_until(expiry)
        if 0 < days <= self.cert_warn_days:
            await self.alerter.send_cert_warning(site.domain, days)
        return expiry

    async def _save(self, site: Site, result: SiteCheckResult):
        check = HealthCheck(
            site_id=site.id,
            http_status=result.http.status_code,
            latency_ms=result.http.latency_ms,
            container_status=result.container.label,
        )
        try:
            await self.history.record(check)
        except Exception as e:
            logger.error(f"Health checker: failed to save check for site {site.id}: {e}")
