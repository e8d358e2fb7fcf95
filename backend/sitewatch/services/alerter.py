"""Alerter service - dispatches webhook and email notices for state changes."""
import logging
from typing import Optional

from ..config import Settings
from .email_sender import EmailSender
from .failure_state import FailureTracker
from .notifier import NotificationError, Notifier
from .webhook_sender import WebhookSender

logger = logging.getLogger(__name__)


class AlerterService:
    """Delivers the notifications decided by the failure tracker.

    Always called after the tracker's lock has been released. Only a failed
    webhook alert is retried, by clearing the site's alerted flag so the next
    down round fires again. Every other failure is logged and dropped.
    """

    def __init__(
        self,
        tracker: FailureTracker,
        webhook: Optional[Notifier] = None,
        email: Optional[Notifier] = None,
    ):
        self.tracker = tracker
        self.webhook = webhook
        self.email = email

    @classmethod
    def from_settings(cls, settings: Settings, tracker: FailureTracker) -> "AlerterService":
        webhook = None
        if settings.webhook_url:
            webhook = WebhookSender(
                settings.webhook_url,
                settings.webhook_format,
                timeout=settings.probe_timeout_seconds,
            )
        return cls(tracker, webhook=webhook, email=EmailSender.from_settings(settings))

    async def send_alert(self, site_id: int, domain: str, consecutive_failures: int, detail: str):
        """Send a down alert through every configured channel."""
        if self.webhook is not None:
            try:
                await self.webhook.send_alert(domain, consecutive_failures, detail)
            except NotificationError as e:
                logger.error(f"Webhook alert failed for {domain}: {e}")
                self.tracker.rollback_alert(site_id)

        if self.email is not None:
            try:
                await self.email.send_alert(domain, consecutive_failures, detail)
            except NotificationError as e:
                logger.error(f"Email alert failed for {domain}: {e}")

    async def send_recovery(self, domain: str):
        """Send a recovery notice through every configured channel."""
        if self.webhook is not None:
            try:
                await self.webhook.send_recovery(domain)
            except NotificationError as e:
                logger.error(f"Webhook recovery failed for {domain}: {e}")

        if self.email is not None:
            try:
                await self.email.send_recovery(domain)
            except NotificationError as e:
                logger.error(f"Email recovery failed for {domain}: {e}")

    async def send_cert_warning(self, domain: str, days_remaining: int):
        """Webhook-only certificate expiry warning.

        Not debounced: it repeats every round while the certificate stays
        inside the warning window.
        """
        if self.webhook is None:
            return

        detail = f"SSL certificate expires in {days_remaining} days"
        try:
            await self.webhook.send_alert(domain, 0, detail)
        except NotificationError as e:
            logger.error(f"Webhook cert-expiry alert failed for {domain}: {e}")
