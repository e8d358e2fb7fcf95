"""Webhook sender service - posts alerts to Discord or Slack webhooks."""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from .notifier import NotificationError

logger = logging.getLogger(__name__)

FORMAT_DISCORD = "discord"
FORMAT_SLACK = "slack"

COLOR_RED = 16711680
COLOR_GREEN = 65280


class WebhookSender:
    """Sends alert and recovery notices to a chat webhook.

    ``fmt`` selects the payload shape: ``slack`` posts a plain text
    message, anything else posts a Discord embed.
    """

    def __init__(
        self,
        url: str,
        fmt: str = FORMAT_DISCORD,
        timeout: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.format = fmt
        self.timeout = timeout
        self._transport = transport

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def build_alert_payload(self, domain: str, consecutive_failures: int, detail: str) -> dict:
        if self.format == FORMAT_SLACK:
            return {
                "text": f"*{domain}* is DOWN — {consecutive_failures} consecutive failures\nLast error: {detail}",
            }
        return {
            "embeds": [
                {
                    "title": f"Site Down: {domain}",
                    "description": f"{consecutive_failures} consecutive health check failures\n\nLast error: {detail}",
                    "color": COLOR_RED,
                    "timestamp": self._timestamp(),
                }
            ]
        }

    def build_recovery_payload(self, domain: str) -> dict:
        if self.format == FORMAT_SLACK:
            return {"text": f"*{domain}* is back UP"}
        return {
            "embeds": [
                {
                    "title": f"Site Recovered: {domain}",
                    "description": "Site is responding normally again.",
                    "color": COLOR_GREEN,
                    "timestamp": self._timestamp(),
                }
            ]
        }

    async def send_alert(self, domain: str, consecutive_failures: int, detail: str) -> None:
        """Post a down notice. Raises on transport error or HTTP >= 400."""
        if not self.url:
            return

        response = await self._post(self.build_alert_payload(domain, consecutive_failures, detail))
        if response.status_code >= 400:
            raise NotificationError(f"webhook returned status {response.status_code}")
        logger.info(f"Webhook alert sent for {domain}")

    async def send_recovery(self, domain: str) -> None:
        """Post a recovery notice. Only transport errors are raised."""
        if not self.url:
            return

        await self._post(self.build_recovery_payload(domain))
        logger.info(f"Webhook recovery sent for {domain}")

    async def _post(self, payload: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            raise NotificationError(f"webhook request failed: {e}") from e
