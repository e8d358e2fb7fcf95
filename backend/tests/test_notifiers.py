"""Tests for the webhook and email notifiers and the alerter's dispatch rules."""
from __future__ import annotations

import json
import smtplib
from unittest.mock import MagicMock, patch

import httpx
import pytest

from conftest import RecordingNotifier
from sitewatch.config import Settings
from sitewatch.services.alerter import AlerterService
from sitewatch.services.email_sender import EmailConfig, EmailSender, parse_recipients
from sitewatch.services.failure_state import FailureTracker
from sitewatch.services.notifier import NotificationError, Notifier
from sitewatch.services.webhook_sender import WebhookSender


def capture(status_code: int = 204):
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(status_code)

    return sent, httpx.MockTransport(handler)


# ── Webhook ──────────────────────────────────────────────────────────────────


class TestWebhookSender:
    @pytest.mark.asyncio
    async def test_discord_alert_payload(self) -> None:
        sent, transport = capture()
        sender = WebhookSender("https://hooks.example/x", "discord", transport=transport)

        await sender.send_alert("a.example", 3, "HTTP: 0, Container: exited")

        embed = sent[0]["embeds"][0]
        assert embed["title"] == "Site Down: a.example"
        assert embed["description"] == "3 consecutive health check failures\n\nLast error: HTTP: 0, Container: exited"
        assert embed["color"] == 16711680
        assert embed["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_discord_recovery_payload(self) -> None:
        sent, transport = capture()
        sender = WebhookSender("https://hooks.example/x", transport=transport)

        await sender.send_recovery("a.example")

        embed = sent[0]["embeds"][0]
        assert embed["title"] == "Site Recovered: a.example"
        assert embed["description"] == "Site is responding normally again."
        assert embed["color"] == 65280

    @pytest.mark.asyncio
    async def test_slack_payloads(self) -> None:
        sent, transport = capture(200)
        sender = WebhookSender("https://hooks.example/x", "slack", transport=transport)

        await sender.send_alert("a.example", 4, "HTTP: 502, Container: running")
        await sender.send_recovery("a.example")

        assert sent == [
            {"text": "*a.example* is DOWN — 4 consecutive failures\nLast error: HTTP: 502, Container: running"},
            {"text": "*a.example* is back UP"},
        ]

    @pytest.mark.asyncio
    async def test_alert_error_status_raises(self) -> None:
        _, transport = capture(500)
        sender = WebhookSender("https://hooks.example/x", transport=transport)
        with pytest.raises(NotificationError):
            await sender.send_alert("a.example", 3, "x")

    @pytest.mark.asyncio
    async def test_recovery_ignores_error_status(self) -> None:
        _, transport = capture(500)
        sender = WebhookSender("https://hooks.example/x", transport=transport)
        await sender.send_recovery("a.example")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        sender = WebhookSender("https://hooks.example/x", transport=httpx.MockTransport(handler))
        with pytest.raises(NotificationError):
            await sender.send_recovery("a.example")

    @pytest.mark.asyncio
    async def test_empty_url_is_noop(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        sender = WebhookSender("", transport=httpx.MockTransport(handler))
        await sender.send_alert("a.example", 3, "x")
        await sender.send_recovery("a.example")

    def test_implements_notifier(self) -> None:
        assert isinstance(WebhookSender("https://hooks.example/x"), Notifier)


# ── Email ────────────────────────────────────────────────────────────────────


def test_parse_recipients() -> None:
    assert parse_recipients(" ops@example.com, ,dev@example.com ") == ["ops@example.com", "dev@example.com"]
    assert parse_recipients("") == []


class TestEmailSender:
    def make_sender(self, **overrides) -> EmailSender:
        config = dict(host="smtp.example", port=587, username="bot", password="secret",
                      use_tls=True, from_address="bot@example.com",
                      to_address="ops@example.com, dev@example.com")
        config.update(overrides)
        return EmailSender(EmailConfig(**config))

    @pytest.mark.asyncio
    async def test_alert_message(self) -> None:
        sender = self.make_sender()
        with patch("sitewatch.services.email_sender.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            await sender.send_alert("a.example", 3, "HTTP: 0, Container: ")

        mock_smtp.assert_called_once_with("smtp.example", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "secret")
        from_addr, recipients, raw = server.sendmail.call_args[0]
        assert from_addr == "bot@example.com"
        assert recipients == ["ops@example.com", "dev@example.com"]
        assert "Subject: Site Down: a.example" in raw

    def test_bodies(self) -> None:
        sender = self.make_sender()
        msg = sender.build_message("Site Recovered: a.example", "Site a.example is back UP and responding normally.")
        assert msg["To"] == "ops@example.com, dev@example.com"
        body = msg.get_payload()[0].get_payload(decode=True).decode()
        assert body == "Site a.example is back UP and responding normally."

    @pytest.mark.asyncio
    async def test_plain_smtp_without_login(self) -> None:
        sender = self.make_sender(use_tls=False, username="", password="")
        with patch("sitewatch.services.email_sender.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            await sender.send_recovery("a.example")

        server.starttls.assert_not_called()
        server.login.assert_not_called()
        server.sendmail.assert_called_once()

    @pytest.mark.asyncio
    async def test_smtp_error_raises_notification_error(self) -> None:
        sender = self.make_sender()
        with patch("sitewatch.services.email_sender.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(NotificationError):
                await sender.send_alert("a.example", 3, "x")

    @pytest.mark.asyncio
    async def test_connection_refused_raises_notification_error(self) -> None:
        sender = self.make_sender()
        with patch("sitewatch.services.email_sender.smtplib.SMTP", side_effect=ConnectionRefusedError()):
            with pytest.raises(NotificationError):
                await sender.send_recovery("a.example")

    def test_from_settings_requires_host_sender_and_recipients(self) -> None:
        assert EmailSender.from_settings(Settings(smtp_host="smtp.example", smtp_from="")) is None
        sender = EmailSender.from_settings(Settings(
            smtp_host="smtp.example", smtp_from="bot@example.com", alert_email="a@example.com,b@example.com",
        ))
        assert sender is not None
        assert sender.recipients == ["a@example.com", "b@example.com"]


# ── Alerter ──────────────────────────────────────────────────────────────────


class TestAlerterService:
    @pytest.mark.asyncio
    async def test_webhook_failure_rolls_back(self) -> None:
        tracker = FailureTracker(alert_threshold=1)
        tracker.record_down(5)
        alerter = AlerterService(tracker, webhook=RecordingNotifier(fail_alerts=True))

        await alerter.send_alert(5, "a.example", 1, "x")

        assert not tracker.get(5).alerted
        assert tracker.get(5).consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_email_failure_keeps_flag(self) -> None:
        tracker = FailureTracker(alert_threshold=1)
        tracker.record_down(5)
        email = RecordingNotifier(fail_alerts=True)
        alerter = AlerterService(tracker, webhook=RecordingNotifier(), email=email)

        await alerter.send_alert(5, "a.example", 1, "x")

        assert tracker.get(5).alerted
        assert len(email.alerts) == 1

    @pytest.mark.asyncio
    async def test_cert_warning_is_webhook_only(self) -> None:
        webhook = RecordingNotifier()
        email = RecordingNotifier()
        alerter = AlerterService(FailureTracker(), webhook=webhook, email=email)

        await alerter.send_cert_warning("tls.example", 7)

        assert webhook.alerts == [("tls.example", 0, "SSL certificate expires in 7 days")]
        assert email.alerts == []

    @pytest.mark.asyncio
    async def test_cert_warning_failure_is_swallowed(self) -> None:
        alerter = AlerterService(FailureTracker(), webhook=RecordingNotifier(fail_alerts=True))
        await alerter.send_cert_warning("tls.example", 7)

    def test_from_settings(self) -> None:
        tracker = FailureTracker()
        alerter = AlerterService.from_settings(
            Settings(webhook_url="https://hooks.example/x", webhook_format="slack"), tracker
        )
        assert isinstance(alerter.webhook, WebhookSender)
        assert alerter.webhook.format == "slack"
        assert alerter.email is None

        assert AlerterService.from_settings(Settings(webhook_url=""), tracker).webhook is None
