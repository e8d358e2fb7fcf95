"""Email sender service - sends alerts via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List
from dataclasses import dataclass

from ..config import Settings
from .notifier import NotificationError

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    to_address: str = ""  # Comma-separated list of email addresses


def parse_recipients(to_address: str) -> List[str]:
    """Parse comma-separated email addresses into a list."""
    if not to_address:
        return []
    return [addr.strip() for addr in to_address.split(",") if addr.strip()]


class EmailSender:
    """Sends down and recovery notices via SMTP."""

    def __init__(self, config: EmailConfig, timeout: int = 30):
        self.config = config
        self.recipients = parse_recipients(config.to_address)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["EmailSender"]:
        """Build a sender, or None when host, sender or recipients are missing."""
        if not settings.smtp_host or not settings.smtp_from or not settings.alert_email:
            return None
        return cls(EmailConfig(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.smtp_from,
            to_address=settings.alert_email,
        ))

    async def send_alert(self, domain: str, consecutive_failures: int, detail: str) -> None:
        subject = f"Site Down: {domain}"
        body = (
            f"Site {domain} is DOWN.\n\n"
            f"{consecutive_failures} consecutive health check failures.\n\n"
            f"Last error: {detail}"
        )
        await self.send_email(subject, body)

    async def send_recovery(self, domain: str) -> None:
        subject = f"Site Recovered: {domain}"
        body = f"Site {domain} is back UP and responding normally."
        await self.send_email(subject, body)

    def build_message(self, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.from_address or self.config.username
        msg["To"] = ", ".join(self.recipients)
        msg.attach(MIMEText(body, "plain", "utf-8"))
        return msg

    async def send_email(self, subject: str, body: str) -> None:
        """Send an email to every recipient. Raises NotificationError on failure."""
        if not self.config.host or not self.recipients:
            raise NotificationError("email not configured - missing host or recipients")

        msg = self.build_message(subject, body)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._deliver, msg)
        logger.info(f"Email sent successfully to {len(self.recipients)} recipient(s): {subject}")

    def _deliver(self, msg: MIMEMultipart) -> None:
        config = self.config
        from_addr = config.from_address or config.username

        try:
            with smtplib.SMTP(config.host, config.port, timeout=self.timeout) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, self.recipients, msg.as_string())

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            raise NotificationError(f"SMTP authentication failed: {e}") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise NotificationError(f"Recipients refused by server: {e}") from e
        except smtplib.SMTPSenderRefused as e:
            raise NotificationError(f"Sender address refused: {e}") from e
        except smtplib.SMTPException as e:
            raise NotificationError(f"SMTP error: {type(e).__name__}: {e}") from e
        except OSError as e:
            # Connection refused, DNS failure, timeout
            raise NotificationError(f"Failed to connect to {config.host}:{config.port}: {e}") from e
