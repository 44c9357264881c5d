"""
Email notification channel.

Sends through SMTP in a worker thread so the event loop never blocks
on the mail server.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import ChannelType
from watchpost.core.logging import get_logger
from watchpost.services.channels.base import DeliveryResult, NotificationChannel, NotificationMessage

logger = get_logger(__name__)


class EmailChannel(NotificationChannel):
    """Plain-text alert email over SMTP."""

    channel_type = ChannelType.EMAIL

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @staticmethod
    def _recipients(config: Dict[str, Any]) -> List[str]:
        value = config.get("to") or config.get("recipients") or []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value]

    def _build(self, recipients: List[str], message: NotificationMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self.settings.SMTP_SENDER
        email["To"] = ", ".join(recipients)
        email["Subject"] = f"[{message.severity.value.upper()}] {message.subject}"
        lines = [
            message.body,
            "",
            f"Severity: {message.severity.value.upper()}",
            f"Time: {message.created_at.isoformat()}",
        ]
        if message.alert_id:
            lines.append(f"Alert ID: {message.alert_id}")
        lines += ["", "Please investigate this alert promptly."]
        email.set_content("\n".join(lines))
        return email

    def _send_sync(self, email: EmailMessage) -> None:
        with smtplib.SMTP(
            self.settings.SMTP_HOST,
            self.settings.SMTP_PORT,
            timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS,
        ) as server:
            if self.settings.SMTP_USE_TLS:
                server.starttls()
            if self.settings.SMTP_USERNAME:
                server.login(self.settings.SMTP_USERNAME, self.settings.SMTP_PASSWORD or "")
            server.send_message(email)

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        recipients = self._recipients(config)
        if not recipients:
            return DeliveryResult.failed("No email recipients configured")
        if not self.settings.SMTP_HOST:
            return DeliveryResult.failed("SMTP host not configured")

        try:
            await asyncio.to_thread(self._send_sync, self._build(recipients, message))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_delivery_failed", recipients=recipients, error=str(e))
            return DeliveryResult.failed(str(e))

        logger.info("email_delivered", recipients=recipients, alert_id=message.alert_id)
        return DeliveryResult.ok()
