"""
HTTP notification channels.

Webhook, push gateway, SMS gateway and Slack incoming webhook. All share
one ``httpx`` POST helper with timeout handling.
"""

from typing import Any, Dict, Optional

import httpx
from httpx import HTTPError, TimeoutException

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import ChannelType, Severity
from watchpost.core.logging import get_logger
from watchpost.services.channels.base import DeliveryResult, NotificationChannel, NotificationMessage

logger = get_logger(__name__)

SMS_MAX_LENGTH = 160

SLACK_COLORS = {
    Severity.LOW: "good",
    Severity.MEDIUM: "warning",
    Severity.HIGH: "danger",
    Severity.CRITICAL: "#ff0000",
}


class HttpChannel(NotificationChannel):
    """
    Base for channels that deliver with a JSON POST.

    Args:
        settings: Settings override
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> DeliveryResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except TimeoutException:
            logger.warning("notification_timeout", channel=self.channel_type.value, url=url)
            return DeliveryResult.failed("Request timed out")
        except HTTPError as e:
            logger.error("notification_http_error", channel=self.channel_type.value, url=url, error=str(e))
            return DeliveryResult.failed(str(e))

        logger.info("notification_delivered", channel=self.channel_type.value)
        return DeliveryResult.ok()

    @staticmethod
    def _payload(message: NotificationMessage) -> Dict[str, Any]:
        return {
            "alert_id": message.alert_id,
            "subject": message.subject,
            "message": message.body,
            "severity": message.severity.value,
            "created_at": message.created_at.isoformat(),
            "details": message.details,
        }


class WebhookChannel(HttpChannel):
    channel_type = ChannelType.WEBHOOK

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        url = config.get("url")
        if not url:
            return DeliveryResult.failed("Webhook URL not configured")
        return await self._post(url, self._payload(message), headers=config.get("headers"))


class PushChannel(HttpChannel):
    channel_type = ChannelType.PUSH

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        url = config.get("gateway_url") or self.settings.PUSH_GATEWAY_URL
        if not url:
            return DeliveryResult.failed("Push gateway not configured")
        payload = {
            "channel": config.get("channel"),
            "title": message.subject,
            "body": message.body,
            "priority": "high" if message.severity in (Severity.HIGH, Severity.CRITICAL) else "normal",
            "data": {"alert_id": message.alert_id, "severity": message.severity.value},
        }
        return await self._post(url, payload)


class SmsChannel(HttpChannel):
    channel_type = ChannelType.SMS

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        phone = config.get("phone") or config.get("to")
        if not phone:
            return DeliveryResult.failed("No phone number configured")
        if not self.settings.SMS_GATEWAY_URL:
            return DeliveryResult.failed("SMS gateway not configured")

        headers = {}
        if self.settings.SMS_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.SMS_API_KEY}"
        text = f"[{message.severity.value.upper()}] {message.body}"[:SMS_MAX_LENGTH]
        return await self._post(self.settings.SMS_GATEWAY_URL, {"to": phone, "message": text}, headers=headers)


class SlackChannel(HttpChannel):
    channel_type = ChannelType.SLACK

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        url = config.get("webhook_url") or self.settings.SLACK_WEBHOOK_URL
        if not url:
            return DeliveryResult.failed("Slack webhook not configured")

        payload: Dict[str, Any] = {
            "text": f"Security Alert: {message.subject}",
            "attachments": [
                {
                    "color": SLACK_COLORS.get(message.severity, "warning"),
                    "fields": [
                        {"title": "Severity", "value": message.severity.value.upper(), "short": True},
                        {"title": "Alert ID", "value": message.alert_id or "-", "short": True},
                        {"title": "Description", "value": message.body, "short": False},
                        {"title": "Timestamp", "value": message.created_at.isoformat(), "short": True},
                    ],
                }
            ],
        }
        if config.get("channel"):
            payload["channel"] = config["channel"]
        return await self._post(url, payload)
