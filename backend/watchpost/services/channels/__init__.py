"""
Notification channels and the default registry.
"""

from typing import Optional

import httpx

from watchpost.core.config import Settings, get_settings
from watchpost.services.channels.base import (
    ChannelRegistry,
    DeliveryResult,
    NotificationChannel,
    NotificationMessage,
)
from watchpost.services.channels.email import EmailChannel
from watchpost.services.channels.http import (
    HttpChannel,
    PushChannel,
    SlackChannel,
    SmsChannel,
    WebhookChannel,
)


def build_default_registry(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChannelRegistry:
    """Registry with email, push, webhook, SMS and Slack channels."""
    settings = settings or get_settings()
    registry = ChannelRegistry()
    registry.register(EmailChannel(settings))
    for channel_class in (PushChannel, WebhookChannel, SmsChannel, SlackChannel):
        registry.register(channel_class(settings, transport=transport))
    return registry


__all__ = [
    "ChannelRegistry",
    "DeliveryResult",
    "NotificationChannel",
    "NotificationMessage",
    "EmailChannel",
    "HttpChannel",
    "PushChannel",
    "SlackChannel",
    "SmsChannel",
    "WebhookChannel",
    "build_default_registry",
]
