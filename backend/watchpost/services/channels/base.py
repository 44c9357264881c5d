"""
Notification Channel Base Module

Defines the interface every notification channel implements and the
registry the dispatcher resolves channels from.

New channel types register an instance on the registry; the dispatcher
never switches on channel type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from watchpost.core.enums import ChannelType, Severity


@dataclass(frozen=True)
class NotificationMessage:
    """Channel-neutral content of one notification."""

    subject: str
    body: str
    severity: Severity
    created_at: datetime
    alert_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single delivery attempt."""

    delivered: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(delivered=True)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(delivered=False, error=error)


class NotificationChannel(ABC):
    """
    Abstract base class for notification channels.

    Class Attributes:
        channel_type: The action type this channel serves
    """

    channel_type: ClassVar[ChannelType]

    @abstractmethod
    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        """
        Deliver a message.

        Args:
            config: Recipient configuration from the alert action
            message: Content to deliver

        Returns:
            DeliveryResult; expected delivery failures are returned, not raised
        """
        raise NotImplementedError("Subclasses must implement send()")

    @staticmethod
    def describe_recipient(config: Dict[str, Any]) -> Optional[str]:
        """Human-readable recipient recorded on the notification row."""
        for key in ("to", "recipients", "channel", "url", "webhook_url", "phone"):
            value = config.get(key)
            if value:
                return ", ".join(value) if isinstance(value, (list, tuple)) else str(value)
        return None


class ChannelRegistry:
    """
    Registry mapping channel type to channel implementation.

    Example:
        >>> registry = ChannelRegistry()
        >>> registry.register(EmailChannel(settings))
        >>> registry.get(ChannelType.EMAIL)
    """

    def __init__(self) -> None:
        self._channels: Dict[str, NotificationChannel] = {}

    def register(self, channel: NotificationChannel) -> NotificationChannel:
        """Register a channel, replacing any previous one of the same type."""
        if not hasattr(channel, "channel_type"):
            raise ValueError(f"Channel {type(channel).__name__} must have a 'channel_type' attribute")
        self._channels[ChannelType(channel.channel_type).value] = channel
        return channel

    def get(self, channel_type: ChannelType | str) -> Optional[NotificationChannel]:
        key = channel_type.value if isinstance(channel_type, ChannelType) else str(channel_type)
        return self._channels.get(key)

    def channel_types(self) -> List[str]:
        return list(self._channels.keys())

    def clear(self) -> None:
        """Remove all registered channels (for testing)."""
        self._channels.clear()
