"""
Alert Dispatcher
================

Fans an alert out to every enabled action on its rule.

Each delivery:
1. inserts an ``alert_notifications`` row with status ``pending``
2. calls the channel registered for the action type, bounded by a timeout
3. moves the row to ``sent`` or ``failed`` (with the error message)

Deliveries run concurrently and fail independently.
"""

import asyncio
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import ChannelType, NotificationStatus
from watchpost.core.logging import get_logger
from watchpost.db.store import EventStore
from watchpost.schemas.alerts import Alert, AlertAction, AlertNotification, AlertRule
from watchpost.schemas.events import SecurityEventInput
from watchpost.services.channels import (
    ChannelRegistry,
    DeliveryResult,
    NotificationChannel,
    NotificationMessage,
    build_default_registry,
)

logger = get_logger(__name__)

NOTIFICATIONS_TABLE = "alert_notifications"


class AlertDispatcher:
    """Delivers alerts through the channel registry and records the outcome."""

    def __init__(
        self,
        store: EventStore,
        registry: Optional[ChannelRegistry] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.registry = registry or build_default_registry(self.settings)
        self._clock = clock or (lambda: datetime.now(UTC))

    # =====================================
    # Rule Alerts
    # =====================================

    async def send_notifications(self, alert: Alert, rule: AlertRule) -> List[AlertNotification]:
        """
        Deliver an alert through every enabled action of its rule.

        Returns:
            Notification records that could be persisted
        """
        actions = [action for action in rule.actions if action.enabled]
        if not actions:
            logger.debug("alert_has_no_actions", alert_id=alert.id, rule_id=rule.id)
            return []

        message = NotificationMessage(
            subject=f"{rule.name} ({alert.severity.value})",
            body=alert.message,
            severity=alert.severity,
            created_at=alert.created_at,
            alert_id=alert.id,
            details=alert.details,
        )
        results = await asyncio.gather(*(self._deliver(alert, action, message) for action in actions))
        notifications = [n for n in results if n is not None]

        logger.info(
            "alert_notifications_dispatched",
            alert_id=alert.id,
            attempted=len(actions),
            sent=sum(1 for n in notifications if n.status == NotificationStatus.SENT),
        )
        return notifications

    async def _deliver(
        self,
        alert: Alert,
        action: AlertAction,
        message: NotificationMessage,
    ) -> Optional[AlertNotification]:
        recipient = NotificationChannel.describe_recipient(action.config)

        row: Optional[Dict[str, Any]] = None
        try:
            row = await self.store.insert(NOTIFICATIONS_TABLE, {
                "alert_id": alert.id,
                "channel_type": action.type.value,
                "status": NotificationStatus.PENDING.value,
                "recipient": recipient,
                "message": message.body,
                "created_at": self._clock(),
            })
        except Exception as e:
            logger.error("notification_record_failed", alert_id=alert.id, channel=action.type.value, error=str(e))

        result = await self._attempt(action.type, action.config, message)
        if row is None:
            return None

        patch: Dict[str, Any] = {
            "status": NotificationStatus.SENT.value if result.delivered else NotificationStatus.FAILED.value,
        }
        if result.delivered:
            patch["sent_at"] = self._clock()
        else:
            patch["error_message"] = result.error or "Delivery failed"

        try:
            await self.store.update(
                NOTIFICATIONS_TABLE,
                {"id": row["id"], "status": NotificationStatus.PENDING.value},
                patch,
            )
        except Exception as e:
            logger.error("notification_status_update_failed", notification_id=row["id"], error=str(e))
            return AlertNotification.model_validate(row)

        return AlertNotification.model_validate({**row, **patch})

    async def _attempt(
        self,
        channel_type: ChannelType,
        config: Dict[str, Any],
        message: NotificationMessage,
    ) -> DeliveryResult:
        channel = self.registry.get(channel_type)
        if channel is None:
            return DeliveryResult.failed(f"No channel registered for {channel_type.value}")
        try:
            return await asyncio.wait_for(
                channel.send(config, message),
                timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning("notification_delivery_timeout", channel=channel_type.value, alert_id=message.alert_id)
            return DeliveryResult.failed("Delivery timed out")
        except Exception as e:
            logger.error(
                "notification_delivery_error",
                channel=channel_type.value,
                alert_id=message.alert_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryResult.failed(str(e))

    # =====================================
    # Critical Event Alerts
    # =====================================

    async def send_security_alert(self, event: SecurityEventInput) -> List[DeliveryResult]:
        """
        Notify the security team about a critical event directly.

        No notification rows are written; there is no alert to attach them to.
        """
        message = NotificationMessage(
            subject=f"Critical security event: {event.event_type.value}",
            body=(
                f"Critical security event {event.event_type.value} for {event.subject}"
                + (f" from {event.ip_address}" if event.ip_address else "")
            ),
            severity=event.severity,
            created_at=event.timestamp,
            details={"event_type": event.event_type.value, "metadata": dict(event.metadata)},
        )

        targets: List[tuple[ChannelType, Dict[str, Any]]] = []
        if self.settings.SECURITY_ALERT_EMAILS:
            targets.append((ChannelType.EMAIL, {"to": list(self.settings.SECURITY_ALERT_EMAILS)}))
        if self.settings.SLACK_WEBHOOK_URL:
            targets.append((ChannelType.SLACK, {"webhook_url": self.settings.SLACK_WEBHOOK_URL}))

        results = await asyncio.gather(*(self._attempt(kind, config, message) for kind, config in targets))
        for (kind, _), result in zip(targets, results):
            if not result.delivered:
                logger.warning("security_alert_not_delivered", channel=kind.value, error=result.error)
        return list(results)

    # =====================================
    # Queries
    # =====================================

    async def get_notifications(self, alert_id: str) -> List[AlertNotification]:
        rows = await self.store.query(NOTIFICATIONS_TABLE, {"alert_id": alert_id}, order_by="created_at")
        return [AlertNotification.model_validate(row) for row in rows]
