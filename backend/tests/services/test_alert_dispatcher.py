"""
Alert Dispatcher Tests
======================

Tests for AlertDispatcher covering:
- One notification row per enabled action
- pending -> sent / failed transitions
- Failure isolation between channels
- Critical-event security alerts
- Default channel implementations over an httpx mock transport
"""

import json
from datetime import datetime, UTC
from typing import Dict

import httpx
import pytest

from watchpost.core.enums import AlertCondition, ChannelType, EventType, NotificationStatus, Severity
from watchpost.schemas.alerts import AlertAction, AlertRuleCreate
from watchpost.schemas.events import SecurityEventInput
from watchpost.services.alert_dispatcher import AlertDispatcher
from watchpost.services.channels import (
    ChannelRegistry,
    DeliveryResult,
    NotificationMessage,
    SlackChannel,
    WebhookChannel,
    build_default_registry,
)
from watchpost.services.container import ServiceContainer

from conftest import RecordingChannel


pytestmark = pytest.mark.unit


async def _create_rule(container: ServiceContainer, actions):
    return await container.alerting.create_alert_rule(AlertRuleCreate(
        name="Permission Denied Burst",
        event_type=EventType.PERMISSION_DENIED,
        condition=AlertCondition.PATTERN,
        time_window_minutes=10,
        severity=Severity.HIGH,
        actions=actions,
    ))


class TestSendNotifications:
    """Tests for send_notifications."""

    async def test_each_enabled_action_is_recorded(
        self,
        container: ServiceContainer,
        channels: Dict[ChannelType, RecordingChannel],
    ):
        # Arrange
        await _create_rule(container, [
            AlertAction(type=ChannelType.EMAIL, config={"to": "ops@example.com"}),
            AlertAction(type=ChannelType.WEBHOOK, config={"url": "https://hooks.example.com/x"}),
            AlertAction(type=ChannelType.SMS, config={"phone": "+15550100"}, enabled=False),
        ])

        # Act
        await container.event_logger.log_permission_denied("u1", "user@example.com", "reports", "delete")

        # Assert
        alert = (await container.alerting.get_alerts())[0]
        notifications = await container.dispatcher.get_notifications(alert.id)
        assert sorted(n.channel_type.value for n in notifications) == ["email", "webhook"]
        assert all(n.status == NotificationStatus.SENT for n in notifications)
        assert all(n.sent_at is not None for n in notifications)
        assert channels[ChannelType.SMS].sent == []

    async def test_failing_channel_does_not_block_others(
        self,
        container: ServiceContainer,
        channels: Dict[ChannelType, RecordingChannel],
    ):
        # Arrange
        channels[ChannelType.EMAIL].raises = ConnectionError("smtp unreachable")
        channels[ChannelType.PUSH].fail = True
        await _create_rule(container, [
            AlertAction(type=ChannelType.EMAIL, config={"to": "ops@example.com"}),
            AlertAction(type=ChannelType.PUSH, config={"channel": "security"}),
            AlertAction(type=ChannelType.SLACK, config={"channel": "#sec"}),
        ])

        # Act
        await container.event_logger.log_permission_denied("u1", "user@example.com", "reports", "delete")

        # Assert
        alert = (await container.alerting.get_alerts())[0]
        by_channel = {n.channel_type: n for n in await container.dispatcher.get_notifications(alert.id)}
        assert by_channel[ChannelType.EMAIL].status == NotificationStatus.FAILED
        assert by_channel[ChannelType.EMAIL].error_message == "smtp unreachable"
        assert by_channel[ChannelType.PUSH].status == NotificationStatus.FAILED
        assert by_channel[ChannelType.PUSH].error_message == "gateway rejected the message"
        assert by_channel[ChannelType.SLACK].status == NotificationStatus.SENT

    async def test_missing_channel_is_recorded_as_failed(self, container: ServiceContainer, channel_registry):
        # Arrange
        channel_registry._channels.pop(ChannelType.SMS.value)
        await _create_rule(container, [AlertAction(type=ChannelType.SMS, config={"phone": "+15550100"})])

        # Act
        await container.event_logger.log_permission_denied("u1", "user@example.com", "reports", "delete")

        # Assert
        alert = (await container.alerting.get_alerts())[0]
        [notification] = await container.dispatcher.get_notifications(alert.id)
        assert notification.status == NotificationStatus.FAILED
        assert "No channel registered" in notification.error_message

    async def test_rule_without_actions_sends_nothing(self, container: ServiceContainer):
        await _create_rule(container, [])

        await container.event_logger.log_permission_denied("u1", "user@example.com", "reports", "delete")

        alert = (await container.alerting.get_alerts())[0]
        assert await container.dispatcher.get_notifications(alert.id) == []


class TestSecurityAlert:
    """Tests for send_security_alert."""

    async def test_email_and_slack_targets(self, store, settings, channel_registry, channels):
        # Arrange
        settings.SLACK_WEBHOOK_URL = "https://hooks.slack.example.com/T000"
        dispatcher = AlertDispatcher(store, registry=channel_registry, settings=settings)
        event = SecurityEventInput(event_type=EventType.BRUTE_FORCE_ATTEMPT, email="user@example.com")

        # Act
        results = await dispatcher.send_security_alert(event)

        # Assert
        assert results == [DeliveryResult.ok(), DeliveryResult.ok()]
        assert channels[ChannelType.SLACK].sent[0][0] == {"webhook_url": "https://hooks.slack.example.com/T000"}
        assert await store.count("alert_notifications") == 0

    async def test_no_targets_configured(self, store, settings, channel_registry):
        settings.SECURITY_ALERT_EMAILS = []
        dispatcher = AlertDispatcher(store, registry=channel_registry, settings=settings)

        results = await dispatcher.send_security_alert(SecurityEventInput(event_type=EventType.ACCOUNT_LOCKED))

        assert results == []


class TestHttpChannels:
    """Tests for the built-in HTTP channels over a mock transport."""

    def _message(self) -> NotificationMessage:
        return NotificationMessage(
            subject="Account Lockout (medium)",
            body="Account locked for user@example.com",
            severity=Severity.MEDIUM,
            created_at=datetime(2026, 10, 1, 12, 0, tzinfo=UTC),
            alert_id="a1",
        )

    async def test_webhook_posts_json_payload(self, settings):
        # Arrange
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        channel = WebhookChannel(settings, transport=httpx.MockTransport(handler))

        # Act
        result = await channel.send({"url": "https://hooks.example.com/alerts"}, self._message())

        # Assert
        assert result.delivered is True
        assert str(seen[0].url) == "https://hooks.example.com/alerts"
        payload = json.loads(seen[0].content)
        assert payload["subject"] == "Account Lockout (medium)"
        assert payload["alert_id"] == "a1"

    async def test_server_error_is_a_failed_delivery(self, settings):
        channel = SlackChannel(
            settings,
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )

        result = await channel.send({"webhook_url": "https://hooks.slack.example.com/T000"}, self._message())

        assert result.delivered is False
        assert "500" in result.error

    async def test_missing_url_is_a_failed_delivery(self, settings):
        channel = WebhookChannel(settings, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        result = await channel.send({}, self._message())

        assert result.delivered is False

    def test_default_registry_covers_every_channel_type(self, settings):
        registry = build_default_registry(settings)

        assert sorted(registry.channel_types()) == sorted(t.value for t in ChannelType)
        assert isinstance(registry, ChannelRegistry)
