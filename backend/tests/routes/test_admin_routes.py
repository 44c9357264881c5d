"""
Admin Routes Integration Tests
==============================

Integration tests for admin endpoints including:
- POST /admin/accounts/{email}/unlock
- /admin/alert-rules CRUD
- GET /admin/alerts, acknowledge and resolve
- GET /admin/alerts/{alert_id}/notifications
- GET /admin/security-events and analytics
"""

import pytest
from httpx import AsyncClient

from watchpost.services.container import ServiceContainer


pytestmark = pytest.mark.integration

EMAIL = "user@example.com"

PERMISSION_RULE = {
    "name": "Permission Denied Burst",
    "event_type": "permission_denied",
    "condition": "threshold",
    "threshold": 2,
    "time_window_minutes": 10,
    "severity": "high",
    "actions": [{"type": "webhook", "config": {"url": "https://hooks.example.com/sec"}}],
}


async def _raise_suspicious_alert(container: ServiceContainer) -> str:
    await container.event_logger.log_suspicious_activity("u1", EMAIL, "impossible_travel")
    [alert] = await container.alerting.get_alerts()
    return alert.id


# =====================================
# Accounts
# =====================================

class TestUnlockEndpoint:
    """Integration tests for POST /admin/accounts/{email}/unlock."""

    async def test_unlock_locked_account(
        self,
        client: AsyncClient,
        admin_headers: dict,
        service_headers: dict,
        make_profile,
    ):
        # Arrange
        await make_profile(EMAIL)
        for _ in range(5):
            await client.post("/auth/login-attempts", json={"email": EMAIL, "success": False}, headers=service_headers)

        # Act
        response = await client.post(f"/admin/accounts/{EMAIL}/unlock", headers=admin_headers)

        # Assert
        assert response.status_code == 200
        assert response.json() == {"message": "Account unlocked", "email": EMAIL}
        status_response = await client.get(f"/auth/accounts/{EMAIL}/status", headers=admin_headers)
        assert status_response.json()["locked"] is False
        assert status_response.json()["failed_attempts"] == 0

    async def test_unknown_account_is_404(self, client: AsyncClient, admin_headers: dict):
        response = await client.post("/admin/accounts/nobody@example.com/unlock", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"

    async def test_requires_admin(self, client: AsyncClient, service_headers: dict):
        response = await client.post(f"/admin/accounts/{EMAIL}/unlock", headers=service_headers)

        assert response.status_code == 403
        assert response.json()["details"]["required_roles"] == ["admin", "security_admin"]


# =====================================
# Alert Rules
# =====================================

class TestAlertRuleEndpoints:
    """Integration tests for /admin/alert-rules."""

    async def test_lists_seeded_rules(self, client: AsyncClient, admin_headers: dict):
        response = await client.get("/admin/alert-rules", headers=admin_headers)

        assert response.status_code == 200
        ids = {rule["id"] for rule in response.json()}
        assert {"failed-login-threshold", "mfa-bypass-attempts", "account-lockout"} <= ids

    async def test_create_get_update_delete(self, client: AsyncClient, admin_headers: dict):
        # Create
        created = await client.post("/admin/alert-rules", json=PERMISSION_RULE, headers=admin_headers)
        assert created.status_code == 201
        rule_id = created.json()["id"]

        # Get
        fetched = await client.get(f"/admin/alert-rules/{rule_id}", headers=admin_headers)
        assert fetched.json()["name"] == "Permission Denied Burst"

        # Update
        updated = await client.patch(
            f"/admin/alert-rules/{rule_id}",
            json={"enabled": False, "threshold": 4},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.json()["enabled"] is False
        assert updated.json()["threshold"] == 4
        assert updated.json()["severity"] == "high"

        # Delete
        deleted = await client.delete(f"/admin/alert-rules/{rule_id}", headers=admin_headers)
        assert deleted.status_code == 204
        missing = await client.get(f"/admin/alert-rules/{rule_id}", headers=admin_headers)
        assert missing.status_code == 404
        assert missing.json()["error_code"] == "ALERT_RULE_NOT_FOUND"

    async def test_threshold_rule_without_threshold_is_rejected(self, client: AsyncClient, admin_headers: dict):
        body = {key: value for key, value in PERMISSION_RULE.items() if key != "threshold"}

        response = await client.post("/admin/alert-rules", json=body, headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_unknown_event_type_is_rejected(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            "/admin/alert-rules",
            json={**PERMISSION_RULE, "event_type": "coffee_spilled"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    async def test_delete_unknown_rule_is_404(self, client: AsyncClient, admin_headers: dict):
        response = await client.delete("/admin/alert-rules/does-not-exist", headers=admin_headers)

        assert response.status_code == 404


# =====================================
# Alerts
# =====================================

class TestAlertEndpoints:
    """Integration tests for alert triage."""

    async def test_list_and_get(self, client: AsyncClient, admin_headers: dict, container: ServiceContainer):
        alert_id = await _raise_suspicious_alert(container)

        listed = await client.get("/admin/alerts", headers=admin_headers)
        fetched = await client.get(f"/admin/alerts/{alert_id}", headers=admin_headers)

        assert [alert["id"] for alert in listed.json()] == [alert_id]
        assert fetched.json()["rule_id"] == "suspicious-activity"
        assert fetched.json()["status"] == "active"

    async def test_acknowledge_then_resolve(self, client: AsyncClient, admin_headers: dict, container):
        # Arrange
        alert_id = await _raise_suspicious_alert(container)

        # Act
        acknowledged = await client.post(f"/admin/alerts/{alert_id}/acknowledge", headers=admin_headers)
        resolved = await client.post(f"/admin/alerts/{alert_id}/resolve", headers=admin_headers)

        # Assert
        assert acknowledged.json()["status"] == "acknowledged"
        assert acknowledged.json()["acknowledged_by"] == "admin-user"
        assert resolved.json()["status"] == "resolved"
        assert resolved.json()["resolved_at"] is not None

    async def test_acknowledge_with_explicit_name(self, client: AsyncClient, admin_headers: dict, container):
        alert_id = await _raise_suspicious_alert(container)

        response = await client.post(
            f"/admin/alerts/{alert_id}/acknowledge",
            json={"acknowledged_by": "on-call"},
            headers=admin_headers,
        )

        assert response.json()["acknowledged_by"] == "on-call"

    async def test_resolving_twice_conflicts(self, client: AsyncClient, admin_headers: dict, container):
        alert_id = await _raise_suspicious_alert(container)
        await client.post(f"/admin/alerts/{alert_id}/resolve", headers=admin_headers)

        response = await client.post(f"/admin/alerts/{alert_id}/resolve", headers=admin_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "INVALID_ALERT_TRANSITION"
        assert body["details"]["current_status"] == "resolved"

    async def test_status_filter(self, client: AsyncClient, admin_headers: dict, container):
        alert_id = await _raise_suspicious_alert(container)
        await client.post(f"/admin/alerts/{alert_id}/resolve", headers=admin_headers)

        active = await client.get("/admin/alerts", params={"status": "active"}, headers=admin_headers)
        resolved = await client.get("/admin/alerts", params={"status": "resolved"}, headers=admin_headers)

        assert active.json() == []
        assert len(resolved.json()) == 1

    async def test_unknown_alert_is_404(self, client: AsyncClient, admin_headers: dict):
        response = await client.post("/admin/alerts/missing/acknowledge", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "ALERT_NOT_FOUND"

    async def test_stats(self, client: AsyncClient, admin_headers: dict, container):
        await _raise_suspicious_alert(container)

        response = await client.get("/admin/alerts/stats", headers=admin_headers)

        assert response.json()["total"] == 1
        assert response.json()["by_rule"] == {"Suspicious Activity Detection": 1}

    async def test_notification_history(self, client: AsyncClient, admin_headers: dict, container):
        # Arrange
        await client.post("/admin/alert-rules", json=PERMISSION_RULE, headers=admin_headers)
        for _ in range(2):
            await container.event_logger.log_permission_denied("u1", EMAIL, "reports", "delete")
        [alert] = await container.alerting.get_alerts()

        # Act
        response = await client.get(f"/admin/alerts/{alert.id}/notifications", headers=admin_headers)

        # Assert
        [notification] = response.json()
        assert notification["channel_type"] == "webhook"
        assert notification["status"] == "sent"


# =====================================
# Security Events & Analytics
# =====================================

class TestSecurityEventEndpoints:
    """Integration tests for audit log queries and analytics."""

    async def test_system_events(self, client: AsyncClient, admin_headers: dict, container):
        await container.event_logger.log_login_success("u1", EMAIL)
        await container.event_logger.log_session_expired("u2")

        response = await client.get("/admin/security-events", headers=admin_headers)

        assert response.status_code == 200
        assert {event["event_type"] for event in response.json()} == {"login_success", "session_expired"}

    async def test_user_events(self, client: AsyncClient, admin_headers: dict, container):
        await container.event_logger.log_login_success("u1", EMAIL)
        await container.event_logger.log_session_expired("u2")

        response = await client.get("/admin/users/u1/security-events", headers=admin_headers)

        assert [event["user_id"] for event in response.json()] == ["u1"]

    async def test_login_stats(self, client: AsyncClient, admin_headers: dict, container):
        await container.event_logger.log_login_success("u1", EMAIL)
        await container.event_logger.log_login_failure(EMAIL, reason="invalid_credentials", user_id="u1")

        response = await client.get("/admin/analytics/logins", params={"hours": 1}, headers=admin_headers)

        data = response.json()
        assert data["total_attempts"] == 2
        assert data["success_rate"] == 50.0
        assert data["period_hours"] == 1

    async def test_analytics_require_admin(self, client: AsyncClient, user_headers: dict):
        response = await client.get("/admin/analytics/suspicious-activity", headers=user_headers)

        assert response.status_code == 403
