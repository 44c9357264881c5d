"""
Monitoring Routes Integration Tests
===================================

Integration tests for the /monitoring endpoints:
- POST /monitoring/start, /stop and GET /monitoring/status
- PUT /monitoring/interval
- GET /monitoring/health, /metrics/*, /performance
"""

import pytest
from httpx import AsyncClient


pytestmark = pytest.mark.integration


class TestMonitoringControl:
    """Integration tests for start, stop and interval updates."""

    async def test_status_defaults(self, client: AsyncClient, admin_headers: dict):
        response = await client.get("/monitoring/status", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"is_monitoring": False, "check_interval_ms": 600_000}

    async def test_start_then_stop(self, client: AsyncClient, admin_headers: dict):
        # Act
        started = await client.post("/monitoring/start", headers=admin_headers)
        stopped = await client.post("/monitoring/stop", headers=admin_headers)

        # Assert
        assert started.json()["is_monitoring"] is True
        assert stopped.json()["is_monitoring"] is False

    async def test_interval_below_one_minute(self, client: AsyncClient, admin_headers: dict):
        # Act
        response = await client.put(
            "/monitoring/interval",
            json={"check_interval_ms": 30_000},
            headers=admin_headers,
        )

        # Assert
        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INVALID_INTERVAL"
        assert body["message"] == "Check interval must be at least 1 minute"
        assert body["details"] == {"interval_ms": 30_000, "minimum_ms": 60_000}

    async def test_interval_update(self, client: AsyncClient, admin_headers: dict):
        response = await client.put(
            "/monitoring/interval",
            json={"check_interval_ms": 120_000},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["check_interval_ms"] == 120_000

    async def test_control_requires_admin(self, client: AsyncClient, service_headers: dict):
        response = await client.post("/monitoring/start", headers=service_headers)

        assert response.status_code == 403


class TestMonitoringDashboard:
    """Integration tests for health, metrics and performance."""

    async def test_health(self, client: AsyncClient, admin_headers: dict):
        response = await client.get("/monitoring/health", headers=admin_headers)

        data = response.json()
        assert data["overall"] == "healthy"
        assert data["database"] == "healthy"
        assert data["uptime"] == 100.0

    async def test_security_metrics(self, client: AsyncClient, admin_headers: dict, container):
        await container.event_logger.log_login_success("u1", "user@example.com")

        response = await client.get("/monitoring/metrics/security", headers=admin_headers)

        assert response.json()["total_logins"] == 1
        assert response.json()["success_rate"] == 100.0

    async def test_system_metrics(self, client: AsyncClient, admin_headers: dict):
        response = await client.get("/monitoring/metrics/system", headers=admin_headers)

        data = response.json()
        assert data["health"]["overall"] == "healthy"
        assert data["monitoring"]["is_monitoring"] is False
        assert data["active_alerts"] == 0

    async def test_performance_reflects_served_requests(self, client: AsyncClient, admin_headers: dict):
        # Arrange
        await client.get("/health")
        await client.get("/health")

        # Act
        response = await client.get("/monitoring/performance", headers=admin_headers)
        history = await client.get("/monitoring/performance/history", headers=admin_headers)

        # Assert
        data = response.json()
        assert data["error_rate"] == 0.0
        assert data["peak_response_time"] >= data["average_response_time"] > 0
        assert len(history.json()) == 1
