"""
Report Routes Integration Tests
===============================

Integration tests for the /reports endpoints:
- POST /reports/{report_type}
- GET /reports
- DELETE /reports/expired
"""

import pytest
from httpx import AsyncClient

from conftest import FakeClock


pytestmark = pytest.mark.integration


class TestGenerateReport:
    """Integration tests for POST /reports/{report_type}."""

    @pytest.mark.parametrize("report_type,title", [
        ("user_activity", "User Activity Report"),
        ("security_incidents", "Security Incident Report"),
        ("system_health", "System Health Report"),
    ])
    async def test_generate_without_saving(self, client: AsyncClient, admin_headers: dict, report_type, title):
        response = await client.post(f"/reports/{report_type}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["report_type"] == report_type
        assert data["title"] == title
        assert "id" not in data

    async def test_generate_and_save(self, client: AsyncClient, admin_headers: dict, container):
        # Arrange
        await container.event_logger.log_login_success("u1", "user@example.com")

        # Act
        response = await client.post("/reports/comprehensive", json={"save": True}, headers=admin_headers)

        # Assert
        data = response.json()
        assert data["id"]
        assert data["report"]["summary"]["total_events"] == 1
        listed = await client.get("/reports", headers=admin_headers)
        assert [report["id"] for report in listed.json()] == [data["id"]]

    async def test_custom_window(self, client: AsyncClient, admin_headers: dict, container, clock: FakeClock):
        await container.event_logger.log_login_success("u1", "user@example.com")
        clock.advance(days=2)

        response = await client.post(
            "/reports/user_activity",
            json={"start": clock.now.isoformat(), "end": clock.now.isoformat()},
            headers=admin_headers,
        )

        assert response.json()["report"]["total_events"] == 0

    async def test_unknown_report_type(self, client: AsyncClient, admin_headers: dict):
        response = await client.post("/reports/quarterly", headers=admin_headers)

        assert response.status_code == 422

    async def test_requires_admin(self, client: AsyncClient, user_headers: dict):
        response = await client.post("/reports/user_activity", headers=user_headers)

        assert response.status_code == 403


class TestSavedReports:
    """Integration tests for listing and expiring saved reports."""

    async def test_filter_by_type(self, client: AsyncClient, admin_headers: dict):
        await client.post("/reports/user_activity", json={"save": True}, headers=admin_headers)
        await client.post("/reports/system_health", json={"save": True}, headers=admin_headers)

        response = await client.get("/reports", params={"report_type": "system_health"}, headers=admin_headers)

        assert [report["report_type"] for report in response.json()] == ["system_health"]

    async def test_cleanup_expired(self, client: AsyncClient, admin_headers: dict, clock: FakeClock):
        # Arrange
        await client.post("/reports/user_activity", json={"save": True}, headers=admin_headers)
        clock.advance(days=91)

        # Act
        response = await client.delete("/reports/expired", headers=admin_headers)

        # Assert
        assert response.json() == {"deleted": 1}
        assert (await client.get("/reports", headers=admin_headers)).json() == []
