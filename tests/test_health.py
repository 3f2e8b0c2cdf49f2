"""Tests for health check endpoints and request correlation."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from fleet_alerts.main import app
from fleet_alerts.middleware import CORRELATION_ID_HEADER
from tests.factories import install_rules, rule


@pytest.fixture
async def health_client():
    """Client that needs no database."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


def patch_db(connected: bool):
    return patch(
        "fleet_alerts.routers.health.check_database_connection",
        new_callable=AsyncMock,
        return_value=connected,
    )


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_healthy_with_db_connected(self, health_client):
        install_rules(rule(escalate_if_count=3))

        with patch_db(True):
            response = await health_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["rules_loaded"] == 1
        assert data["auto_close_running"] is False

    @pytest.mark.asyncio
    async def test_degraded_when_db_disconnected(self, health_client):
        with patch_db(False):
            response = await health_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


class TestLivenessAndReadiness:
    @pytest.mark.asyncio
    async def test_liveness(self, health_client):
        response = await health_client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    @pytest.mark.asyncio
    async def test_ready_needs_loaded_rules(self, health_client):
        with patch_db(True):
            response = await health_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["rules"] == "not_loaded"

    @pytest.mark.asyncio
    async def test_ready(self, health_client):
        install_rules(rule(escalate_if_count=3))

        with patch_db(True):
            response = await health_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"


class TestCorrelationId:
    @pytest.mark.asyncio
    async def test_generated_when_missing(self, health_client):
        response = await health_client.get("/health/live")

        assert len(response.headers[CORRELATION_ID_HEADER]) == 36

    @pytest.mark.asyncio
    async def test_echoes_caller_id(self, health_client):
        response = await health_client.get(
            "/health/live", headers={CORRELATION_ID_HEADER: "dispatch-42"}
        )

        assert response.headers[CORRELATION_ID_HEADER] == "dispatch-42"

    @pytest.mark.asyncio
    async def test_replaces_malformed_id(self, health_client):
        response = await health_client.get(
            "/health/live", headers={CORRELATION_ID_HEADER: "bad id with spaces"}
        )

        assert response.headers[CORRELATION_ID_HEADER] != "bad id with spaces"
        assert len(response.headers[CORRELATION_ID_HEADER]) == 36
