"""
Health Endpoint Tests
=====================

Tests for the health checks, metrics and the error envelope for unknown routes.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_endpoint(client: AsyncClient):
    """Test that the liveness endpoint returns OK."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "Summit2Shore API"
    assert "version" in data
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_api_health_checks_database(client: AsyncClient):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_api_health_reports_database_outage(client: AsyncClient, database, monkeypatch):
    async def broken_ping():
        raise ConnectionError("database unreachable")

    monkeypatch.setattr(database, "ping", broken_ping)

    response = await client.get("/api/health")

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "status": "unhealthy",
        "database": "disconnected",
    }


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client: AsyncClient):
    response = await client.get("/no/such/route")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "NOT_FOUND",
        "message": "Endpoint not found",
    }


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = await client.get("/api/health")
    assert generated.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient):
    await client.get("/api/databases")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert "rate_limit_exceeded_total" in response.text
