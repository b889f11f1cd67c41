"""
Integration tests for health check endpoints.

These are the simplest tests: they verify the app starts up and can
respond to basic requests. If these fail, everything else will fail too,
so they're a good canary.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_root_endpoint(anon_client: AsyncClient):
    """GET / returns service info without authentication."""
    response = await anon_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "Nursing Procedure Video Library"
    assert data["status"] == "running"
    assert data["version"] == "1.0.0"


@pytest.mark.asyncio
async def test_health_check(anon_client: AsyncClient):
    """GET /health reports a connected database."""
    response = await anon_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert "environment" in data


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(client: AsyncClient):
    response = await client.get("/api/v1/nothing-here")

    assert response.status_code == 404
    body = response.json()
    assert body["statusCode"] == 404
    assert body["data"] is None
