"""
Tests for the FastAPI application and health endpoints.
"""

import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError

from app.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_api_health_connected():
    """Health endpoint should return healthy when DB is connected."""
    with patch("app.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "healthy"
            assert data["database"] == "connected"


@pytest.mark.anyio
async def test_api_health_disconnected():
    """Health endpoint should return 503 when the DB is unreachable."""
    error = OperationalError("SELECT 1", {}, Exception("connection refused"))
    with patch("app.main.check_db_connection", new_callable=AsyncMock, side_effect=error):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
            assert response.status_code == 503
            data = response.json()
            assert data["status"] == "unhealthy"
            assert data["database"] == "disconnected"


@pytest.mark.anyio
async def test_health_and_liveness():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

        response = await client.get("/health/live")
        assert response.json() == {"status": "alive"}


@pytest.mark.anyio
async def test_security_headers_present():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"].upper() == "DENY"
