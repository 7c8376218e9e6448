"""Integration tests for health check endpoint.

These tests verify that the health endpoint works correctly
with the full application stack.
"""

import pytest


class TestHealthCheckIntegration:
    """Integration tests for health check functionality."""

    @pytest.mark.asyncio
    async def test_health_endpoint_accessible(self, client):
        """Test that health endpoint is accessible without authentication."""
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "service": "coldai-core"}

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_json(self, client):
        response = await client.get("/healthz")

        assert response.headers.get("content-type") == "application/json"

    @pytest.mark.asyncio
    async def test_cors_headers_on_health_endpoint(self, client):
        """Test that the dashboard origin is allowed."""
        response = await client.options(
            "/healthz",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"


class TestRootEndpoint:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        data = response.json()
        assert data["name"] == "Cold AI Dashboard Core API"
        assert data["status"] == "running"
        assert "version" in data
