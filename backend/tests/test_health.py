"""Tests for health check endpoints."""

import pytest


@pytest.mark.unit
class TestHealth:
    """Health endpoint tests."""

    async def test_health_v1(self, client):
        """GET /api/v1/health returns 200 with status info."""
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] in ("healthy", "ok")
        assert data["database"] == "ok"
        assert "version" in data

    async def test_health_root(self, client):
        """GET /api/health returns 200 (unversioned, for load balancers)."""
        resp = await client.get("/api/health")
        assert resp.status_code == 200

    async def test_response_has_request_id(self, client):
        """Every response should have X-Request-ID header."""
        resp = await client.get("/api/v1/health")
        assert "x-request-id" in resp.headers

    async def test_custom_request_id_propagated(self, client):
        """If client sends X-Request-ID, it should be echoed back."""
        custom_id = "test-request-12345"
        resp = await client.get(
            "/api/v1/health",
            headers={"X-Request-ID": custom_id},
        )
        assert resp.headers.get("x-request-id") == custom_id

    async def test_responses_are_not_cacheable(self, client):
        """Every response carries Cache-Control: no-store."""
        resp = await client.get("/api/v1/health")
        assert resp.headers.get("cache-control") == "no-store"

    async def test_database_down(self, client, monkeypatch):
        """A failing database ping turns into 503."""
        import db.database as database

        async def broken_ping():
            raise OSError("connection refused")

        monkeypatch.setattr(database, "ping", broken_ping)
        resp = await client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json()["detail"]["database"] == "unavailable"


@pytest.mark.unit
def test_safe_url_masks_password():
    from db.database import safe_url

    assert safe_url("postgresql+asyncpg://admin:hunter2@db/wh") == "postgresql+asyncpg://admin:***@db/wh"
