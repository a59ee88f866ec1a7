"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_without_redis(client):
    """Redis is never initialised in tests: reported, not fatal."""
    data = (await client.get("/api/v1/health")).json()
    assert data["redis"] == "not connected"
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_health_counts_live_sessions(client, make_user, db_session):
    from datetime import timedelta

    from qureka.db.models import utcnow
    from qureka.services.refresh_token_store import RefreshTokenStore

    store = RefreshTokenStore(db_session)
    live = await make_user()
    stale = await make_user()
    await store.save(live.id, "live-token", utcnow() + timedelta(days=1))
    await store.save(stale.id, "stale-token", utcnow() - timedelta(minutes=1))

    data = (await client.get("/api/v1/health")).json()
    assert data["live_sessions"] == 1
