"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Test the health check endpoint."""
    response = await test_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "innkeeper-api"
    assert "version" in data


@pytest.mark.asyncio
async def test_ready_check(test_client, engine, room, reservation):
    """Test the readiness check endpoint."""
    await engine.create_booking(reservation(room.id, 1, 3))

    response = await test_client.get("/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["claims"] == 1


@pytest.mark.asyncio
async def test_not_ready_during_outage(test_client, database):
    database.available = False

    response = await test_client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


@pytest.mark.asyncio
async def test_info_endpoint(test_client):
    """Test the service info endpoint."""
    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "innkeeper-api"
    assert data["features"]["idempotency"] is True
    assert data["endpoints"]["metrics"] == "/metrics"


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client):
    """Test the RPC-style health ping endpoint."""
    response = await test_client.post("/v1/health/ping")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    response = await test_client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client, auth_headers, sample_room_data):
    """Test the Prometheus metrics endpoint."""
    await test_client.post("/v1/room/provision", json=sample_room_data, headers=auth_headers)

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert "rooms_by_status" in response.text
