"""Tests for the health endpoint and the shared error envelope."""

from unittest.mock import patch

import pytest


@pytest.mark.asyncio
async def test_health_check(async_client):
    """Test health endpoint returns healthy status."""
    response = await async_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_check_database_down(async_client):
    with patch("versenest.api.health.check_db_connection", return_value=False):
        response = await async_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_root(async_client):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "VerseNest Auth"


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(async_client):
    response = await async_client.get("/no/such/route")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["timestamp"]


@pytest.mark.asyncio
async def test_wrong_method_uses_envelope(async_client):
    response = await async_client.get("/auth/login")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_validation_error_does_not_echo_input(async_client):
    response = await async_client.post(
        "/auth/login", json={"email": "not-an-email", "password": "Hunter2!secret"}
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "email"
    assert "Hunter2!secret" not in response.text
