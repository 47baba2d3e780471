"""Tests for the admin moderation endpoints."""

from datetime import timedelta

import pytest
import pytest_asyncio

from versenest.models import Role
from versenest.models.base import utcnow

from tests.conftest import TEST_PASSWORD, bearer, login


@pytest_asyncio.fixture
async def admin_headers(async_client, user_factory):
    """Authorization headers for a freshly created admin."""
    await user_factory(role=Role.ADMIN, email="admin@example.com")
    data, _ = await login(async_client, "admin@example.com")
    return bearer(data["accessToken"])


@pytest_asyncio.fixture
async def reader(async_client, user_factory):
    """A reader with one live session: (user, access token, refresh token)."""
    user = await user_factory(email="reader@example.com")
    data, refresh_token = await login(async_client, "reader@example.com")
    return user, data["accessToken"], refresh_token


@pytest.mark.asyncio
async def test_admin_routes_require_admin_role(async_client, reader):
    user, access_token, _ = reader

    response = await async_client.get(f"/admin/users/{user.id}", headers=bearer(access_token))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_admin_routes_require_authentication(async_client, reader):
    user, _, _ = reader
    response = await async_client.post(f"/admin/users/{user.id}/ban")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_user(async_client, admin_headers, reader):
    user, _, _ = reader

    response = await async_client.get(f"/admin/users/{user.id}", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["user"]
    assert data["email"] == "reader@example.com"
    assert data["isBanned"] is False
    assert data["failedLoginAttempts"] == 0
    assert "passwordHash" not in data


@pytest.mark.asyncio
async def test_get_unknown_user(async_client, admin_headers):
    response = await async_client.get(
        "/admin/users/00000000-0000-0000-0000-000000000000", headers=admin_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_ban_ends_sessions_and_blocks_login(async_client, admin_headers, reader):
    user, access_token, refresh_token = reader

    response = await async_client.post(
        f"/admin/users/{user.id}/ban", json={"reason": "spam"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["user"]["isBanned"] is True
    assert response.json()["user"]["banReason"] == "spam"

    me = await async_client.get("/auth/me", headers=bearer(access_token))
    assert me.status_code == 401
    refreshed = await async_client.post("/auth/refresh", json={"refreshToken": refresh_token})
    assert refreshed.status_code == 401
    response = await async_client.post(
        "/auth/login", json={"email": "reader@example.com", "password": TEST_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "ACCOUNT_BANNED"

    response = await async_client.post(f"/admin/users/{user.id}/unban", headers=admin_headers)
    assert response.status_code == 200
    await login(async_client, "reader@example.com")


@pytest.mark.asyncio
async def test_temporary_ban(async_client, admin_headers, reader):
    user, _, _ = reader
    until = (utcnow() + timedelta(days=3)).isoformat()

    response = await async_client.post(
        f"/admin/users/{user.id}/ban", json={"expiresAt": until}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["user"]["banExpiresAt"] is not None


@pytest.mark.asyncio
async def test_ban_in_the_past_rejected(async_client, admin_headers, reader):
    user, _, _ = reader
    response = await async_client.post(
        f"/admin/users/{user.id}/ban",
        json={"expiresAt": (utcnow() - timedelta(days=1)).isoformat()},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_cannot_ban_self(async_client, admin_headers):
    me = await async_client.get("/auth/me", headers=admin_headers)
    admin_id = me.json()["user"]["id"]

    response = await async_client.post(f"/admin/users/{admin_id}/ban", headers=admin_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unlock(async_client, admin_headers, reader, db_session):
    user, _, _ = reader
    user.failed_login_attempts = 5
    user.lock_until = utcnow() + timedelta(minutes=30)
    await db_session.commit()

    response = await async_client.post(f"/admin/users/{user.id}/unlock", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["user"]["lockUntil"] is None
    await login(async_client, "reader@example.com")


@pytest.mark.asyncio
async def test_role_change_invalidates_tokens(async_client, admin_headers, reader):
    user, access_token, _ = reader

    response = await async_client.post(
        f"/admin/users/{user.id}/role",
        json={"role": "writer", "penName": "Late Bloomer"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "writer"
    assert response.json()["user"]["displayName"] == "Late Bloomer"
    me = await async_client.get("/auth/me", headers=bearer(access_token))
    assert me.status_code == 401
    assert me.json()["error"]["code"] == "TOKEN_REVOKED"


@pytest.mark.asyncio
async def test_role_change_to_writer_needs_pen_name(async_client, admin_headers, reader):
    user, _, _ = reader
    response = await async_client.post(
        f"/admin/users/{user.id}/role", json={"role": "writer"}, headers=admin_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_deactivate(async_client, admin_headers, reader):
    user, access_token, _ = reader

    response = await async_client.post(
        f"/admin/users/{user.id}/deactivate", headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["user"]["isActive"] is False
    assert response.json()["user"]["deletedAt"] is not None
    me = await async_client.get("/auth/me", headers=bearer(access_token))
    assert me.status_code == 401
    response = await async_client.post(
        "/auth/login", json={"email": "reader@example.com", "password": TEST_PASSWORD}
    )
    assert response.json()["error"]["code"] == "ACCOUNT_INACTIVE"


@pytest.mark.asyncio
async def test_revoke_tokens(async_client, admin_headers, reader):
    user, access_token, refresh_token = reader

    response = await async_client.post(
        f"/admin/users/{user.id}/revoke-tokens", headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["revoked"] == 1
    assert (await async_client.get("/auth/me", headers=bearer(access_token))).status_code == 401
    refreshed = await async_client.post("/auth/refresh", json={"refreshToken": refresh_token})
    assert refreshed.status_code == 401
    # The account itself stays usable
    await login(async_client, "reader@example.com")
