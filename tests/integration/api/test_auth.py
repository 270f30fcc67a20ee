"""Integration tests for session endpoints."""

from collections.abc import Callable
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI
from httpx import AsyncClient
from redis.exceptions import RedisError

from wakegate.config import Settings
from wakegate.core.auth.backend import create_access_token, decode_token


pytestmark = pytest.mark.integration


class TestLogin:
    """Tests for session issue."""

    async def test_login_issues_token_and_cookie(self, client: AsyncClient, settings: Settings):
        """POST /auth/login should return a token and set the session cookie."""
        response = await client.post(
            "/auth/login",
            json={"user_id": "alice", "email": "alice@example.com", "plan": "pro"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "alice"
        assert data["plan"] == "pro"
        assert data["token_type"] == "bearer"

        claims = decode_token(data["access_token"], settings)
        assert claims.sub == "alice"
        assert response.cookies.get(settings.cookie_name) == data["access_token"]
        assert "httponly" in response.headers["set-cookie"].lower()
        assert "samesite=strict" in response.headers["set-cookie"].lower()

    async def test_login_validates_payload(self, client: AsyncClient):
        response = await client.post("/auth/login", json={"user_id": "", "email": "a@b.c"})

        assert response.status_code == 422

    async def test_login_requires_admin_token_when_configured(
        self, client: AsyncClient, app: FastAPI
    ):
        """With an admin token configured, only the trusted frontend may issue sessions."""
        app.state.settings.admin_token = "frontend-secret"
        payload = {"user_id": "alice", "email": "alice@example.com"}

        denied = await client.post("/auth/login", json=payload)
        allowed = await client.post(
            "/auth/login", json=payload, headers={"X-Admin-Token": "frontend-secret"}
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200


class TestSessionStatus:
    """Tests for GET /session/status."""

    async def test_without_token(self, client: AsyncClient):
        response = await client.get("/session/status")

        assert response.status_code == 200
        assert response.json()["valid"] is False

    async def test_with_bearer_token(
        self, client: AsyncClient, auth_headers: Callable[[str], dict[str, str]]
    ):
        response = await client.get("/session/status", headers=auth_headers("alice"))

        data = response.json()
        assert data["valid"] is True
        assert data["user_id"] == "alice"
        assert "X-Refreshed-Token" not in response.headers

    async def test_with_cookie(self, client: AsyncClient, settings: Settings, token_for):
        """The session cookie should authenticate like a bearer token."""
        client.cookies.set(settings.cookie_name, token_for("alice"))

        response = await client.get("/session/status")

        assert response.json()["user_id"] == "alice"

    async def test_refresh_inside_window(self, client: AsyncClient, settings: Settings):
        """A token close to expiry should be replaced on the way out."""
        issued = create_access_token(
            "alice", expires_delta=timedelta(minutes=2), settings=settings
        )

        response = await client.get(
            "/session/status", headers={"Authorization": f"Bearer {issued.token}"}
        )

        refreshed = response.headers["X-Refreshed-Token"]
        assert refreshed != issued.token
        assert decode_token(refreshed, settings).sub == "alice"
        assert response.cookies.get(settings.cookie_name) == refreshed
        assert datetime.fromisoformat(response.json()["expires_at"]) > issued.expires_at


class TestLogout:
    """Tests for POST /auth/logout."""

    async def test_logout_revokes_token(
        self, client: AsyncClient, auth_headers: Callable[[str], dict[str, str]]
    ):
        """A logged-out token should no longer authenticate."""
        headers = auth_headers("alice")

        logout = await client.post("/auth/logout", headers=headers)
        status_after = await client.get("/session/status", headers=headers)
        tenant_after = await client.get("/status", headers=headers)

        assert logout.status_code == 204
        assert status_after.json()["valid"] is False
        assert tenant_after.status_code == 401
        assert tenant_after.json()["type"].endswith("/errors/token_revoked")

    async def test_logout_clears_cookie(self, client: AsyncClient, settings: Settings):
        response = await client.post("/auth/logout")

        assert response.status_code == 204
        assert f"{settings.cookie_name}=" in response.headers["set-cookie"]
        assert "samesite=strict" in response.headers["set-cookie"].lower()

    async def test_logout_when_revocation_store_down(
        self,
        client: AsyncClient,
        redis_client: FakeRedis,
        settings: Settings,
        auth_headers: Callable[[str], dict[str, str]],
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Logout should still clear the cookie when the revocation cannot be stored."""
        monkeypatch.setattr(redis_client, "setex", AsyncMock(side_effect=RedisError("down")))

        response = await client.post("/auth/logout", headers=auth_headers("alice"))

        assert response.status_code == 204
        assert f"{settings.cookie_name}=" in response.headers["set-cookie"]
