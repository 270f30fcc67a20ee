"""Integration tests for the wake handshake and the proxy surface."""

import json
from collections.abc import Callable
from datetime import timedelta

import httpx
import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from factories.runtime import FakeProvisioner
from wakegate.config import Settings
from wakegate.core.auth.backend import create_access_token
from wakegate.modules.tenants.models import TenantState
from wakegate.modules.tenants.registry import InMemoryTenantRegistry


pytestmark = pytest.mark.integration

AuthHeaders = Callable[[str], dict[str, str]]


class TestAuthFirst:
    """Authentication happens before the registry is consulted."""

    @pytest.mark.parametrize(
        ("method", "path"),
        [("GET", "/status"), ("POST", "/warmup"), ("GET", "/authz"), ("GET", "/api/things")],
    )
    async def test_missing_token(
        self,
        client: AsyncClient,
        registry: InMemoryTenantRegistry,
        method: str,
        path: str,
    ):
        """Unauthenticated requests should get a plain 401 and touch nothing."""
        response = await client.request(method, path)

        assert response.status_code == 401
        assert "X-Wake-Required" not in response.headers
        assert response.json()["retryable"] is False
        assert await registry.list_records() == []

    async def test_expired_token(self, client: AsyncClient, settings: Settings):
        issued = create_access_token(
            "alice", expires_delta=timedelta(seconds=-1), settings=settings
        )

        response = await client.get(
            "/api/things", headers={"Authorization": f"Bearer {issued.token}"}
        )

        assert response.status_code == 401
        assert "X-Wake-Required" not in response.headers


class TestWakeHandshake:
    """Tests for the 401 + X-Wake-Required -> /warmup -> retry protocol."""

    async def test_sleeping_tenant_signals_wake(
        self, client: AsyncClient, auth_headers: AuthHeaders
    ):
        response = await client.get("/api/things", headers=auth_headers("alice"))

        assert response.status_code == 401
        assert response.headers["X-Wake-Required"] == "1"
        assert response.json()["retryable"] is True

    async def test_warmup_then_retry(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        provisioner: FakeProvisioner,
        upstream_requests: list[httpx.Request],
    ):
        """After warm-up the original request should reach the tenant runtime."""
        headers = auth_headers("alice")

        warmup = await client.post("/warmup", headers=headers)
        retry = await client.get("/api/things?page=2", headers=headers)

        assert warmup.status_code == 200
        assert warmup.json() == {"tenant": "app__alice", "state": "running"}
        assert retry.status_code == 200
        assert retry.headers["X-Runtime"] == "tenant"
        echoed = retry.json()
        assert echoed["path"] == "/api/things"
        assert echoed["query"] == "page=2"
        assert str(upstream_requests[0].url) == "http://10.0.0.2:8080/api/things?page=2"
        assert provisioner.created == ["alice"]

    async def test_warmup_of_running_tenant_is_idempotent(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        provisioner: FakeProvisioner,
    ):
        headers = auth_headers("alice")

        await client.post("/warmup", headers=headers)
        second = await client.post("/warmup", headers=headers)

        assert second.status_code == 200
        assert provisioner.created == ["alice"]

    async def test_warmup_failure_is_retryable(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        provisioner: FakeProvisioner,
        registry: InMemoryTenantRegistry,
    ):
        """A failed cold start should return 503 and leave the tenant sleeping."""
        provisioner.fail_creates = 10

        response = await client.post("/warmup", headers=auth_headers("alice"))

        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert (await registry.get("alice")).state == TenantState.SLEEPING


class TestForwarding:
    """Tests for what the tenant runtime receives."""

    async def test_trusted_identity_headers(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
    ):
        """The runtime should see the token's identity and forwarding headers."""
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        response = await client.get(
            "/api/things",
            headers={**headers, "X-User-ID": "alice", "X-Forwarded-For": "203.0.113.9"},
        )

        upstream = response.json()["headers"]
        assert upstream["x-user-id"] == "alice"
        assert upstream["x-forwarded-host"] == "test"
        assert upstream["x-forwarded-proto"] == "https"
        assert upstream["x-forwarded-for"].startswith("203.0.113.9, ")

    async def test_spoofed_identity_header_rejected(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        upstream_requests: list[httpx.Request],
    ):
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        response = await client.get("/api/things", headers={**headers, "X-User-ID": "bob"})

        assert response.status_code == 403
        assert upstream_requests == []

    async def test_spoofed_body_identity_rejected(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        upstream_requests: list[httpx.Request],
    ):
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        response = await client.post(
            "/api/messages", headers=headers, json={"user_id": "bob", "text": "hi"}
        )

        assert response.status_code == 403
        assert upstream_requests == []

    async def test_body_forwarded(self, client: AsyncClient, auth_headers: AuthHeaders):
        """A JSON body should be forwarded intact after the identity check reads it."""
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        response = await client.post(
            "/api/messages", headers=headers, json={"user_id": "alice", "text": "hi"}
        )

        assert response.status_code == 200
        echoed = response.json()
        assert echoed["method"] == "POST"
        assert json.loads(echoed["body"]) == {"user_id": "alice", "text": "hi"}

    async def test_proxied_request_records_activity(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        registry: InMemoryTenantRegistry,
    ):
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)
        before = (await registry.get("alice")).last_active_at

        await client.get("/api/things", headers=headers)

        assert (await registry.get("alice")).last_active_at > before

    async def test_unreachable_runtime(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        registry: InMemoryTenantRegistry,
    ):
        """A dead runtime should give 502 and be flagged for the reaper's health check."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)
        app.state.proxy.client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))

        response = await client.get("/api/things", headers=headers)

        assert response.status_code == 502
        assert response.json()["retryable"] is True
        assert (await registry.get("alice")).needs_health_check is True

    async def test_refreshed_token_on_proxied_response(
        self, client: AsyncClient, settings: Settings
    ):
        """A near-expiry token should be refreshed on streamed responses too."""
        issued = create_access_token(
            "alice", expires_delta=timedelta(minutes=2), settings=settings
        )
        headers = {"Authorization": f"Bearer {issued.token}"}
        await client.post("/warmup", headers=headers)

        response = await client.get("/api/things", headers=headers)

        assert response.status_code == 200
        assert response.headers["X-Refreshed-Token"] != issued.token


class TestStatusAndAuthz:
    """Tests for GET /status and GET /authz."""

    async def test_status_sleeping(self, client: AsyncClient, auth_headers: AuthHeaders):
        response = await client.get("/status", headers=auth_headers("alice"))

        assert response.status_code == 200
        data = response.json()
        assert data["tenant_id"] == "alice"
        assert data["state"] == "sleeping"
        assert data["running"] is False

    async def test_status_running(self, client: AsyncClient, auth_headers: AuthHeaders):
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        data = (await client.get("/status", headers=headers)).json()

        assert data["state"] == "running"
        assert data["running"] is True
        assert data["last_active_at"] is not None

    async def test_status_for_other_user_rejected(
        self, client: AsyncClient, auth_headers: AuthHeaders
    ):
        response = await client.get("/status?user_id=bob", headers=auth_headers("alice"))

        assert response.status_code == 403

    async def test_authz_sleeping(self, client: AsyncClient, auth_headers: AuthHeaders):
        response = await client.get("/authz", headers=auth_headers("alice"))

        assert response.status_code == 401
        assert response.headers["X-Wake-Required"] == "1"

    async def test_authz_running(self, client: AsyncClient, auth_headers: AuthHeaders):
        """Edge forward-auth should pass the trusted identity to the edge."""
        headers = auth_headers("alice")
        await client.post("/warmup", headers=headers)

        response = await client.get("/authz", headers=headers)

        assert response.status_code == 200
        assert response.headers["X-User-ID"] == "alice"
        assert response.headers["X-User-Container"] == "app__alice"
