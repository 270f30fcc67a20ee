"""Pytest configuration and shared fixtures."""

import json
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from fakeredis import aioredis as fakeredis
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from factories.runtime import FakeProvisioner
from wakegate.config import Settings
from wakegate.core.auth.backend import create_access_token
from wakegate.main import create_app
from wakegate.modules.tenants.registry import InMemoryTenantRegistry


TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with fast timeouts and a throwaway database."""
    return Settings(
        environment="test",
        secret_key=TEST_SECRET,
        cookie_secure=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'central.db'}",
        run_reaper_in_app=False,
        provision_timeout_seconds=2.0,
        provision_max_attempts=2,
        health_check_retries=3,
        health_check_interval_seconds=0.0,
        wake_wait_timeout_seconds=2.0,
        wake_poll_interval_seconds=0.01,
        tenant_namespace_key="test-namespace-key",
    )


@pytest.fixture
def registry() -> InMemoryTenantRegistry:
    return InMemoryTenantRegistry()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    """In-process Redis double."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def upstream_requests() -> list[httpx.Request]:
    """Requests that reached the (mocked) tenant runtime."""
    return []


@pytest.fixture
def proxy_client(upstream_requests: list[httpx.Request]) -> httpx.AsyncClient:
    """HTTP client whose transport plays the tenant runtime.

    The runtime echoes what it received as JSON.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        body: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query.decode(),
            "headers": dict(request.headers),
            "body": request.content.decode(),
        }
        return httpx.Response(
            200,
            content=json.dumps(body).encode(),
            headers={"Content-Type": "application/json", "X-Runtime": "tenant"},
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
async def app(
    settings: Settings,
    registry: InMemoryTenantRegistry,
    provisioner: FakeProvisioner,
    proxy_client: httpx.AsyncClient,
    redis_client: fakeredis.FakeRedis,
) -> AsyncGenerator[FastAPI, None]:
    """Application with fake runtime backend, run through its lifespan."""
    application = create_app(
        settings,
        registry=registry,
        provisioner=provisioner,
        proxy_client=proxy_client,
        redis_client=redis_client,
    )
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the application."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def token_for(settings: Settings) -> Callable[..., str]:
    """Issue a session token for a user id."""

    def issue(user_id: str, **kwargs: Any) -> str:
        kwargs.setdefault("email", f"{user_id}@example.com")
        return create_access_token(user_id, settings=settings, **kwargs).token

    return issue


@pytest.fixture
def auth_headers(token_for: Callable[..., str]) -> Callable[[str], dict[str, str]]:
    """Bearer Authorization header for a user id."""

    def headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for(user_id)}"}

    return headers
