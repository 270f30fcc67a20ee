"""Unit tests for the request proxy."""

import json
from typing import Any

import httpx
import pytest
from starlette.requests import Request

from factories.runtime import make_handle
from wakegate.config import Settings
from wakegate.core.errors import TenantUnreachableError, WakeRequiredError
from wakegate.modules.tenants.models import TenantState, utcnow
from wakegate.modules.tenants.proxy import RequestProxy, filter_headers
from wakegate.modules.tenants.registry import InMemoryTenantRegistry


def build_request(
    method: str = "GET",
    path: str = "/api/items",
    query: bytes = b"",
    headers: dict[str, str] | None = None,
    body: bytes = b"",
    client: tuple[str, int] = ("198.51.100.7", 50000),
) -> Request:
    """Build a Starlette request from a raw ASGI scope."""
    raw_headers = [(b"host", b"app.example.com")]
    raw_headers += [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if body:
        raw_headers.append((b"content-length", str(len(body)).encode()))
    scope: dict[str, Any] = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "root_path": "",
        "headers": raw_headers,
        "client": client,
        "server": ("app.example.com", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


async def start(registry: InMemoryTenantRegistry, tenant_id: str = "alice") -> None:
    await registry.transition(tenant_id, TenantState.SLEEPING, TenantState.PROVISIONING)
    await registry.transition(
        tenant_id,
        TenantState.PROVISIONING,
        TenantState.RUNNING,
        runtime_handle=make_handle(tenant_id),
    )


async def read_body(response: Any) -> bytes:
    chunks = [chunk async for chunk in response.body_iterator]
    if response.background is not None:
        await response.background()
    return b"".join(chunks)


class TestFilterHeaders:
    """Tests for hop-by-hop header removal."""

    def test_removes_hop_by_hop(self):
        headers = [
            ("Connection", "keep-alive"),
            ("Keep-Alive", "timeout=5"),
            ("Transfer-Encoding", "chunked"),
            ("Upgrade", "websocket"),
            ("Content-Type", "text/plain"),
        ]

        assert filter_headers(headers) == [("Content-Type", "text/plain")]

    def test_removes_headers_named_by_connection(self):
        """Headers listed in Connection should be treated as hop-by-hop too."""
        headers = [
            ("Connection", "close, X-Session-Hint"),
            ("X-Session-Hint", "1"),
            ("X-Kept", "1"),
        ]

        assert filter_headers(headers) == [("X-Kept", "1")]

    def test_keeps_duplicates_in_order(self):
        headers = [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]

        assert filter_headers(headers) == headers

    def test_extra_drop(self):
        assert filter_headers([("Host", "x"), ("Accept", "*/*")], drop={"host"}) == [
            ("Accept", "*/*")
        ]


class TestResolve:
    """Tests for locating the tenant runtime."""

    async def test_sleeping_tenant_requires_wake(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        proxy = RequestProxy(registry, settings, client=httpx.AsyncClient())

        with pytest.raises(WakeRequiredError) as exc_info:
            await proxy.resolve("alice")

        assert exc_info.value.headers == {"X-Wake-Required": "1"}
        await proxy.close()

    async def test_running_tenant_touched(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        """Resolving should record activity before the request is forwarded."""
        await start(registry)
        before = (await registry.get("alice")).last_active_at
        proxy = RequestProxy(registry, settings, client=httpx.AsyncClient())

        handle = await proxy.resolve("alice")

        assert handle == make_handle("alice")
        assert (await registry.get("alice")).last_active_at >= before
        await proxy.close()


class TestBuildHeaders:
    """Tests for upstream request headers."""

    def test_identity_and_forwarding(self, registry: InMemoryTenantRegistry, settings: Settings):
        """The proxy should set identity and forwarding headers itself."""
        proxy = RequestProxy(registry, settings, client=httpx.AsyncClient())
        request = build_request(
            headers={
                "X-User-ID": "mallory",
                "X-Forwarded-For": "203.0.113.1",
                "X-Forwarded-Proto": "http",
                "Accept": "application/json",
                "Connection": "keep-alive",
            }
        )

        headers = dict(proxy.build_headers(request, "alice"))

        assert headers["X-User-ID"] == "alice"
        assert headers["X-Forwarded-Host"] == "app.example.com"
        assert headers["X-Forwarded-For"] == "203.0.113.1, 198.51.100.7"
        assert headers["X-Forwarded-Proto"] == "https"
        assert headers["accept"] == "application/json"
        assert "x-user-id" not in headers
        assert "host" not in headers
        assert "connection" not in headers

    def test_forwarded_for_without_prior_hops(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        proxy = RequestProxy(registry, settings, client=httpx.AsyncClient())

        headers = dict(proxy.build_headers(build_request(), "alice"))

        assert headers["X-Forwarded-For"] == "198.51.100.7"


class TestForward:
    """Tests for relaying requests."""

    async def test_relays_request_and_response(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        """Method, path, query and body should reach the runtime unchanged."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201,
                json={"ok": True},
                headers={"X-Runtime": "tenant", "Connection": "close"},
            )

        await start(registry)
        proxy = RequestProxy(
            registry, settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        request = build_request(
            method="POST",
            path="/api/items",
            query=b"page=2",
            headers={"Content-Type": "application/json"},
            body=b'{"name": "x"}',
        )

        response = await proxy.forward(request, "alice")
        body = await read_body(response)

        assert response.status_code == 201
        assert json.loads(body) == {"ok": True}
        header_names = {k.decode().lower() for k, _ in response.raw_headers}
        assert "x-runtime" in header_names
        assert "connection" not in header_names

        upstream = seen[0]
        assert upstream.method == "POST"
        assert str(upstream.url) == "http://10.0.0.2:8080/api/items?page=2"
        assert upstream.headers["x-user-id"] == "alice"
        assert upstream.content == b'{"name": "x"}'
        await proxy.close()

    async def test_completion_records_activity(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        """Finishing the response should touch the tenant again."""
        await start(registry)
        proxy = RequestProxy(
            registry,
            settings,
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: httpx.Response(200, text="hi"))
            ),
        )
        started = utcnow()

        response = await proxy.forward(build_request(), "alice")
        assert await read_body(response) == b"hi"

        assert (await registry.get("alice")).last_active_at >= started
        await proxy.close()

    async def test_unreachable_runtime_flagged(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        """A connection failure should raise 502 and flag the tenant for a health check."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        await start(registry)
        proxy = RequestProxy(
            registry, settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(TenantUnreachableError):
            await proxy.forward(build_request(), "alice")

        record = await registry.get("alice")
        assert record.state == TenantState.RUNNING
        assert record.needs_health_check is True
        await proxy.close()

    async def test_sleeping_tenant_not_forwarded(
        self, registry: InMemoryTenantRegistry, settings: Settings
    ):
        seen: list[httpx.Request] = []
        proxy = RequestProxy(
            registry,
            settings,
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: seen.append(r) or httpx.Response(200))
            ),
        )

        with pytest.raises(WakeRequiredError):
            await proxy.forward(build_request(), "alice")

        assert seen == []
        await proxy.close()
