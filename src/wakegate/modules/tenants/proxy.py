"""Request proxy.

Forwards authenticated requests to a running tenant runtime and relays the
response. The tenant identity header is always set by the proxy; whatever
the caller sent under that name is replaced.
"""

from collections.abc import Iterable

import httpx
import structlog
from fastapi import Request
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from wakegate.config import Settings
from wakegate.core.constants import HOP_BY_HOP_HEADERS, USER_ID_HEADER
from wakegate.core.errors import TenantUnreachableError, WakeRequiredError
from wakegate.modules.tenants.models import RuntimeHandle, TenantState
from wakegate.modules.tenants.registry import TenantRegistry


logger = structlog.get_logger()

# Request headers the proxy recomputes itself
_REWRITTEN_REQUEST_HEADERS = frozenset(
    {
        "host",
        USER_ID_HEADER.lower(),
        "x-forwarded-host",
        "x-forwarded-for",
        "x-forwarded-proto",
    }
)


def _connection_tokens(value: str | None) -> set[str]:
    if not value:
        return set()
    return {token.strip().lower() for token in value.split(",") if token.strip()}


def filter_headers(
    items: Iterable[tuple[str, str]],
    drop: Iterable[str] = (),
) -> list[tuple[str, str]]:
    """Remove hop-by-hop headers (and those named by ``Connection``).

    Args:
        items: Header name/value pairs, duplicates allowed
        drop: Additional lower-case header names to remove

    Returns:
        The remaining pairs, order preserved
    """
    pairs = list(items)
    connection = ",".join(v for k, v in pairs if k.lower() == "connection")
    excluded = HOP_BY_HOP_HEADERS | _connection_tokens(connection) | set(drop)
    return [(k, v) for k, v in pairs if k.lower() not in excluded]


class RequestProxy:
    """Relays requests to tenant runtimes.

    Args:
        registry: Tenant registry, used to locate the runtime and record activity
        settings: Upstream timeouts and forwarded-proto value
        client: Optional preconfigured httpx client (tests pass a mock transport)
    """

    def __init__(
        self,
        registry: TenantRegistry,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.proxy_timeout_seconds,
                connect=settings.proxy_connect_timeout_seconds,
            ),
            follow_redirects=False,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def resolve(self, tenant_id: str) -> RuntimeHandle:
        """Claim activity on a running tenant and return its handle.

        Touching before forwarding keeps the idle reaper off a tenant that
        is about to receive traffic.

        Raises:
            WakeRequiredError: If the tenant is not running
        """
        if not await self.registry.touch(tenant_id):
            raise WakeRequiredError(details={"tenant_id": tenant_id})

        record = await self.registry.get(tenant_id)
        if (
            record is None
            or record.state != TenantState.RUNNING
            or record.runtime_handle is None
        ):
            raise WakeRequiredError(details={"tenant_id": tenant_id})
        return record.runtime_handle

    def build_headers(self, request: Request, tenant_id: str) -> list[tuple[str, str]]:
        """Upstream request headers with trusted identity and forwarding info."""
        headers = filter_headers(
            request.headers.items(),
            drop=_REWRITTEN_REQUEST_HEADERS,
        )

        # Append the immediate peer, as a standard reverse proxy does
        forwarded_for = request.headers.get("x-forwarded-for")
        peer = request.client.host if request.client else None
        if forwarded_for and peer:
            forwarded_for = f"{forwarded_for}, {peer}"
        else:
            forwarded_for = forwarded_for or peer or ""

        headers.extend(
            [
                (USER_ID_HEADER, tenant_id),
                ("X-Forwarded-Host", request.headers.get("host", "")),
                ("X-Forwarded-For", forwarded_for),
                ("X-Forwarded-Proto", self.settings.forwarded_proto),
            ]
        )
        return headers

    async def forward(self, request: Request, tenant_id: str) -> StreamingResponse:
        """Forward ``request`` to the tenant and stream back its response.

        Raises:
            WakeRequiredError: If the tenant is not running
            TenantUnreachableError: If the runtime cannot be reached; the
                tenant is flagged for a health re-check
        """
        handle = await self.resolve(tenant_id)

        url = f"{handle.base_url}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"

        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
        upstream_request = self.client.build_request(
            request.method,
            url,
            headers=self.build_headers(request, tenant_id),
            content=request.stream() if has_body else None,
        )

        try:
            upstream = await self.client.send(upstream_request, stream=True)
        except httpx.TransportError as e:
            logger.warning(
                "tenant_unreachable",
                tenant_id=tenant_id,
                runtime=handle.name,
                error=type(e).__name__,
            )
            await self.registry.flag_for_health_check(tenant_id)
            raise TenantUnreachableError(details={"tenant_id": tenant_id}) from e

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(self._finish, upstream, tenant_id),
        )
        response.raw_headers = [
            (k.encode("latin-1"), v.encode("latin-1"))
            for k, v in filter_headers(upstream.headers.multi_items())
        ]
        return response

    async def _finish(self, upstream: httpx.Response, tenant_id: str) -> None:
        await upstream.aclose()
        await self.registry.touch(tenant_id)
