"""Tenant API routes.

Provides endpoints for:
- Warm-up (the second half of the wake handshake)
- Caller status and edge forward-auth
- Admin tenant listing, logs and stop
- The catch-all proxy surface (``proxy_router``, mounted last)
"""

import structlog
from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import PlainTextResponse

from wakegate.core.auth import AdminAccess, CurrentClaims, Guard, VerifiedClaims
from wakegate.core.constants import (
    RUNTIME_LOG_TAIL_LINES,
    USER_CONTAINER_HEADER,
    USER_ID_HEADER,
)
from wakegate.core.errors import NotFoundError, ServiceUnavailableError
from wakegate.modules.tenants.dependencies import (
    Coordinator,
    Provisioner,
    Proxy,
    Reaper,
    Registry,
)
from wakegate.modules.tenants.models import TenantState
from wakegate.modules.tenants.provisioner import ProvisionerError
from wakegate.modules.tenants.schemas import (
    StopResponse,
    TenantStatusResponse,
    TenantSummary,
    WarmupResponse,
)


logger = structlog.get_logger()

router = APIRouter(tags=["tenants"])
admin_router = APIRouter(prefix="/tenants", tags=["admin"], dependencies=[AdminAccess])
proxy_router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.post(
    "/warmup",
    response_model=WarmupResponse,
    summary="Wake the caller's tenant",
    description="Provisions the caller's runtime if it is sleeping and returns once it is running.",
    responses={503: {"description": "Provisioning failed or timed out (retryable)"}},
)
async def warmup(claims: VerifiedClaims, coordinator: Coordinator) -> WarmupResponse:
    """Run the wake coordinator synchronously."""
    handle = await coordinator.ensure_running(claims.tenant_id)
    logger.info("warmup_succeeded", tenant_id=claims.tenant_id, runtime=handle.name)
    return WarmupResponse(tenant=handle.name)


@router.get(
    "/status",
    response_model=TenantStatusResponse,
    summary="Tenant status",
    description="Reports the lifecycle state of the caller's tenant.",
)
async def tenant_status(
    claims: VerifiedClaims,
    guard: Guard,
    registry: Registry,
    user_id: str | None = Query(default=None),
) -> TenantStatusResponse:
    """Read the caller's registry record."""
    guard.check_identity(claims, user_id)
    record = await registry.get_or_sleeping(claims.tenant_id)
    return TenantStatusResponse(
        tenant_id=record.tenant_id,
        state=record.state,
        running=record.state == TenantState.RUNNING,
        last_active_at=record.last_active_at,
    )


@router.get(
    "/authz",
    status_code=status.HTTP_200_OK,
    summary="Edge forward-auth",
    description=(
        "For reverse proxies doing subrequest auth: 200 with the trusted identity "
        "headers when the tenant is running, 401 with X-Wake-Required when it sleeps."
    ),
)
async def authz(claims: CurrentClaims, proxy: Proxy) -> Response:
    """Authorize an edge request and count it as tenant activity."""
    handle = await proxy.resolve(claims.tenant_id)
    return Response(
        status_code=status.HTTP_200_OK,
        headers={
            USER_ID_HEADER: claims.tenant_id,
            USER_CONTAINER_HEADER: handle.name,
        },
    )


@admin_router.get(
    "",
    response_model=list[TenantSummary],
    summary="List tenants",
)
async def list_tenants(registry: Registry) -> list[TenantSummary]:
    records = await registry.list_records()
    return [TenantSummary.from_record(r) for r in sorted(records, key=lambda r: r.tenant_id)]


@admin_router.get(
    "/{tenant_id}/logs",
    response_class=PlainTextResponse,
    summary="Tenant runtime logs",
    description=f"Last {RUNTIME_LOG_TAIL_LINES} lines of the tenant runtime's output, ANSI codes stripped.",
)
async def tenant_logs(tenant_id: str, provisioner: Provisioner) -> PlainTextResponse:
    try:
        logs = await provisioner.logs(tenant_id, RUNTIME_LOG_TAIL_LINES)
    except ProvisionerError as e:
        logger.error("tenant_logs_failed", tenant_id=tenant_id, error=str(e))
        raise ServiceUnavailableError("Runtime backend unavailable") from e

    if logs is None:
        raise NotFoundError("Tenant runtime not found", resource="tenant", resource_id=tenant_id)
    return PlainTextResponse(logs)


@admin_router.post(
    "/{tenant_id}/stop",
    response_model=StopResponse,
    summary="Stop a tenant",
    description="Reaps a running tenant immediately, through the same path as the idle reaper.",
)
async def stop_tenant(tenant_id: str, reaper: Reaper, registry: Registry) -> StopResponse:
    stopped = await reaper.reap(tenant_id)
    record = await registry.get_or_sleeping(tenant_id)
    return StopResponse(tenant_id=tenant_id, stopped=stopped, state=record.state)


@proxy_router.api_route(
    "/{path:path}",
    methods=PROXY_METHODS,
    include_in_schema=False,
)
async def proxy_request(
    request: Request,
    claims: VerifiedClaims,
    proxy: Proxy,
) -> Response:
    """Forward anything else to the caller's running tenant."""
    return await proxy.forward(request, claims.tenant_id)


router.include_router(admin_router)
