"""Root API router with health endpoints and module mounting."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from wakegate.api.dependencies import DBSession
from wakegate.core.auth import auth_router
from wakegate.modules import discover_modules
from wakegate.modules.tenants import proxy_router
from wakegate.modules.tenants.dependencies import Provisioner, Registry


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: datetime


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: str
    checks: dict[str, str]


# Create root API router
api_router = APIRouter()

# Health check endpoints
health_router = APIRouter(tags=["health"])


@health_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Returns 200 while the supervisor process is running.",
)
async def liveness() -> HealthResponse:
    """Liveness endpoint."""
    return HealthResponse(status="ok", time=datetime.now(UTC))


@health_router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks the registry, summary database, Redis and runtime backend.",
)
async def readiness(
    request: Request,
    db: DBSession,
    registry: Registry,
    provisioner: Provisioner,
) -> JSONResponse:
    """Readiness endpoint."""
    checks: dict[str, str] = {}

    try:
        checks["registry"] = "ok" if await registry.ping() else "unreachable"
    except Exception as e:
        checks["registry"] = str(e)

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = str(e)

    redis_client = request.app.state.redis
    if redis_client is not None:
        try:
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = str(e)

    checks["runtime"] = "ok" if await provisioner.ping() else "unreachable"

    all_ok = all(v == "ok" for v in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK
        if all_ok
        else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_ok else "degraded",
            "checks": checks,
        },
    )


api_router.include_router(health_router)
api_router.include_router(auth_router)

# Mount discovered module routers
for module_router in discover_modules():
    api_router.include_router(module_router)

# The proxy surface matches every path and must come last
api_router.include_router(proxy_router)
