"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as redis
import structlog
from fastapi import FastAPI

from wakegate import __version__
from wakegate.api.router import api_router
from wakegate.config import Settings, get_settings
from wakegate.core.auth import AuthGuard, RequestIdMiddleware, TokenRefreshMiddleware
from wakegate.core.cache import RedisCache, close_redis_pool, create_redis_client
from wakegate.core.constants import REVOKED_TOKEN_PREFIX
from wakegate.core.database import create_engine, create_session_factory, create_tables
from wakegate.core.errors import register_exception_handlers
from wakegate.core.logging import RequestLoggingMiddleware, configure_logging
from wakegate.modules.tenants.coordinator import WakeCoordinator
from wakegate.modules.tenants.factory import build_provisioner, build_registry
from wakegate.modules.tenants.provisioner import RuntimeProvisioner
from wakegate.modules.tenants.proxy import RequestProxy
from wakegate.modules.tenants.reaper import IdleReaper
from wakegate.modules.tenants.registry import TenantRegistry


logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Handles startup and shutdown events.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        environment=settings.environment,
        registry_backend=settings.registry_backend,
    )
    if not settings.admin_token:
        logger.warning("admin_surface_unprotected")
    if app.state.redis is None:
        logger.warning("token_revocation_disabled")

    await create_tables(app.state.db_engine)
    logger.info("database_ready")

    if settings.run_reaper_in_app:
        app.state.reaper.start()

    yield

    # Shutdown
    logger.info("application_shutdown")

    await app.state.reaper.stop()
    await app.state.proxy.close()
    await app.state.provisioner.close()

    await app.state.db_engine.dispose()
    logger.info("database_engine_disposed")

    if app.state.redis is not None:
        await close_redis_pool()
        logger.info("redis_pool_closed")


def create_app(
    settings: Settings | None = None,
    *,
    registry: TenantRegistry | None = None,
    provisioner: RuntimeProvisioner | None = None,
    proxy_client: httpx.AsyncClient | None = None,
    redis_client: redis.Redis | None = None,  # type: ignore[type-arg]
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build with (defaults to the process settings)
        registry: Registry override (defaults to the configured backend)
        provisioner: Runtime backend override (defaults to Docker)
        proxy_client: HTTP client the proxy forwards with
        redis_client: Redis client override (defaults to one built from redis_url)

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    configure_logging(json_logs=settings.is_production, log_level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Wake-on-demand supervisor for per-tenant application runtimes",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        # Disable docs in production
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
    )

    if redis_client is None and settings.redis_url:
        redis_client = create_redis_client(str(settings.redis_url))
    registry = registry or build_registry(settings, redis_client)
    provisioner = provisioner or build_provisioner(settings)
    revocations = (
        RedisCache(redis_client, prefix=REVOKED_TOKEN_PREFIX) if redis_client is not None else None
    )
    engine = create_engine(settings)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.registry = registry
    app.state.provisioner = provisioner
    app.state.guard = AuthGuard(settings, revocations)
    app.state.coordinator = WakeCoordinator(registry, provisioner, settings)
    app.state.proxy = RequestProxy(registry, settings, client=proxy_client)
    app.state.reaper = IdleReaper(registry, provisioner, settings)
    app.state.db_engine = engine
    app.state.session_factory = create_session_factory(engine)

    # Middleware added last runs first: request ID, then logging, then refresh
    app.add_middleware(TokenRefreshMiddleware, settings=settings)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # Register exception handlers for RFC 7807 error responses
    register_exception_handlers(app)

    # Include API router (proxy catch-all last)
    app.include_router(api_router)

    return app


app = create_app()
