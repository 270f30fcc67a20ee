"""ARQ worker configuration.

Defines the worker settings including registered jobs,
cron schedules, and startup/shutdown hooks.
"""

from typing import Any, ClassVar

import structlog
from arq import cron

from wakegate.config import settings
from wakegate.core.cache import close_redis_pool, create_redis_client
from wakegate.core.jobs.tasks.reaper import reap_idle_tenants
from wakegate.core.jobs.utils import get_redis_settings
from wakegate.modules.tenants.factory import build_provisioner, build_registry
from wakegate.modules.tenants.reaper import IdleReaper


async def startup(ctx: dict[str, Any]) -> None:
    """Build the registry, provisioner and reaper for the worker.

    Args:
        ctx: Worker context dict (shared across all jobs)

    Raises:
        RuntimeError: If the registry is process-local; a separate worker
            cannot see the web process's in-memory registry
    """
    log = structlog.get_logger()
    log.info("worker_startup", environment=settings.environment)

    if settings.registry_backend != "redis" or settings.redis_url is None:
        raise RuntimeError("the reaper worker requires REGISTRY_BACKEND=redis and REDIS_URL")

    registry = build_registry(settings, create_redis_client(str(settings.redis_url)))
    provisioner = build_provisioner(settings)

    ctx["registry"] = registry
    ctx["provisioner"] = provisioner
    ctx["reaper"] = IdleReaper(registry, provisioner, settings)

    log.info("worker_startup_complete")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when the worker stops.

    Args:
        ctx: Worker context dict
    """
    log = structlog.get_logger()
    log.info("worker_shutdown")

    provisioner = ctx.get("provisioner")
    if provisioner:
        await provisioner.close()

    await close_redis_pool()
    log.info("worker_shutdown_complete")


class WorkerSettings:
    """ARQ worker settings.

    Run the worker with:
        arq wakegate.core.jobs.worker.WorkerSettings
    """

    # Registered job functions
    functions: ClassVar[list[Any]] = [
        reap_idle_tenants,
    ]

    # Cron jobs (scheduled tasks)
    cron_jobs: ClassVar[list[Any]] = [
        # Sweep idle tenants every minute
        cron(reap_idle_tenants, second=0, unique=True),
    ]

    # Worker lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Redis connection
    redis_settings = get_redis_settings()

    # Worker configuration
    max_jobs = 10
    job_timeout = 300
    keep_result = 3600
    # A sweep is idempotent; the next cron tick retries
    retry_jobs = False
