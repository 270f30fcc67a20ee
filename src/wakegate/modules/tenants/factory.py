"""Construction of tenant components from settings.

Shared by the web application and the ARQ worker so both processes see
the same registry and runtime backend.
"""

import redis.asyncio as redis

from wakegate.config import Settings
from wakegate.modules.tenants.docker import DockerProvisioner
from wakegate.modules.tenants.provisioner import RuntimeProvisioner
from wakegate.modules.tenants.redis_registry import RedisTenantRegistry
from wakegate.modules.tenants.registry import InMemoryTenantRegistry, TenantRegistry


def build_registry(
    settings: Settings,
    redis_client: redis.Redis | None = None,  # type: ignore[type-arg]
) -> TenantRegistry:
    """Create the configured registry backend.

    Raises:
        ValueError: If the Redis backend is selected without a client
    """
    if settings.registry_backend == "redis":
        if redis_client is None:
            raise ValueError("registry_backend=redis requires REDIS_URL")
        return RedisTenantRegistry(redis_client)
    return InMemoryTenantRegistry()


def build_provisioner(settings: Settings) -> RuntimeProvisioner:
    return DockerProvisioner(settings)
