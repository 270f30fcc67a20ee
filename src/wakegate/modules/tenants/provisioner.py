"""Runtime provisioner capability.

The supervisor core only depends on this interface. ``DockerProvisioner``
in ``wakegate.modules.tenants.docker`` is the shipped implementation.
"""

from abc import ABC, abstractmethod

from wakegate.modules.tenants.models import RuntimeHandle


class ProvisionerError(Exception):
    """Raised by a provisioner when a backend operation fails."""


class RuntimeProvisioner(ABC):
    """Creates, health-checks and destroys isolated per-tenant runtimes.

    Implementations must be idempotent per tenant: creating a runtime that
    already exists reuses it, and destroying one that is gone is a no-op.
    """

    @abstractmethod
    async def create(self, tenant_id: str) -> RuntimeHandle:
        """Create (or restart) network, volumes and container for a tenant.

        Raises:
            ProvisionerError: If the backend rejects the request
        """

    @abstractmethod
    async def health_check(self, handle: RuntimeHandle) -> bool:
        """Check the runtime once. Never raises for an unhealthy runtime."""

    @abstractmethod
    async def destroy(self, handle: RuntimeHandle) -> None:
        """Stop the runtime. Persistent volumes are kept.

        Raises:
            ProvisionerError: If the backend rejects the request
        """

    @abstractmethod
    async def logs(self, tenant_id: str, tail: int) -> str | None:
        """Return the last ``tail`` log lines, or None if no runtime exists."""

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend connections."""
