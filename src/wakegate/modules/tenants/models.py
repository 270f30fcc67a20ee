"""Tenant lifecycle models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from wakegate.core.errors import InvalidTransitionError


class TenantState(StrEnum):
    """Lifecycle state of a tenant runtime."""

    SLEEPING = "sleeping"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    REAPING = "reaping"


# Sleeping -> Provisioning -> Running -> Reaping -> Sleeping, plus the
# Provisioning -> Sleeping rollback after a failed cold start.
ALLOWED_TRANSITIONS: dict[TenantState, frozenset[TenantState]] = {
    TenantState.SLEEPING: frozenset({TenantState.PROVISIONING}),
    TenantState.PROVISIONING: frozenset({TenantState.RUNNING, TenantState.SLEEPING}),
    TenantState.RUNNING: frozenset({TenantState.REAPING}),
    TenantState.REAPING: frozenset({TenantState.SLEEPING}),
}

# States in which a runtime handle must be recorded
HANDLE_STATES = frozenset({TenantState.RUNNING, TenantState.REAPING})

# Transient states owned by one provisioning or reaping operation
CLAIM_STATES = frozenset({TenantState.PROVISIONING, TenantState.REAPING})


def assert_transition(current: TenantState, new: TenantState) -> None:
    """Raise InvalidTransitionError unless ``current -> new`` is a lifecycle edge."""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, new.value)


class RuntimeHandle(BaseModel):
    """Reference to the provisioned container, network and volumes.

    Attributes:
        name: Tenant resource name (container name)
        container_id: Backend container id
        address: Host or IP the runtime listens on
        port: Port the runtime listens on
        network: Network the runtime is attached to
        volumes: Persistent volumes mounted into the runtime
    """

    name: str
    container_id: str
    address: str
    port: int
    network: str | None = None
    volumes: list[str] = Field(default_factory=list)

    @property
    def base_url(self) -> str:
        return f"http://{self.address}:{self.port}"


class TenantRecord(BaseModel):
    """Registry entry for one tenant.

    Attributes:
        tenant_id: Tenant identity
        state: Current lifecycle state
        runtime_handle: Set iff state is running or reaping
        last_active_at: Last successful proxied request (or ingestion)
        needs_health_check: Set when the proxy could not reach the runtime
        state_changed_at: When the current state was entered
    """

    tenant_id: str
    state: TenantState = TenantState.SLEEPING
    runtime_handle: RuntimeHandle | None = None
    last_active_at: datetime | None = None
    needs_health_check: bool = False
    state_changed_at: datetime | None = None

    @classmethod
    def sleeping(cls, tenant_id: str) -> "TenantRecord":
        """The implicit record of a tenant the registry has never seen."""
        return cls(tenant_id=tenant_id)

    def is_idle(self, cutoff: datetime) -> bool:
        """Whether the tenant has been inactive since before ``cutoff``."""
        return self.last_active_at is None or self.last_active_at < cutoff

    def claim_expired(self, cutoff: datetime) -> bool:
        """Whether a provisioning or reaping claim was taken before ``cutoff``.

        An expired claim has outlived its owner, which either crashed or
        lost the registry write that would have released it.
        """
        if self.state not in CLAIM_STATES:
            return False
        return self.state_changed_at is None or self.state_changed_at < cutoff


def utcnow() -> datetime:
    return datetime.now(UTC)
