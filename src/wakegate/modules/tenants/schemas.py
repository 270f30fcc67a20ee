"""Tenant API schemas."""

from datetime import datetime

from pydantic import BaseModel

from wakegate.modules.tenants.models import TenantRecord, TenantState


class WarmupResponse(BaseModel):
    """Result of a successful warm-up."""

    tenant: str
    state: TenantState = TenantState.RUNNING


class TenantStatusResponse(BaseModel):
    """Lifecycle state of the caller's tenant."""

    tenant_id: str
    state: TenantState
    running: bool
    last_active_at: datetime | None = None


class TenantSummary(BaseModel):
    """Admin view of one registry record.

    Attributes:
        tenant_id: Tenant identity
        state: Lifecycle state
        runtime: Container name, when a runtime exists
        address: Runtime address, when a runtime exists
        last_active_at: Last recorded activity
        needs_health_check: Whether the proxy flagged the runtime
    """

    tenant_id: str
    state: TenantState
    runtime: str | None = None
    address: str | None = None
    last_active_at: datetime | None = None
    needs_health_check: bool = False

    @classmethod
    def from_record(cls, record: TenantRecord) -> "TenantSummary":
        handle = record.runtime_handle
        return cls(
            tenant_id=record.tenant_id,
            state=record.state,
            runtime=handle.name if handle else None,
            address=handle.base_url if handle else None,
            last_active_at=record.last_active_at,
            needs_health_check=record.needs_health_check,
        )


class StopResponse(BaseModel):
    """Result of an admin stop."""

    tenant_id: str
    stopped: bool
    state: TenantState
