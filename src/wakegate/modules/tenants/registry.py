"""Tenant registry.

The registry is the only shared mutable state of the supervisor. Every
state change goes through ``transition``, a compare-and-swap on the
tenant's current state, so the wake coordinator and the idle reaper can
race safely without a global lock.

Absent tenants read as sleeping with no runtime handle.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from wakegate.modules.tenants.locks import KeyedLocks
from wakegate.modules.tenants.models import (
    HANDLE_STATES,
    RuntimeHandle,
    TenantRecord,
    TenantState,
    assert_transition,
    utcnow,
)


def apply_transition(
    record: TenantRecord,
    expected: TenantState,
    new: TenantState,
    *,
    runtime_handle: RuntimeHandle | None = None,
    idle_before: datetime | None = None,
    claimed_before: datetime | None = None,
    now: datetime | None = None,
) -> TenantRecord | None:
    """Compute the record after a CAS transition.

    Args:
        record: Current record (implicitly sleeping if never stored)
        expected: State the caller believes the tenant is in
        new: Target state
        runtime_handle: Handle to record; required when entering running
        idle_before: Additionally require ``last_active_at`` to be older
            than this instant (reaper guard against concurrent activity)
        claimed_before: Additionally require the current provisioning or
            reaping claim to have been taken before this instant (release
            of an abandoned claim)
        now: Clock override

    Returns:
        The updated record, or None if the compare failed

    Raises:
        InvalidTransitionError: If ``expected -> new`` is not a lifecycle edge
        ValueError: If entering running without a handle
    """
    assert_transition(expected, new)

    if record.state != expected:
        return None
    if idle_before is not None and not record.is_idle(idle_before):
        return None
    if claimed_before is not None and not record.claim_expired(claimed_before):
        return None

    now = now or utcnow()
    updated = record.model_copy()
    updated.state = new
    updated.state_changed_at = now

    if new == TenantState.RUNNING:
        if runtime_handle is None:
            raise ValueError("a runtime handle is required to enter running")
        updated.runtime_handle = runtime_handle
        if updated.last_active_at is None or updated.last_active_at < now:
            updated.last_active_at = now
        updated.needs_health_check = False
    elif new not in HANDLE_STATES:
        updated.runtime_handle = None
        updated.needs_health_check = False

    return updated


def apply_touch(record: TenantRecord, at: datetime | None = None) -> TenantRecord | None:
    """Compute the record after an activity update, or None if not running."""
    if record.state != TenantState.RUNNING:
        return None
    at = at or utcnow()
    updated = record.model_copy()
    if updated.last_active_at is None or updated.last_active_at < at:
        updated.last_active_at = at
    return updated


class TenantRegistry(ABC):
    """Keyed tenant store with per-key compare-and-swap transitions."""

    @abstractmethod
    async def get(self, tenant_id: str) -> TenantRecord | None:
        """Return a snapshot of the tenant's record, or None if never seen."""

    @abstractmethod
    async def transition(
        self,
        tenant_id: str,
        expected: TenantState,
        new: TenantState,
        *,
        runtime_handle: RuntimeHandle | None = None,
        idle_before: datetime | None = None,
        claimed_before: datetime | None = None,
    ) -> bool:
        """Move ``tenant_id`` from ``expected`` to ``new``.

        Returns:
            True on success, False on conflict (state or activity changed)
        """

    @abstractmethod
    async def touch(self, tenant_id: str, at: datetime | None = None) -> bool:
        """Record activity for a running tenant.

        Returns:
            False if the tenant is not running
        """

    @abstractmethod
    async def set_health_flag(self, tenant_id: str, flagged: bool) -> bool:
        """Set or clear the health re-check flag of a running tenant."""

    @abstractmethod
    async def list_records(self) -> list[TenantRecord]:
        """Return snapshots of all known tenants."""

    async def ping(self) -> bool:
        """Check the backing store is reachable."""
        return True

    async def get_or_sleeping(self, tenant_id: str) -> TenantRecord:
        """Like ``get`` but returns the implicit sleeping record for unknown tenants."""
        record = await self.get(tenant_id)
        return record if record is not None else TenantRecord.sleeping(tenant_id)

    async def flag_for_health_check(self, tenant_id: str) -> bool:
        return await self.set_health_flag(tenant_id, True)

    async def clear_health_check(self, tenant_id: str) -> bool:
        return await self.set_health_flag(tenant_id, False)


class InMemoryTenantRegistry(TenantRegistry):
    """Process-local registry.

    Suitable for a single supervisor process. Each tenant key has its own
    lock, so transitions for different tenants never wait on each other.
    """

    def __init__(self) -> None:
        self._records: dict[str, TenantRecord] = {}
        self._locks = KeyedLocks()

    async def get(self, tenant_id: str) -> TenantRecord | None:
        record = self._records.get(tenant_id)
        return record.model_copy() if record is not None else None

    async def transition(
        self,
        tenant_id: str,
        expected: TenantState,
        new: TenantState,
        *,
        runtime_handle: RuntimeHandle | None = None,
        idle_before: datetime | None = None,
        claimed_before: datetime | None = None,
    ) -> bool:
        async with self._locks.hold(tenant_id):
            current = self._records.get(tenant_id) or TenantRecord.sleeping(tenant_id)
            updated = apply_transition(
                current,
                expected,
                new,
                runtime_handle=runtime_handle,
                idle_before=idle_before,
                claimed_before=claimed_before,
            )
            if updated is None:
                return False
            self._records[tenant_id] = updated
            return True

    async def touch(self, tenant_id: str, at: datetime | None = None) -> bool:
        async with self._locks.hold(tenant_id):
            current = self._records.get(tenant_id)
            if current is None:
                return False
            updated = apply_touch(current, at)
            if updated is None:
                return False
            self._records[tenant_id] = updated
            return True

    async def set_health_flag(self, tenant_id: str, flagged: bool) -> bool:
        async with self._locks.hold(tenant_id):
            current = self._records.get(tenant_id)
            if current is None or current.state != TenantState.RUNNING:
                return False
            self._records[tenant_id] = current.model_copy(
                update={"needs_health_check": flagged}
            )
            return True

    async def list_records(self) -> list[TenantRecord]:
        return [record.model_copy() for record in self._records.values()]
