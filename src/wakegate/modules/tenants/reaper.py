"""Idle reaper.

Periodically stops tenants that have seen no activity for the idle
threshold. Each reap is running -> reaping (conditional on the tenant still
being idle), destroy, then reaping -> sleeping. A request that touches the
tenant first makes the conditional transition fail and the tenant is skipped
for this sweep.

A reaping claim left behind by a reaper that died mid-reap is settled by a
later sweep once it is older than ``claim_stale_seconds``.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from wakegate.config import Settings
from wakegate.modules.tenants.models import TenantRecord, TenantState, utcnow
from wakegate.modules.tenants.provisioner import ProvisionerError, RuntimeProvisioner
from wakegate.modules.tenants.registry import TenantRegistry


logger = structlog.get_logger()


@dataclass
class SweepResult:
    """Outcome of one reaper pass."""

    reaped: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    checked: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "reaped": self.reaped,
            "skipped": self.skipped,
            "checked": self.checked,
            "recovered": self.recovered,
        }


class IdleReaper:
    """Stops idle or unhealthy tenant runtimes.

    Args:
        registry: Tenant registry
        provisioner: Runtime backend
        settings: Idle threshold and sweep interval
    """

    def __init__(
        self,
        registry: TenantRegistry,
        provisioner: RuntimeProvisioner,
        settings: Settings,
    ) -> None:
        self.registry = registry
        self.provisioner = provisioner
        self.settings = settings
        self.idle_after = timedelta(minutes=settings.idle_minutes)
        self.claim_expiry = timedelta(seconds=settings.claim_stale_seconds)
        self._task: asyncio.Task[None] | None = None

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one pass over all running tenants.

        Args:
            now: Clock override (tests)

        Returns:
            Which tenants were reaped, skipped after losing a race,
            health-checked and kept, or settled from an abandoned reap
        """
        now = now or utcnow()
        cutoff = now - self.idle_after
        claim_cutoff = now - self.claim_expiry
        result = SweepResult()

        for record in await self.registry.list_records():
            if record.state == TenantState.REAPING:
                if record.claim_expired(claim_cutoff) and await self._settle_abandoned(
                    record, claim_cutoff
                ):
                    result.recovered.append(record.tenant_id)
                continue
            if record.state != TenantState.RUNNING:
                continue

            if record.is_idle(cutoff):
                if await self._reap(record, idle_before=cutoff, reason="idle"):
                    result.reaped.append(record.tenant_id)
                else:
                    result.skipped.append(record.tenant_id)
            elif record.needs_health_check:
                await self._recheck(record, result)

        if result.reaped or result.recovered:
            logger.info("reaper_sweep_completed", **result.to_dict())
        return result

    async def reap(self, tenant_id: str) -> bool:
        """Stop a running tenant now, regardless of activity.

        Returns:
            False if the tenant was not running (or another caller won)
        """
        record = await self.registry.get(tenant_id)
        if record is None or record.state != TenantState.RUNNING:
            return False
        return await self._reap(record, reason="admin")

    async def _recheck(self, record: TenantRecord, result: SweepResult) -> None:
        handle = record.runtime_handle
        healthy = handle is not None and await self.provisioner.health_check(handle)
        if healthy:
            await self.registry.clear_health_check(record.tenant_id)
            result.checked.append(record.tenant_id)
            logger.info("tenant_health_recovered", tenant_id=record.tenant_id)
        elif await self._reap(record, reason="unhealthy"):
            result.reaped.append(record.tenant_id)
        else:
            result.skipped.append(record.tenant_id)

    async def _reap(
        self,
        record: TenantRecord,
        *,
        idle_before: datetime | None = None,
        reason: str,
    ) -> bool:
        tenant_id = record.tenant_id
        if not await self.registry.transition(
            tenant_id,
            TenantState.RUNNING,
            TenantState.REAPING,
            idle_before=idle_before,
        ):
            logger.debug("reap_race_skipped", tenant_id=tenant_id, reason=reason)
            return False

        # The record may have been re-provisioned since it was listed
        current = await self.registry.get(tenant_id)
        handle = current.runtime_handle if current else record.runtime_handle
        if handle is not None:
            try:
                await self.provisioner.destroy(handle)
            except ProvisionerError as e:
                logger.error("tenant_destroy_failed", tenant_id=tenant_id, error=str(e))

        if not await self.registry.transition(
            tenant_id, TenantState.REAPING, TenantState.SLEEPING
        ):
            # Left in reaping; a later sweep settles it once the claim expires
            logger.error("tenant_reap_settle_failed", tenant_id=tenant_id, reason=reason)
            return False
        logger.info(
            "tenant_reaped",
            tenant_id=tenant_id,
            reason=reason,
            last_active_at=record.last_active_at.isoformat() if record.last_active_at else None,
        )
        return True

    async def _settle_abandoned(self, record: TenantRecord, claimed_before: datetime) -> bool:
        """Finish a reap whose owner went away: destroy again, then release."""
        if record.runtime_handle is not None:
            try:
                await self.provisioner.destroy(record.runtime_handle)
            except ProvisionerError as e:
                logger.error(
                    "tenant_destroy_failed", tenant_id=record.tenant_id, error=str(e)
                )
        if not await self.registry.transition(
            record.tenant_id,
            TenantState.REAPING,
            TenantState.SLEEPING,
            claimed_before=claimed_before,
        ):
            return False
        logger.warning(
            "tenant_claim_expired",
            tenant_id=record.tenant_id,
            claimed_at=record.state_changed_at.isoformat() if record.state_changed_at else None,
        )
        return True

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep as a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="idle-reaper")
        logger.info(
            "reaper_started",
            interval=self.settings.reaper_interval_seconds,
            idle_minutes=self.settings.idle_minutes,
        )

    async def stop(self) -> None:
        """Cancel the background task and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("reaper_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.settings.reaper_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                # One bad sweep must not stop reaping for good
                logger.exception("reaper_sweep_failed")
