"""Wake coordinator.

Turns a wake request for a sleeping tenant into exactly one provisioning
operation. Concurrent callers for the same tenant join the operation that
is already in flight instead of starting another one.
"""

import asyncio
import time
from datetime import timedelta

import structlog

from wakegate.config import Settings
from wakegate.core.errors import ProvisioningFailedError, ProvisioningTimeoutError
from wakegate.modules.tenants.locks import KeyedLocks
from wakegate.modules.tenants.models import RuntimeHandle, TenantRecord, TenantState, utcnow
from wakegate.modules.tenants.provisioner import ProvisionerError, RuntimeProvisioner
from wakegate.modules.tenants.registry import TenantRegistry


logger = structlog.get_logger()


class WakeCoordinator:
    """Drives sleeping -> provisioning -> running for one tenant at a time.

    Args:
        registry: Tenant registry (the CAS authority)
        provisioner: Runtime backend
        settings: Timeouts and retry budgets
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
        self._locks = KeyedLocks()
        self._inflight: dict[str, asyncio.Task[RuntimeHandle]] = {}

    def is_provisioning(self, tenant_id: str) -> bool:
        """Whether a provisioning operation is in flight in this process."""
        return tenant_id in self._inflight

    async def ensure_running(self, tenant_id: str) -> RuntimeHandle:
        """Return the handle of a running tenant, waking it if necessary.

        Raises:
            ProvisioningFailedError: If provisioning exhausted its attempts
            ProvisioningTimeoutError: If provisioning, or waiting on it,
                exceeded its deadline
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.wake_wait_timeout_seconds
        seen_provisioning = False

        while True:
            record, task = await self._claim(tenant_id, start=not seen_provisioning)

            if task is not None:
                return await self._join(tenant_id, task, deadline - loop.time())

            if record.state == TenantState.RUNNING and record.runtime_handle is not None:
                return record.runtime_handle

            if record.state == TenantState.PROVISIONING:
                seen_provisioning = True
            elif record.state == TenantState.SLEEPING and seen_provisioning:
                # Another process gave up on this tenant
                raise ProvisioningFailedError(details={"tenant_id": tenant_id})

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("tenant_wake_wait_timeout", tenant_id=tenant_id)
                raise ProvisioningTimeoutError(details={"tenant_id": tenant_id})
            await asyncio.sleep(min(self.settings.wake_poll_interval_seconds, remaining))

    async def _claim(
        self, tenant_id: str, *, start: bool = True
    ) -> tuple[TenantRecord, asyncio.Task[RuntimeHandle] | None]:
        """Find or start the provisioning task for a tenant.

        Returns the current record and the local in-flight task, if any.
        A record in provisioning with no task means another process owns
        the operation; a record in reaping has to settle first. With
        ``start`` false a sleeping tenant is reported, not claimed, unless
        this call released an abandoned claim itself.
        """
        async with self._locks.hold(tenant_id):
            task = self._inflight.get(tenant_id)
            if task is not None:
                return await self.registry.get_or_sleeping(tenant_id), task

            record = await self.registry.get_or_sleeping(tenant_id)
            if await self._release_abandoned(record):
                record = await self.registry.get_or_sleeping(tenant_id)
                start = True
            if record.state != TenantState.SLEEPING or not start:
                return record, None

            if not await self.registry.transition(
                tenant_id, TenantState.SLEEPING, TenantState.PROVISIONING
            ):
                return await self.registry.get_or_sleeping(tenant_id), None

            logger.info("tenant_provisioning_started", tenant_id=tenant_id)
            task = asyncio.create_task(self._provision(tenant_id))
            self._inflight[tenant_id] = task
            task.add_done_callback(lambda t: self._finished(tenant_id, t))
            return record, task

    async def _release_abandoned(self, record: TenantRecord) -> bool:
        """Return an expired provisioning claim with no local owner to sleeping."""
        if record.state != TenantState.PROVISIONING:
            return False
        cutoff = utcnow() - timedelta(seconds=self.settings.claim_stale_seconds)
        if not record.claim_expired(cutoff):
            return False
        if not await self.registry.transition(
            record.tenant_id,
            TenantState.PROVISIONING,
            TenantState.SLEEPING,
            claimed_before=cutoff,
        ):
            return False
        logger.warning(
            "tenant_claim_expired",
            tenant_id=record.tenant_id,
            claimed_at=record.state_changed_at.isoformat() if record.state_changed_at else None,
        )
        return True

    def _finished(self, tenant_id: str, task: asyncio.Task[RuntimeHandle]) -> None:
        if self._inflight.get(tenant_id) is task:
            del self._inflight[tenant_id]
        # Mark the outcome retrieved even if every waiter has gone away
        if not task.cancelled():
            task.exception()

    async def _join(
        self,
        tenant_id: str,
        task: asyncio.Task[RuntimeHandle],
        timeout: float,
    ) -> RuntimeHandle:
        try:
            return await asyncio.wait_for(asyncio.shield(task), max(timeout, 0))
        except TimeoutError as e:
            logger.warning("tenant_wake_wait_timeout", tenant_id=tenant_id)
            raise ProvisioningTimeoutError(details={"tenant_id": tenant_id}) from e

    # ------------------------------------------------------------------
    # Provisioning (runs once per wake, as its own task)
    # ------------------------------------------------------------------

    async def _provision(self, tenant_id: str) -> RuntimeHandle:
        started = time.perf_counter()
        created: list[RuntimeHandle] = []

        try:
            handle = await asyncio.wait_for(
                self._start_runtime(tenant_id, created),
                self.settings.provision_timeout_seconds,
            )
        except TimeoutError as e:
            logger.error(
                "tenant_provisioning_timeout",
                tenant_id=tenant_id,
                timeout=self.settings.provision_timeout_seconds,
            )
            await self._rollback(tenant_id, created)
            raise ProvisioningTimeoutError(details={"tenant_id": tenant_id}) from e
        except ProvisioningFailedError:
            await self._rollback(tenant_id, created)
            raise
        except asyncio.CancelledError:
            await self._rollback(tenant_id, created)
            raise

        if not await self.registry.transition(
            tenant_id,
            TenantState.PROVISIONING,
            TenantState.RUNNING,
            runtime_handle=handle,
        ):
            # Only this task may leave provisioning; anything else is corruption
            logger.error("tenant_provisioning_lost", tenant_id=tenant_id)
            await self._rollback(tenant_id, created)
            raise ProvisioningFailedError(details={"tenant_id": tenant_id})

        logger.info(
            "tenant_running",
            tenant_id=tenant_id,
            runtime=handle.name,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return handle

    async def _start_runtime(
        self, tenant_id: str, created: list[RuntimeHandle]
    ) -> RuntimeHandle:
        """Create and health-check a runtime within the attempt budget.

        Every handle the backend returns is appended to ``created`` so a
        timed-out caller can still clean it up.
        """
        attempts = self.settings.provision_max_attempts
        last_error = "unhealthy"

        for attempt in range(1, attempts + 1):
            try:
                handle = await self.provisioner.create(tenant_id)
            except ProvisionerError as e:
                last_error = str(e)
                logger.warning(
                    "tenant_create_failed",
                    tenant_id=tenant_id,
                    attempt=attempt,
                    error=last_error,
                )
                continue

            created.append(handle)
            if await self._wait_healthy(handle):
                return handle

            last_error = "unhealthy"
            logger.warning("tenant_unhealthy", tenant_id=tenant_id, attempt=attempt)
            await self._destroy_quietly(tenant_id, handle)
            created.remove(handle)

        logger.error(
            "tenant_provisioning_failed",
            tenant_id=tenant_id,
            attempts=attempts,
            error=last_error,
        )
        raise ProvisioningFailedError(
            details={"tenant_id": tenant_id, "attempts": attempts, "error": last_error}
        )

    async def _wait_healthy(self, handle: RuntimeHandle) -> bool:
        retries = self.settings.health_check_retries
        for attempt in range(retries):
            if await self.provisioner.health_check(handle):
                return True
            if attempt < retries - 1:
                await asyncio.sleep(self.settings.health_check_interval_seconds)
        return False

    async def _rollback(self, tenant_id: str, created: list[RuntimeHandle]) -> None:
        for handle in created:
            await self._destroy_quietly(tenant_id, handle)
        if not await self.registry.transition(
            tenant_id, TenantState.PROVISIONING, TenantState.SLEEPING
        ):
            logger.error("tenant_rollback_conflict", tenant_id=tenant_id)

    async def _destroy_quietly(self, tenant_id: str, handle: RuntimeHandle) -> None:
        try:
            await self.provisioner.destroy(handle)
        except ProvisionerError as e:
            logger.error("tenant_destroy_failed", tenant_id=tenant_id, error=str(e))
