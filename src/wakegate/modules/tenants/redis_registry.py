"""Redis-backed tenant registry.

Records are stored as JSON under one key per tenant. Transitions are
conditional writes using optimistic locking (WATCH/MULTI/EXEC), so
several supervisor processes and the ARQ reaper worker can share the
registry safely.
"""

from collections.abc import Callable
from datetime import datetime

import redis.asyncio as redis
import structlog
from redis.exceptions import WatchError

from wakegate.core.constants import (
    REGISTRY_CAS_MAX_RETRIES,
    TENANT_INDEX_KEY,
    TENANT_KEY_PREFIX,
)
from wakegate.modules.tenants.models import RuntimeHandle, TenantRecord, TenantState
from wakegate.modules.tenants.registry import (
    TenantRegistry,
    apply_touch,
    apply_transition,
)


logger = structlog.get_logger()


class RedisTenantRegistry(TenantRegistry):
    """Tenant registry shared through Redis."""

    def __init__(
        self,
        client: redis.Redis,  # type: ignore[type-arg]
        prefix: str = TENANT_KEY_PREFIX,
        index_key: str = TENANT_INDEX_KEY,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.index_key = index_key

    def _key(self, tenant_id: str) -> str:
        return f"{self.prefix}{tenant_id}"

    @staticmethod
    def _decode(tenant_id: str, raw: str | bytes | None) -> TenantRecord | None:
        if raw is None:
            return None
        record = TenantRecord.model_validate_json(raw)
        if record.tenant_id != tenant_id:
            raise ValueError(f"registry key for {tenant_id} holds {record.tenant_id}")
        return record

    async def _update(
        self,
        tenant_id: str,
        mutate: Callable[[TenantRecord | None], TenantRecord | None],
    ) -> TenantRecord | None:
        """Apply ``mutate`` to the stored record as a conditional write.

        ``mutate`` returns the new record, or None to leave the key alone.
        It is re-run on the fresh value whenever a concurrent writer wins.
        """
        key = self._key(tenant_id)
        for _ in range(REGISTRY_CAS_MAX_RETRIES):
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = self._decode(tenant_id, await pipe.get(key))
                    updated = mutate(current)
                    if updated is None:
                        return None
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json())
                    pipe.sadd(self.index_key, tenant_id)
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("registry_write_conflict", tenant_id=tenant_id)
                    continue

        logger.warning("registry_write_contended", tenant_id=tenant_id)
        return None

    async def get(self, tenant_id: str) -> TenantRecord | None:
        return self._decode(tenant_id, await self.client.get(self._key(tenant_id)))

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
        def mutate(current: TenantRecord | None) -> TenantRecord | None:
            return apply_transition(
                current or TenantRecord.sleeping(tenant_id),
                expected,
                new,
                runtime_handle=runtime_handle,
                idle_before=idle_before,
                claimed_before=claimed_before,
            )

        return await self._update(tenant_id, mutate) is not None

    async def touch(self, tenant_id: str, at: datetime | None = None) -> bool:
        def mutate(current: TenantRecord | None) -> TenantRecord | None:
            return apply_touch(current, at) if current is not None else None

        return await self._update(tenant_id, mutate) is not None

    async def set_health_flag(self, tenant_id: str, flagged: bool) -> bool:
        def mutate(current: TenantRecord | None) -> TenantRecord | None:
            if current is None or current.state != TenantState.RUNNING:
                return None
            return current.model_copy(update={"needs_health_check": flagged})

        return await self._update(tenant_id, mutate) is not None

    async def list_records(self) -> list[TenantRecord]:
        tenant_ids = sorted(await self.client.smembers(self.index_key))
        records: list[TenantRecord] = []
        for tenant_id in tenant_ids:
            if isinstance(tenant_id, bytes):
                tenant_id = tenant_id.decode()
            record = await self.get(tenant_id)
            if record is not None:
                records.append(record)
        return records

    async def ping(self) -> bool:
        return bool(await self.client.ping())
