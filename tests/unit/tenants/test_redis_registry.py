"""Unit tests for Redis-specific registry behavior."""

import pytest
from fakeredis import aioredis as fakeredis

from factories.runtime import make_handle
from wakegate.core.constants import TENANT_INDEX_KEY, TENANT_KEY_PREFIX
from wakegate.modules.tenants.models import TenantRecord, TenantState
from wakegate.modules.tenants.redis_registry import RedisTenantRegistry


@pytest.fixture
def redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(redis: fakeredis.FakeRedis) -> RedisTenantRegistry:
    return RedisTenantRegistry(redis)


async def test_records_stored_as_json(store: RedisTenantRegistry, redis: fakeredis.FakeRedis):
    """A transition should write the record under the tenant key and index it."""
    await store.transition("alice", TenantState.SLEEPING, TenantState.PROVISIONING)

    raw = await redis.get(f"{TENANT_KEY_PREFIX}alice")
    assert TenantRecord.model_validate_json(raw).state == TenantState.PROVISIONING
    assert await redis.smembers(TENANT_INDEX_KEY) == {"alice"}


async def test_failed_compare_writes_nothing(
    store: RedisTenantRegistry, redis: fakeredis.FakeRedis
):
    """A failed CAS or touch on an unknown tenant should not create a key."""
    assert not await store.touch("alice")
    assert not await store.set_health_flag("alice", True)

    assert await redis.get(f"{TENANT_KEY_PREFIX}alice") is None
    assert await redis.smembers(TENANT_INDEX_KEY) == set()


async def test_shared_between_instances(redis: fakeredis.FakeRedis):
    """Two registry instances on one Redis should see each other's writes."""
    web = RedisTenantRegistry(redis)
    worker = RedisTenantRegistry(redis)

    await web.transition("alice", TenantState.SLEEPING, TenantState.PROVISIONING)
    await web.transition(
        "alice",
        TenantState.PROVISIONING,
        TenantState.RUNNING,
        runtime_handle=make_handle(),
    )

    record = await worker.get("alice")
    assert record.state == TenantState.RUNNING
    assert record.runtime_handle.base_url == "http://10.0.0.2:8080"
    assert not await worker.transition("alice", TenantState.SLEEPING, TenantState.PROVISIONING)


async def test_key_holding_another_tenant(store: RedisTenantRegistry, redis: fakeredis.FakeRedis):
    """A record stored under the wrong key should be refused."""
    await redis.set(
        f"{TENANT_KEY_PREFIX}alice",
        TenantRecord.sleeping("bob").model_dump_json(),
    )

    with pytest.raises(ValueError):
        await store.get("alice")


async def test_custom_prefix(redis: fakeredis.FakeRedis):
    store = RedisTenantRegistry(redis, prefix="test:tenant:", index_key="test:tenants")

    await store.transition("alice", TenantState.SLEEPING, TenantState.PROVISIONING)

    assert await redis.exists("test:tenant:alice") == 1
    assert [r.tenant_id for r in await store.list_records()] == ["alice"]
