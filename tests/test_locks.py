import asyncio

import pytest
from redis.exceptions import LockError

from application.ports.locks import contribution_lock_name
from infrastructure.locks import InMemoryLockManager, RedisLockManager, get_lock_manager


def test_contribution_lock_name():
    assert contribution_lock_name(42) == "data.contribute.contribution.42"
    assert contribution_lock_name("in_1") == "data.contribute.contribution.in_1"


@pytest.mark.asyncio
async def test_in_memory_lock_is_exclusive_and_released():
    locks = InMemoryLockManager(wait=0.01)
    async with locks.acquire("a") as first:
        assert first.acquired
        assert locks.locked("a")
        async with locks.acquire("a") as second:
            assert not second.acquired
        async with locks.acquire("b") as other:
            assert other.acquired
    assert not locks.locked("a")


@pytest.mark.asyncio
async def test_in_memory_locks_are_forgotten_after_release():
    locks = InMemoryLockManager(wait=0.01)
    for contribution_id in range(200):
        async with locks.acquire(contribution_lock_name(contribution_id)) as handle:
            assert handle.acquired
    assert len(locks) == 0

    async with locks.acquire("a") as first:
        async with locks.acquire("a") as second:
            assert not second.acquired
        assert len(locks) == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_in_memory_lock_waiter_gets_lock_after_release():
    locks = InMemoryLockManager(wait=1)
    order = []

    async def worker(tag, pause):
        async with locks.acquire("data.contribute.contribution.7") as handle:
            assert handle.acquired
            order.append(tag)
            await asyncio.sleep(pause)

    await asyncio.gather(worker("first", 0.05), worker("second", 0))
    assert order == ["first", "second"]
    assert len(locks) == 0


def test_in_memory_manager_is_per_event_loop():
    async def managers():
        return get_lock_manager(None), get_lock_manager(None)

    first, same_loop = asyncio.run(managers())
    second, _ = asyncio.run(managers())
    assert first is same_loop
    assert second is not first


class _FakeRedisLock:
    def __init__(self, client, name):
        self.client = client
        self.name = name

    async def acquire(self):
        if self.client.fail:
            raise LockError("connection lost")
        self.client.held.add(self.name)
        return True

    async def release(self):
        self.client.held.discard(self.name)


class _FakeRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.held: set[str] = set()
        self.requested: list[tuple[str, float, float]] = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.requested.append((name, timeout, blocking_timeout))
        return _FakeRedisLock(self, name)


@pytest.mark.asyncio
async def test_redis_lock_uses_namespaced_key():
    client = _FakeRedis()
    locks = RedisLockManager(client, namespace="stripe-webhooks", timeout=10, wait=1)
    async with locks.acquire("data.contribute.contribution.1") as handle:
        assert handle.acquired
        assert client.held == {"stripe-webhooks:lock:data.contribute.contribution.1"}
    assert client.held == set()
    assert client.requested == [("stripe-webhooks:lock:data.contribute.contribution.1", 10, 1)]


@pytest.mark.asyncio
async def test_redis_lock_error_yields_unacquired_handle():
    locks = RedisLockManager(_FakeRedis(fail=True))
    async with locks.acquire("x") as handle:
        assert not handle.acquired
