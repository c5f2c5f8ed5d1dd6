"""
命名锁实现 - Redis 分布式锁与进程内锁

两种实现都是"尽力而为"：获取失败不抛异常，而是返回 acquired=False 的句柄，
由调用方决定继续处理还是放弃。
"""
from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import LockError, RedisError

from application.ports.locks import LockHandle, LockManager
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisLockManager:
    """基于 redis-py asyncio Lock 的分布式锁"""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "",
        timeout: float = 30.0,
        wait: float = 5.0,
    ):
        self._client = client
        self._namespace = namespace.strip(":")
        self._timeout = timeout
        self._wait = wait

    def _format_key(self, name: str) -> str:
        if not self._namespace:
            return f"lock:{name}"
        return f"{self._namespace}:lock:{name}"

    @asynccontextmanager
    async def acquire(self, name: str) -> AsyncIterator[LockHandle]:
        lock = self._client.lock(
            self._format_key(name),
            timeout=self._timeout,
            blocking_timeout=self._wait,
        )
        try:
            acquired = bool(await lock.acquire())
        except (LockError, RedisError) as e:
            logger.error("lock_acquire_failed", lock=name, error=str(e))
            acquired = False

        try:
            yield LockHandle(name=name, acquired=acquired)
        finally:
            if acquired:
                try:
                    await lock.release()
                except (LockError, RedisError) as e:
                    # 锁已过期（处理时间超过 timeout）
                    logger.error("lock_release_failed", lock=name, error=str(e))


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryLockManager:
    """进程内锁，未配置 Redis 时及测试中使用

    锁按名称引用计数，最后一个使用者退出后即删除，字典大小只与并发中的锁数量有关。
    asyncio.Lock 绑定事件循环，一个实例只能在一个事件循环中使用。
    """

    def __init__(self, *, wait: float = 5.0):
        self._wait = wait
        self._locks: Dict[str, _LockEntry] = {}

    def locked(self, name: str) -> bool:
        entry = self._locks.get(name)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def acquire(self, name: str) -> AsyncIterator[LockHandle]:
        entry = self._locks.get(name)
        if entry is None:
            entry = self._locks[name] = _LockEntry()
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=self._wait)
                acquired = True
            except asyncio.TimeoutError:
                acquired = False

            try:
                yield LockHandle(name=name, acquired=acquired)
            finally:
                if acquired:
                    entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(name) is entry:
                del self._locks[name]


# 每个事件循环一个进程内锁管理器；Celery 任务每次 asyncio.run 都是新的事件循环
_memory_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, InMemoryLockManager]" = weakref.WeakKeyDictionary()


def get_lock_manager(client: Optional[aioredis.Redis] = None) -> LockManager:
    """Redis 可用时使用分布式锁，否则退回当前事件循环的进程内锁（单进程部署）"""
    from core.config import settings
    from core.settings import payment_settings

    webhook = payment_settings.webhook
    if client is not None:
        return RedisLockManager(
            client,
            namespace=settings.redis.namespace,
            timeout=webhook.lock_timeout_seconds,
            wait=webhook.lock_wait_seconds,
        )

    loop = asyncio.get_running_loop()
    manager = _memory_locks.get(loop)
    if manager is None:
        manager = _memory_locks[loop] = InMemoryLockManager(wait=webhook.lock_wait_seconds)
    return manager
