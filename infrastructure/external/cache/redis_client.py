"""
Redis 连接管理

进程内共享一个异步连接池，目前只用于 webhook 处理的分布式锁。
未配置 REDIS__URL 时不初始化，锁退化为进程内实现。
"""
from __future__ import annotations

import asyncio
import socket
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)

_client: Optional[aioredis.Redis] = None
_init_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    # macOS 没有 TCP_KEEPIDLE
    names = ("TCP_KEEPIDLE", "TCP_KEEPINTVL", "TCP_KEEPCNT")
    if not all(hasattr(socket, n) for n in names):
        return {}
    return dict(zip((getattr(socket, n) for n in names), (1, 1, 3)))


async def init_redis_client(url: Optional[str] = None, **kwargs) -> aioredis.Redis:
    """创建共享连接并 ping 一次；重复调用返回同一连接"""
    global _client

    async with _init_lock:
        if _client is not None:
            return _client

        url = url or settings.redis.url
        if not url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
            **kwargs,
        )
        try:
            await client.ping()
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc))
            await client.aclose()
            raise

        _client = client
        logger.info("redis_initialized", namespace=settings.redis.namespace)
        return _client


def get_redis_client() -> Optional[aioredis.Redis]:
    """已初始化的连接；未初始化时返回 None"""
    return _client


async def shutdown_redis_client() -> None:
    global _client

    client, _client = _client, None
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("redis_closed")
    except Exception as exc:
        logger.warning("redis_close_failed", error=str(exc))
