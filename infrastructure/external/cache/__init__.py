"""Redis 连接，供分布式锁使用"""
from .redis_client import get_redis_client, init_redis_client, shutdown_redis_client

__all__ = ["get_redis_client", "init_redis_client", "shutdown_redis_client"]
