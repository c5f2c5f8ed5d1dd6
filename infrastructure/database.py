"""
数据库引擎与会话工厂
"""
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.config import settings
from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)

# 同步驱动名 -> 异步驱动名
_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    try:
        return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)
    except KeyError:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 async 驱动或更新DATABASE__URL") from None


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """创建异步引擎；Celery 任务每次运行在新的事件循环中，需要独立的引擎"""
    kwargs = {"echo": settings.database.echo}
    url = _build_async_url(database_url or settings.database.url)
    if not url.startswith("sqlite"):
        # 连接可能被数据库或负载均衡器回收，取用前先探活
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables() -> None:
    """按模型建表，仅用于开发环境；生产环境使用 alembic 迁移"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_created", tables=sorted(Base.metadata.tables))
