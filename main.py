"""
FastAPI应用主入口 - Stripe webhook 接收与对账服务
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import webhooks as webhook_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.database import AsyncSessionLocal, create_tables
from infrastructure.external.cache import get_redis_client, init_redis_client, shutdown_redis_client


# 入口处显式配置日志，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期：建表（仅开发环境）、初始化 Redis 锁后端"""
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_migrations_required", message="Run `alembic upgrade head` before starting")

    if settings.redis.url:
        try:
            await init_redis_client()
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc), fallback="in-memory locks")
    else:
        logger.warning("redis_not_configured", message="Using in-memory locks; run a single worker process")

    webhook = payment_settings.webhook
    logger.info(
        "webhook_service_started",
        processors=[p.id for p in payment_settings.stripe.processors],
        enabled_events=len(webhook.enabled_events),
        delayed_events=webhook.delayed_events,
        processing_limit=webhook.processing_limit,
        strict_locking=webhook.strict_locking,
    )

    yield

    if settings.redis.url:
        await shutdown_redis_client()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Receives Stripe webhooks and reconciles them against contributions",
)

# 中间件按添加的逆序执行：RequestID 最外层，日志中间件可读取 request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(webhook_routes.router, prefix=settings.API_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    webhook_paths = [
        f"{settings.API_PREFIX}/payments/webhooks/stripe/{p.id}" for p in payment_settings.stripe.processors
    ]
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "webhooks": webhook_paths,
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """数据库与锁后端状态"""
    database = "ok"
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_check_database_failed", error=str(exc))
        database = "unavailable"

    return success_response(
        data={
            "status": "healthy" if database == "ok" else "degraded",
            "database": database,
            "locks": "redis" if get_redis_client() is not None else "in-memory",
        },
        message="OK",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
