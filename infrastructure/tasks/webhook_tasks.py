"""
Celery tasks for the webhook queue: periodic sweep of events that were
queued instead of processed inline.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from celery import shared_task
from redis import asyncio as aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.dtos.webhooks import WebhookProcessingConfig
from application.services.queue_processor import WebhookQueueProcessor
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.database import build_engine
from infrastructure.external.payments import get_stripe_gateway
from infrastructure.locks import get_lock_manager
from infrastructure.tasks.utils.base_task import BaseTask
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)


async def sweep_pending_webhooks(
    processor_ids: Optional[list[int]] = None,
    limit: Optional[int] = None,
    *,
    session_factory=None,
    locks=None,
) -> dict[str, int]:
    """Process queued webhooks for each configured processor, oldest first."""
    webhook_settings = payment_settings.webhook
    config = WebhookProcessingConfig.from_settings(webhook_settings)
    limit = limit or webhook_settings.sweep_batch_size
    if processor_ids is None:
        processor_ids = [p.id for p in payment_settings.stripe.processors]

    engine = None
    redis_client = None
    if session_factory is None:
        engine = build_engine()
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    if locks is None:
        if settings.redis.url:
            redis_client = aioredis.from_url(settings.redis.url, decode_responses=True)
        locks = get_lock_manager(redis_client)

    totals = {"processed": 0, "failed": 0}
    try:
        for processor_id in processor_ids:
            gateway = get_stripe_gateway(processor_id)
            async with SQLAlchemyUnitOfWork(session_factory) as uow:
                processor = WebhookQueueProcessor(
                    uow=uow,
                    gateway=gateway,
                    locks=locks,
                    config=config,
                    verify_data=webhook_settings.verify_queued_events,
                )
                results = await processor.process_pending(processor_id, limit)
            totals["processed"] += len(results)
            totals["failed"] += sum(1 for r in results if not r.ok)
    finally:
        if redis_client is not None:
            await redis_client.aclose()
        if engine is not None:
            await engine.dispose()
    return totals


@shared_task(name="webhooks.process_pending", base=BaseTask, bind=True, max_retries=3, default_retry_delay=30)
def task_process_pending(self, processor_id: Optional[int] = None, limit: Optional[int] = None):
    processor_ids = [processor_id] if processor_id is not None else None
    try:
        totals = asyncio.run(sweep_pending_webhooks(processor_ids, limit))
    except Exception as exc:
        logger.error("webhook_sweep_failed", processor_id=processor_id, error=str(exc))
        raise self.retry(exc=exc)
    logger.info("webhook_sweep_completed", processor_id=processor_id, **totals)
    return totals
