"""Celery application configuration for the webhook queue sweep."""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from .beat import CELERY_BEAT_SCHEDULE


# Modules holding task definitions; the worker imports them at start-up
CELERY_IMPORTS = (
    "infrastructure.tasks.webhook_tasks",
)

WEBHOOK_QUEUE = "webhooks"


celery_app = Celery("stripe_webhooks")

celery_app.conf.update(
    broker_url=os.getenv("CELERY_BROKER_URL") or settings.redis.url,
    result_backend=os.getenv("CELERY_RESULT_BACKEND") or settings.redis.url,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A sweep that dies with the worker is picked up again by the next beat tick
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues=(
        Queue(WEBHOOK_QUEUE),
        Queue("default"),
    ),
    task_routes={
        "webhooks.*": {"queue": WEBHOOK_QUEUE},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=CELERY_IMPORTS,
)

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"test", "testing"}:
    celery_app.conf.task_always_eager = True


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        queues=[q.name for q in sender.conf.task_queues],
        beat=sorted(sender.conf.beat_schedule),
    )
