"""Celery application and queue names used by the webhook worker."""
from .celery import WEBHOOK_QUEUE, celery_app

__all__ = ["WEBHOOK_QUEUE", "celery_app"]
