"""Celery beat schedule configuration.

Keeping the structure close to the Celery docs makes copying snippets
straightforward for new tasks.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "webhooks-process-pending": {
        "task": "webhooks.process_pending",
        "schedule": payment_settings.webhook.sweep_interval_seconds,
    },
}
