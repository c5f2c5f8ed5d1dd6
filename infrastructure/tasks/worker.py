"""Run a Celery worker that also schedules the webhook queue sweep.

Production deployments usually run ``celery -A infrastructure.tasks worker``
and ``celery -A infrastructure.tasks beat`` separately; this entry point
embeds beat for single-node setups.
"""
from __future__ import annotations

from .config.celery import WEBHOOK_QUEUE, celery_app


def main() -> None:
    celery_app.worker_main(argv=[
        "worker",
        "--beat",
        "--loglevel=INFO",
        f"--queues={WEBHOOK_QUEUE},default",
        "--hostname=webhooks@%h",
    ])


if __name__ == "__main__":
    main()
