import pytest


pytest.importorskip("celery")

from domain.webhook.entity import QueuedWebhook, WebhookStatus
from infrastructure.tasks import webhook_tasks
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from conftest import make_charge, make_event


@pytest.mark.asyncio
async def test_sweep_processes_pending_webhooks(monkeypatch, session_factory, gateway, locks):
    event = make_event("charge.succeeded", make_charge(customer=None))
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        webhook = await uow.webhook_repository.add(QueuedWebhook(
            id=None,
            processor_id=1,
            event_id=event.id,
            trigger=event.type,
            identifier="pi_1:ch_1::",
            data=event.model_dump(mode="json"),
        ))

    monkeypatch.setattr(webhook_tasks, "get_stripe_gateway", lambda processor_id: gateway)
    totals = await webhook_tasks.sweep_pending_webhooks([1], 10, session_factory=session_factory, locks=locks)
    assert totals == {"processed": 1, "failed": 0}

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        stored = await uow.webhook_repository.get_by_id(webhook.id)
    assert stored.status == WebhookStatus.SUCCESS
    assert stored.message == "charge_succeeded: not processing because no customer_id"


@pytest.mark.asyncio
async def test_sweep_with_empty_queue(monkeypatch, session_factory, gateway, locks):
    monkeypatch.setattr(webhook_tasks, "get_stripe_gateway", lambda processor_id: gateway)
    totals = await webhook_tasks.sweep_pending_webhooks([1], session_factory=session_factory, locks=locks)
    assert totals == {"processed": 0, "failed": 0}
