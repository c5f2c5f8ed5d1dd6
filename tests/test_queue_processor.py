import pytest

from application.services.queue_processor import WebhookQueueProcessor
from domain.contribution.entity import ContributionStatus
from domain.webhook.entity import QueuedWebhook, WebhookStatus

from conftest import make_charge, make_event


async def _queue(uow, event, processor_id: int = 1, identifier: str = "pi_1:ch_1::") -> QueuedWebhook:
    webhook = await uow.webhook_repository.add(QueuedWebhook(
        id=None,
        processor_id=processor_id,
        event_id=event.id,
        trigger=event.type,
        identifier=identifier,
        data=event.model_dump(mode="json"),
    ))
    await uow.commit()
    return webhook


@pytest.mark.asyncio
async def test_process_pending_runs_oldest_first(uow, gateway, locks, config, make_contribution):
    contribution = await make_contribution(trxn_id="pi_1")
    gateway.balance_transactions["txn_1"] = {"id": "txn_1", "amount": 1000, "fee": 59, "currency": "usd"}
    first = await _queue(uow, make_event("charge.succeeded", make_charge(), event_id="evt_a"))
    second = await _queue(uow, make_event("customer.created", {"object": "customer"}, event_id="evt_b"))
    await _queue(uow, make_event("charge.succeeded", make_charge(), event_id="evt_other"), processor_id=2)

    queue = WebhookQueueProcessor(uow=uow, gateway=gateway, locks=locks, config=config)
    results = await queue.process_pending(processor_id=1)

    assert [r.ok for r in results] == [True, True]
    assert (await uow.webhook_repository.get_by_id(first.id)).status == WebhookStatus.SUCCESS
    assert (await uow.webhook_repository.get_by_id(second.id)).message == "customer.created - not implemented"
    assert (await uow.contribution_repository.get_by_id(contribution.id)).status == ContributionStatus.COMPLETED
    assert len(await uow.webhook_repository.list_pending(processor_id=2)) == 1


@pytest.mark.asyncio
async def test_verify_data_rereads_event_from_stripe(uow, gateway, locks, config):
    stored = make_event("charge.succeeded", make_charge(customer=None), event_id="evt_v")
    webhook = await _queue(uow, stored)
    gateway.events["evt_v"] = stored.model_dump(mode="json")

    queue = WebhookQueueProcessor(uow=uow, gateway=gateway, locks=locks, config=config, verify_data=True)
    result = await queue.process_queued(webhook)
    assert result.ok
    assert result.message == "charge_succeeded: not processing because no customer_id"


@pytest.mark.asyncio
async def test_verify_data_failure_is_recorded(uow, gateway, locks, config):
    webhook = await _queue(uow, make_event("charge.succeeded", make_charge(), event_id="evt_missing"))

    queue = WebhookQueueProcessor(uow=uow, gateway=gateway, locks=locks, config=config, verify_data=True)
    result = await queue.process_queued(webhook)
    assert not result.ok
    stored = await uow.webhook_repository.get_by_id(webhook.id)
    assert stored.status == WebhookStatus.ERROR
    assert stored.message.startswith("Failed to retrieve event evt_missing")
