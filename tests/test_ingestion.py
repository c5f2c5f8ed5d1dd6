import pytest

from application.dtos.webhooks import IngestionOutcome, WebhookProcessingConfig
from application.services.ingestion_gate import WebhookIngestionService
from core.settings import DEFAULT_ENABLED_EVENTS
from domain.contribution.entity import ContributionStatus
from domain.customer.repository import StripeCustomer
from domain.webhook.entity import QueuedWebhook, WebhookStatus

from conftest import make_charge, make_event, make_invoice


BALANCE_TXN = {"id": "txn_1", "amount": 1000, "fee": 59, "currency": "usd", "available_on": 1700500000}


def _service(uow, gateway, locks, config, processor) -> WebhookIngestionService:
    return WebhookIngestionService(uow=uow, gateway=gateway, locks=locks, config=config, processor=processor)


@pytest.mark.asyncio
async def test_ping_event_short_circuits(uow, gateway, locks, config, processor):
    event = make_event("invoice.paid", make_invoice(), event_id="evt_00000000000000")
    result = await _service(uow, gateway, locks, config, processor).receive(event)
    assert result.outcome == IngestionOutcome.PING
    assert result.message == "Test webhook from Stripe (evt_00000000000000) received successfully: Stripe (Test)."
    assert await uow.webhook_repository.count_unprocessed(processor.id) == 0


@pytest.mark.asyncio
async def test_disabled_event_type_is_ignored(uow, gateway, locks, config, processor):
    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("payment_intent.created", {"object": "payment_intent", "id": "pi_1"})
    )
    assert result.ok
    assert result.outcome == IngestionOutcome.IGNORED
    assert result.message == "payment_intent.created - not handled"


@pytest.mark.asyncio
async def test_event_for_other_processor_is_ignored(uow, gateway, locks, config, processor):
    await uow.customer_repository.create(StripeCustomer(id=None, customer_id="cus_1", processor_id=2))
    await uow.commit()

    result = await _service(uow, gateway, locks, config, processor).receive(make_event("charge.succeeded", make_charge()))
    assert result.ok
    assert result.outcome == IngestionOutcome.IGNORED
    assert result.message == "Event (evt_1) is not for this payment processor - ignoring: Stripe (Test)."


@pytest.mark.asyncio
async def test_owned_customer_event_is_processed(uow, gateway, locks, config, processor, make_contribution):
    await uow.customer_repository.create(StripeCustomer(id=None, customer_id="cus_1", processor_id=processor.id))
    await uow.commit()
    contribution = await make_contribution(trxn_id="pi_1")
    gateway.balance_transactions["txn_1"] = BALANCE_TXN

    result = await _service(uow, gateway, locks, config, processor).receive(make_event("charge.succeeded", make_charge()))
    assert result.ok, result.message
    assert result.outcome == IngestionOutcome.PROCESSED

    webhook = await uow.webhook_repository.get_by_id(result.webhook_id)
    assert webhook.status == WebhookStatus.SUCCESS
    assert webhook.identifier == "pi_1:ch_1::"
    assert webhook.message == f"charge_succeeded: . coid:{contribution.id}"
    stored = await uow.contribution_repository.get_by_id(contribution.id)
    assert stored.status == ContributionStatus.COMPLETED


@pytest.mark.asyncio
async def test_processed_event_is_reported_as_duplicate(uow, gateway, locks, config, processor):
    service = _service(uow, gateway, locks, config, processor)
    event = make_event("charge.succeeded", make_charge(customer=None))

    first = await service.receive(event)
    assert first.outcome == IngestionOutcome.PROCESSED
    second = await service.receive(event)
    assert second.outcome == IngestionOutcome.DUPLICATE
    assert second.message == "Event already processed"
    assert second.webhook_id == first.webhook_id


@pytest.mark.asyncio
async def test_matching_pending_event_suppresses_new_delivery(uow, gateway, locks, config, processor):
    await uow.webhook_repository.add(QueuedWebhook(
        id=None, processor_id=1, event_id="evt_0", trigger="charge.succeeded", identifier="pi_1:ch_1::",
    ))
    await uow.commit()

    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("charge.succeeded", make_charge(customer=None))
    )
    assert result.outcome == IngestionOutcome.DUPLICATE
    assert result.message == "Matching event already queued"
    assert await uow.webhook_repository.get_by_event_id(1, "evt_1") is None


@pytest.mark.asyncio
async def test_event_queues_behind_pending_event_with_same_key(uow, gateway, locks, config, processor):
    await uow.webhook_repository.add(QueuedWebhook(
        id=None, processor_id=1, event_id="evt_0", trigger="charge.succeeded", identifier="pi_1:ch_1::",
    ))
    await uow.commit()

    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("charge.refunded", make_charge(customer=None))
    )
    assert result.outcome == IngestionOutcome.QUEUED
    webhook = await uow.webhook_repository.get_by_id(result.webhook_id)
    assert webhook.status == WebhookStatus.NEW
    assert not webhook.is_processed


@pytest.mark.asyncio
async def test_delayed_event_type_is_always_queued(uow, gateway, locks, config, processor):
    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("invoice.finalized", make_invoice(charge=None, customer=None))
    )
    assert result.outcome == IngestionOutcome.QUEUED


@pytest.mark.asyncio
async def test_backpressure_queues_when_over_processing_limit(uow, gateway, locks, processor):
    config = WebhookProcessingConfig(enabled_events=frozenset(DEFAULT_ENABLED_EVENTS), processing_limit=0)
    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("charge.succeeded", make_charge(customer=None))
    )
    assert result.outcome == IngestionOutcome.QUEUED
    assert result.message == "Queued"


@pytest.mark.asyncio
async def test_charge_with_invoice_reference_is_expanded(uow, gateway, locks, config, processor):
    gateway.invoices["in_1"] = make_invoice()
    gateway.charges["ch_1"] = make_charge(customer=None, invoice="in_1")

    result = await _service(uow, gateway, locks, config, processor).receive(
        make_event("charge.succeeded", make_charge(customer=None, invoice="in_1"))
    )
    webhook = await uow.webhook_repository.get_by_id(result.webhook_id)
    assert webhook.identifier == "pi_1:ch_1:in_1:sub_1"
    assert webhook.data["data"]["object"]["invoice"]["id"] == "in_1"


@pytest.mark.asyncio
async def test_failed_event_is_recorded_and_retried_on_redelivery(uow, gateway, locks, config, processor, make_contribution):
    await uow.customer_repository.create(StripeCustomer(id=None, customer_id="cus_1", processor_id=processor.id))
    await make_contribution(trxn_id="pi_1")
    service = _service(uow, gateway, locks, config, processor)
    event = make_event("charge.succeeded", make_charge())

    failed = await service.receive(event)
    assert not failed.ok
    webhook = await uow.webhook_repository.get_by_id(failed.webhook_id)
    assert webhook.status == WebhookStatus.ERROR

    gateway.balance_transactions["txn_1"] = BALANCE_TXN
    retried = await service.receive(event)
    assert retried.ok, retried.message
    assert retried.webhook_id == failed.webhook_id
    webhook = await uow.webhook_repository.get_by_id(failed.webhook_id)
    assert webhook.status == WebhookStatus.SUCCESS
