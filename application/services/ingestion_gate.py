"""
Admission of incoming Stripe webhooks.

Every delivery goes through ``WebhookIngestionService.receive``: events we do
not handle are acknowledged, the endpoint-verification ping short-circuits,
events for another processor sharing the same Stripe account are ignored,
and the rest are recorded in the webhook queue. Whether a recorded event is
processed right away or left for the sweep is decided by
``decide_admission`` from the unprocessed events sharing its correlation key.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from application.dtos.webhooks import (
    EventIdentifiers,
    GatewayEvent,
    IngestionOutcome,
    IngestionResult,
    ProcessorInfo,
    WebhookProcessingConfig,
)
from application.ports.locks import LockManager
from application.ports.stripe_gateway import StripeGateway
from application.services.contribution_finder import WebhookNotMatchedHook
from application.services.object_accessor import get_object_param
from application.services.queue_processor import WebhookQueueProcessor
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import QueuedWebhook, WebhookStatus


logger = get_logger(__name__)


class AdmissionDecision(str, Enum):
    PROCESS_NOW = "process_now"
    QUEUE = "queue"
    SUPPRESS = "suppress"


def decide_admission(
    event_type: str,
    pending: Iterable[QueuedWebhook],
    config: WebhookProcessingConfig,
) -> AdmissionDecision:
    """Decide what to do with an event given the unprocessed rows for its correlation key.

    - nothing pending: process now, unless the type is delayed
    - a pending row with the same trigger: suppress (it will be handled by that row)
    - a pending row of a non-delayed type: queue behind it
    - only delayed rows pending: process now
    """
    pending = list(pending)
    if not pending:
        if event_type in config.delayed_events:
            return AdmissionDecision.QUEUE
        return AdmissionDecision.PROCESS_NOW

    decision = AdmissionDecision.PROCESS_NOW
    for webhook in pending:
        if webhook.trigger == event_type:
            return AdmissionDecision.SUPPRESS
        if webhook.trigger not in config.delayed_events:
            decision = AdmissionDecision.QUEUE
    return decision


def extract_identifiers(event: GatewayEvent) -> EventIdentifiers:
    """Gateway ids of an event; for charges, invoice and subscription come from the expanded invoice."""
    obj = event.object
    invoice = obj.get("invoice") if obj.get("object") == "charge" else None
    if isinstance(invoice, dict):
        invoice_id = get_object_param("invoice_id", invoice)
        subscription_id = get_object_param("subscription_id", invoice)
    else:
        invoice_id = get_object_param("invoice_id", obj)
        subscription_id = get_object_param("subscription_id", obj)

    return EventIdentifiers(
        payment_intent_id=get_object_param("payment_intent_id", obj),
        charge_id=get_object_param("charge_id", obj),
        invoice_id=invoice_id,
        subscription_id=subscription_id,
        customer_id=get_object_param("customer_id", obj),
    )


class WebhookIngestionService:
    def __init__(
        self,
        *,
        uow: AbstractUnitOfWork,
        gateway: StripeGateway,
        locks: LockManager,
        config: WebhookProcessingConfig,
        processor: ProcessorInfo,
        hook: Optional[WebhookNotMatchedHook] = None,
    ):
        self.uow = uow
        self.gateway = gateway
        self.config = config
        self.processor = processor
        self.queue = WebhookQueueProcessor(uow=uow, gateway=gateway, locks=locks, config=config, hook=hook)

    async def _resolve_event(self, event: GatewayEvent) -> GatewayEvent:
        # A charge only references its invoice by id; expand it so the
        # subscription id is part of the correlation key.
        obj = event.object
        if obj.get("object") == "charge" and isinstance(obj.get("invoice"), str) and obj.get("invoice"):
            charge = await self.gateway.retrieve_charge(obj["id"], expand=["invoice"])
            return event.with_object(charge)
        return event

    async def _is_for_this_processor(self, customer_id: Optional[str]) -> bool:
        if not customer_id:
            return True
        processor_ids = await self.uow.customer_repository.list_processor_ids(customer_id)
        return self.processor.id in processor_ids

    async def receive(self, event: GatewayEvent) -> IngestionResult:
        """Record and (maybe) process one delivery; ``ok`` decides the HTTP status returned to Stripe."""
        processor_id = self.processor.id
        if event.type not in self.config.enabled_events:
            logger.info("webhook_ignored_event_type", event_id=event.id, event_type=event.type, processor_id=processor_id)
            return IngestionResult(ok=True, outcome=IngestionOutcome.IGNORED, message=f"{event.type} - not handled")

        if event.id.endswith(self.config.test_event_suffix):
            return IngestionResult(
                ok=True,
                outcome=IngestionOutcome.PING,
                message=f"Test webhook from Stripe ({event.id}) received successfully: {self.processor.label}.",
            )

        event = await self._resolve_event(event)
        ids = extract_identifiers(event)
        if not await self._is_for_this_processor(ids.customer_id):
            logger.info("webhook_other_processor", event_id=event.id, customer_id=ids.customer_id, processor_id=processor_id)
            return IngestionResult(
                ok=True,
                outcome=IngestionOutcome.IGNORED,
                message=f"Event ({event.id}) is not for this payment processor - ignoring: {self.processor.label}.",
            )

        repository = self.uow.webhook_repository
        identifier = ids.correlation_key
        existing = await repository.get_by_event_id(processor_id, event.id)
        if existing is not None and existing.is_processed and existing.status == WebhookStatus.SUCCESS:
            return IngestionResult(
                ok=True, outcome=IngestionOutcome.DUPLICATE, message="Event already processed", webhook_id=existing.id
            )

        pending = await repository.list_unprocessed_by_identifier(processor_id, identifier)
        decision = decide_admission(event.type, pending, self.config)
        if self.config.ipn_debug:
            logger.debug(
                "webhook_admission",
                event_id=event.id,
                event_type=event.type,
                identifier=identifier,
                pending=len(pending),
                decision=decision.value,
            )
        if decision == AdmissionDecision.SUPPRESS:
            return IngestionResult(
                ok=True, outcome=IngestionOutcome.DUPLICATE, message="Matching event already queued"
            )

        if existing is None:
            webhook = await repository.add(QueuedWebhook(
                id=None,
                processor_id=processor_id,
                event_id=event.id,
                trigger=event.type,
                identifier=identifier,
                data=event.model_dump(mode="json"),
            ))
            if webhook is None:
                # Lost the insert race against a concurrent delivery of the same event
                return IngestionResult(ok=True, outcome=IngestionOutcome.DUPLICATE, message="Event already recorded")
        else:
            # A previous attempt failed; reuse its row
            webhook = existing
            webhook.data = event.model_dump(mode="json")
            webhook.requeue()
            webhook = await repository.update(webhook)
        await self.uow.commit()
        logger.info(
            "webhook_received",
            event_id=event.id,
            event_type=event.type,
            webhook_id=webhook.id,
            processor_id=processor_id,
            identifier=identifier,
        )

        unprocessed = await repository.count_unprocessed(processor_id)
        if decision == AdmissionDecision.QUEUE or unprocessed > self.config.processing_limit:
            logger.info(
                "webhook_queued",
                event_id=event.id,
                webhook_id=webhook.id,
                decision=decision.value,
                unprocessed=unprocessed,
            )
            return IngestionResult(ok=True, outcome=IngestionOutcome.QUEUED, message="Queued", webhook_id=webhook.id)

        result = await self.queue.process(webhook, event)
        return IngestionResult(
            ok=result.ok, outcome=IngestionOutcome.PROCESSED, message=result.message, webhook_id=webhook.id
        )
