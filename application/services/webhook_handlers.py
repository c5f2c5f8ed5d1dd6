"""
Reconciliation of Stripe webhook events against local contributions.

``StripeWebhookEvents`` maps each supported event type to one coroutine that
applies the corresponding state transition. Handlers never raise for
business outcomes: they return a ``ProcessingResult`` whose ``ok`` flag tells
the ingestion layer whether Stripe should be acknowledged, and whose message
ends up on the queue row. Writes to one contribution happen under its named
lock and are committed before the lock is released.

Instances are bound to an entered unit of work.
"""
from __future__ import annotations

import traceback
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from application.dtos.webhooks import (
    BalanceTransactionDetails,
    EventIdentifiers,
    GatewayEvent,
    ProcessingResult,
    WebhookProcessingConfig,
)
from application.ports.locks import LockHandle, LockManager, contribution_lock_name, recur_lock_name
from application.ports.stripe_gateway import StripeGateway
from application.services.balance_details import BalanceDetailsResolver
from application.services.contribution_finder import (
    ContributionFinder,
    NullNotMatchedHook,
    WebhookNotMatchedHook,
)
from application.services.object_accessor import (
    calculate_subscription_items,
    get_object_param,
    minor_to_major,
    parse_date,
    format_date,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    GatewayResourceNotFound,
    InvalidProcessorError,
    WebhookProcessingError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.contribution.entity import (
    COMPLETABLE_STATUSES,
    Contribution,
    ContributionRecur,
    ContributionStatus,
    FinancialTransaction,
)


logger = get_logger(__name__)

Handler = Callable[[GatewayEvent], Awaitable[ProcessingResult]]


def format_result_message(function: str, message: str, entity_ids: Optional[dict[str, Any]] = None) -> str:
    """``"<function>: <message>"`` followed by ``". name:id;name:id"`` when ids are given."""
    result = f"{function}: {message}"
    if entity_ids:
        result = f"{result}. " + ";".join(f"{name}:{value}" for name, value in entity_ids.items())
    return result


class StripeWebhookEvents:
    def __init__(
        self,
        *,
        uow: AbstractUnitOfWork,
        gateway: StripeGateway,
        locks: LockManager,
        config: WebhookProcessingConfig,
        hook: Optional[WebhookNotMatchedHook] = None,
    ):
        provider = getattr(gateway, "provider", None)
        if provider != "stripe":
            raise InvalidProcessorError(provider)
        self.uow = uow
        self.gateway = gateway
        self.locks = locks
        self.config = config
        self.hook = hook or NullNotMatchedHook()
        self.balance = BalanceDetailsResolver(gateway)
        self.finder = ContributionFinder(uow.contribution_repository, self.hook, debug=config.ipn_debug)
        self._handlers: dict[str, Handler] = {
            "checkout.session.completed": self.checkout_session_completed,
            "charge.succeeded": self.charge_succeeded,
            "charge.captured": self.charge_succeeded,
            "charge.refunded": self.charge_refunded,
            "charge.failed": self.charge_failed,
            "invoice.paid": self.invoice_paid,
            "invoice.payment_succeeded": self.invoice_paid,
            "invoice.finalized": self.invoice_finalized,
            "invoice.payment_failed": self.invoice_payment_failed,
            "customer.subscription.deleted": self.customer_subscription_deleted,
            "customer.subscription.updated": self.customer_subscription_updated,
        }

    @property
    def contributions(self):
        return self.uow.contribution_repository

    @property
    def recurs(self):
        return self.uow.recur_repository

    @property
    def supported_events(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def process_event(self, event: GatewayEvent) -> ProcessingResult:
        """Dispatch ``event`` to its handler and turn failures into ``ok=False`` results."""
        handler = self._handlers.get(event.type)
        if handler is None:
            return ProcessingResult(ok=True, message=f"{event.type} - not implemented")

        try:
            result = await handler(event)
        except Exception as exc:
            await self.uow.rollback()
            not_found = isinstance(exc, GatewayResourceNotFound)
            logger.error(
                "webhook_handler_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=not not_found,
            )
            if self.config.exception_on_failure:
                raise WebhookProcessingError(
                    f"{type(exc).__name__}: {exc}", event_id=event.id, event_type=event.type
                ) from exc
            message = str(exc) if not_found else f"{exc}\n{traceback.format_exc()}"
            return ProcessingResult(ok=False, message=message, exception=exc)

        if self.config.ipn_debug:
            logger.debug("webhook_handler_result", event_id=event.id, event_type=event.type, ok=result.ok, message=result.message)
        return result

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def _result(ok: bool, function: str, message: str = "", **entity_ids: Any) -> ProcessingResult:
        return ProcessingResult(ok=ok, message=format_result_message(function, message, entity_ids))

    def _lock_failure(self, lock: LockHandle, function: str) -> Optional[ProcessingResult]:
        """Result to return when a lock was not acquired, or None to carry on."""
        if lock.acquired:
            return None
        logger.error(
            "webhook_lock_not_acquired",
            lock=lock.name,
            handler=function,
            strict=self.config.strict_locking,
        )
        if self.config.strict_locking:
            return self._result(False, function, f"Could not acquire lock {lock.name}")
        return None

    async def _get_recur(self, subscription_id: Optional[str]) -> Optional[ContributionRecur]:
        if not subscription_id:
            return None
        return await self.recurs.get_by_processor_id(subscription_id)

    async def _complete_contribution(
        self,
        contribution: Contribution,
        *,
        trxn_ids: list[Optional[str]],
        payment_trxn_id: str,
        order_reference: Optional[str],
        total_amount: Optional[Decimal],
        receive_date_text: Optional[str],
        details: BalanceTransactionDetails,
    ) -> None:
        receive_date = parse_date(receive_date_text)
        contribution.complete(
            trxn_ids=trxn_ids,
            fee_amount=details.fee_amount,
            receive_date=receive_date,
            order_reference=order_reference,
        )
        await self.contributions.update(contribution)

        payment = FinancialTransaction(
            id=None,
            contribution_id=contribution.id,
            trxn_id=payment_trxn_id,
            total_amount=total_amount if total_amount is not None else contribution.total_amount,
            status=ContributionStatus.COMPLETED,
            order_reference=order_reference,
            trxn_date=receive_date,
        )
        payment.apply_payout_details(**details.model_dump())
        await self.contributions.add_payment(payment)
        logger.info(
            "contribution_completed",
            contribution_id=contribution.id,
            trxn_id=payment_trxn_id,
            fee_amount=str(details.fee_amount),
        )

    async def _create_next_contribution(
        self,
        recur: ContributionRecur,
        ids: EventIdentifiers,
        invoice: dict[str, Any],
    ) -> Contribution:
        details = await self.balance.resolve(ids.charge_id, invoice)
        amount = get_object_param("amount", invoice)
        contribution = await self.contributions.create_next_payment(
            recur,
            total_amount=amount if amount is not None else recur.amount,
            currency=get_object_param("currency", invoice) or recur.currency,
            receive_date=parse_date(get_object_param("receive_date", invoice)),
            order_reference=ids.invoice_id,
            trxn_ids=[ids.invoice_id, ids.charge_id],
            fee_amount=details.fee_amount,
        )
        logger.info(
            "contribution_created_for_invoice",
            contribution_id=contribution.id,
            recur_id=recur.id,
            invoice_id=ids.invoice_id,
        )
        return contribution

    async def _handle_installments(self, subscription_id: Optional[str], recur_id: Optional[int]) -> None:
        """Stop the subscription once the recur's end date (installments) is reached."""
        if not subscription_id or not recur_id:
            return
        recur = await self.recurs.get_by_id(recur_id)
        if recur is None or recur.end_date is None:
            return

        subscription = await self.gateway.retrieve_subscription(subscription_id)
        period_end = get_object_param("current_period_end", subscription)
        reached_end = period_end is not None and period_end >= int(recur.end_date.timestamp())
        if not reached_end and recur.status != ContributionStatus.COMPLETED:
            return

        await self.gateway.update_subscription(subscription_id, cancel_at_period_end=True)
        if recur.status != ContributionStatus.COMPLETED:
            async with self.locks.acquire(recur_lock_name(recur.id)) as lock:
                if self._lock_failure(lock, "handle_installments") is not None:
                    return
                recur = await self.recurs.get_by_id(recur.id)
                if recur.status != ContributionStatus.COMPLETED:
                    recur.mark_completed()
                    await self.recurs.update(recur)
                    await self.uow.commit()
        logger.info("subscription_installments_completed", subscription_id=subscription_id, recur_id=recur.id)

    # ------------------------------------------------------------------ charges

    async def charge_succeeded(self, event: GatewayEvent) -> ProcessingResult:
        """charge.succeeded / charge.captured: complete a one-off contribution."""
        fn = "charge_succeeded"
        obj = event.object
        if obj.get("object") != "charge":
            return self._result(False, fn, "Invalid object type")
        if not get_object_param("customer_id", obj):
            return self._result(True, fn, "not processing because no customer_id")
        charge_id = get_object_param("charge_id", obj)
        if not charge_id:
            return self._result(False, fn, "Missing charge_id")

        ids = EventIdentifiers(
            charge_id=charge_id,
            payment_intent_id=get_object_param("payment_intent_id", obj),
            invoice_id=get_object_param("invoice_id", obj),
        )
        contribution = await self.finder.find(ids, event)
        if contribution is None:
            return self._result(True, fn, "ignoring - contribution not found")
        # Recurring contributions are completed by invoice.paid
        if contribution.is_recurring:
            return self._result(True, fn, "ignoring - contribution has recur", coid=contribution.id)
        if not get_object_param("captured", obj):
            return self._result(True, fn, "ignoring - charge not captured", coid=contribution.id)

        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.contributions.get_by_id(contribution.id)

            if contribution.status in COMPLETABLE_STATUSES:
                details = await self.balance.resolve(charge_id, obj)
                await self._complete_contribution(
                    contribution,
                    trxn_ids=[charge_id],
                    payment_trxn_id=charge_id,
                    order_reference=ids.invoice_id or charge_id,
                    total_amount=get_object_param("amount", obj),
                    receive_date_text=get_object_param("receive_date", obj),
                    details=details,
                )
                await self.uow.commit()
                return self._result(True, fn, "", coid=contribution.id)

            if contribution.status == ContributionStatus.COMPLETED:
                message = "already completed. No additional payment details added"
                payment = await self.contributions.get_payment_by_trxn_id(charge_id, ContributionStatus.COMPLETED)
                if payment is not None and not payment.has_payout_details:
                    details = await self.balance.resolve(charge_id, obj)
                    if details.available_on is not None:
                        payment.apply_payout_details(**details.model_dump())
                        await self.contributions.update_payment(payment)
                        await self.uow.commit()
                        message = "already completed. Added additional payment details"
                return self._result(True, fn, message, coid=contribution.id)

        return self._result(True, fn, "", coid=contribution.id)

    async def charge_refunded(self, event: GatewayEvent) -> ProcessingResult:
        """charge.refunded: record the latest refund as a negative payment."""
        fn = "charge_refunded"
        obj = event.object
        if obj.get("object") != "charge":
            return self._result(False, fn, "Invalid object type")
        charge_id = get_object_param("charge_id", obj)
        if not charge_id:
            return self._result(False, fn, "Missing charge_id")
        if not get_object_param("captured", obj):
            return self._result(True, fn, "ignoring - charge not captured")

        refunds = await self.gateway.list_refunds(charge_id, limit=1)
        if not refunds:
            return self._result(False, fn, f"No refunds found for charge {charge_id}")
        refund = refunds[0]

        ids = EventIdentifiers(
            charge_id=charge_id,
            payment_intent_id=get_object_param("payment_intent_id", obj),
            invoice_id=get_object_param("invoice_id", obj),
        )
        contribution = await self.finder.find(ids, event)
        if contribution is None:
            return self._result(True, fn, "Contribution not found")

        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure

            payments = await self.contributions.list_payments(contribution.id)
            if any(p.trxn_id == refund["id"] for p in payments):
                return self._result(True, fn, "Refund already recorded", coid=contribution.id)

            amount = minor_to_major(refund.get("amount"))
            if amount is None:
                amount = get_object_param("amount_refunded", obj) or Decimal("0")
            amount = abs(amount)
            paid_total = sum(
                (p.total_amount for p in payments if not p.is_refund and p.status == ContributionStatus.COMPLETED),
                Decimal("0"),
            )
            refunded_total = -sum((p.total_amount for p in payments if p.is_refund), Decimal("0")) + amount

            await self.contributions.add_payment(FinancialTransaction(
                id=None,
                contribution_id=contribution.id,
                trxn_id=refund["id"],
                total_amount=-amount,
                fee_amount=Decimal("0"),
                status=ContributionStatus.REFUNDED,
                order_reference=ids.invoice_id or charge_id,
                trxn_date=parse_date(format_date(refund.get("created"))),
                trxn_result_code=refund.get("reason"),
            ))
            contribution = await self.contributions.get_by_id(contribution.id)
            contribution.apply_refund(refund["id"], refunded_total=refunded_total, paid_total=paid_total)
            await self.contributions.update(contribution)
            await self.uow.commit()

        logger.info(
            "refund_recorded",
            contribution_id=contribution.id,
            refund_id=refund["id"],
            amount=str(amount),
            status=contribution.status.value,
        )
        return self._result(True, fn, "Refund recorded", coid=contribution.id)

    async def charge_failed(self, event: GatewayEvent) -> ProcessingResult:
        fn = "charge_failed"
        obj = event.object
        if obj.get("object") != "charge":
            return self._result(False, fn, "Invalid object type")
        if not get_object_param("customer_id", obj):
            return self._result(True, fn, "ignoring - no customer_id")
        charge_id = get_object_param("charge_id", obj)
        if not charge_id:
            return self._result(False, fn, "Missing charge_id")

        ids = EventIdentifiers(
            charge_id=charge_id,
            payment_intent_id=get_object_param("payment_intent_id", obj),
            invoice_id=get_object_param("invoice_id", obj),
        )
        contribution = await self.finder.find(ids, event)
        if contribution is None:
            return self._result(True, fn, "Contribution not found")

        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.contributions.get_by_id(contribution.id)
            if contribution.status != ContributionStatus.PENDING:
                return self._result(True, fn, f"ignoring - contribution is {contribution.status.value}", coid=contribution.id)
            contribution.fail(
                cancel_date=parse_date(get_object_param("receive_date", obj)),
                cancel_reason=get_object_param("failure_message", obj),
                order_reference=ids.invoice_id or charge_id,
            )
            await self.contributions.update(contribution)
            await self.uow.commit()

        return self._result(True, fn, "", coid=contribution.id)

    # ------------------------------------------------------------------ checkout

    async def checkout_session_completed(self, event: GatewayEvent) -> ProcessingResult:
        """checkout.session.completed: link the contribution to the Stripe objects created by Checkout."""
        fn = "checkout_session_completed"
        obj = event.object
        if obj.get("object") != "checkout.session":
            return self._result(False, fn, "Invalid object type")
        client_reference_id = get_object_param("client_reference_id", obj)
        if not client_reference_id:
            return self._result(False, fn, "Missing client_reference_id")

        contribution = await self.contributions.get_by_invoice_id(client_reference_id)
        if contribution is None:
            return self._result(True, fn, "contribution not found for client_reference_id")

        payment_intent_id = get_object_param("payment_intent_id", obj)
        invoice_id = get_object_param("invoice_id", obj)
        subscription_id = get_object_param("subscription_id", obj)
        # Subscriptions are reconciled by invoice id, one-off payments by payment intent id
        trxn_id = invoice_id or payment_intent_id
        if not trxn_id:
            return self._result(False, fn, "Missing invoiceID or paymentIntentID", coid=contribution.id)

        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.contributions.get_by_id(contribution.id)
            contribution.add_trxn_ids(trxn_id)
            await self.contributions.update(contribution)

            if subscription_id and contribution.contribution_recur_id:
                recur = await self.recurs.get_by_id(contribution.contribution_recur_id)
                if recur is not None and recur.processor_id != subscription_id:
                    recur.processor_id = subscription_id
                    await self.recurs.update(recur)
            await self.uow.commit()

        # charge.succeeded usually arrives first and finds nothing to match;
        # flag it so the queue sweep runs it again now that the ids are linked.
        if payment_intent_id:
            webhook = await self.uow.webhook_repository.find_latest_processed(
                self.gateway.processor_id, "charge.succeeded", payment_intent_id
            )
            if webhook is not None:
                webhook.requeue()
                await self.uow.webhook_repository.update(webhook)
                await self.uow.commit()
                return self._result(True, fn, "charge.succeeded flagged for re-process", coid=contribution.id)

        return self._result(True, fn, "", coid=contribution.id)

    # ------------------------------------------------------------------ invoices

    async def invoice_paid(self, event: GatewayEvent) -> ProcessingResult:
        """invoice.paid / invoice.payment_succeeded: complete (creating if needed) the invoice's contribution."""
        fn = "invoice_paid"
        obj = event.object
        if obj.get("object") != "invoice":
            return self._result(False, fn, "Invalid object type")
        invoice_id = get_object_param("invoice_id", obj)
        if not invoice_id:
            return self._result(False, fn, "Missing invoice_id")
        charge_id = get_object_param("charge_id", obj)
        subscription_id = get_object_param("subscription_id", obj)

        recur = await self._get_recur(subscription_id)
        if recur is None:
            if self.config.ipn_debug:
                logger.debug("recur_not_found", event_id=event.id, subscription_id=subscription_id)
            return self._result(True, fn, "No contributionRecur record found. Ignored")

        ids = EventIdentifiers(charge_id=charge_id, invoice_id=invoice_id, subscription_id=subscription_id)
        # Serialise find-or-create per invoice so invoice.finalized and
        # invoice.paid cannot both create a contribution.
        async with self.locks.acquire(contribution_lock_name(invoice_id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.finder.find(ids, event)
            if contribution is None:
                contribution = await self._create_next_contribution(recur, ids, obj)
                await self.uow.commit()

        payment_trxn_id = charge_id or invoice_id
        message = ""
        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            existing = await self.contributions.get_payment_by_trxn_id(payment_trxn_id, ContributionStatus.COMPLETED)
            contribution = await self.contributions.get_by_id(contribution.id)
            if existing is not None:
                # A redelivery still has to finish the installment check
                message = "Payment already recorded"
            elif contribution.status in COMPLETABLE_STATUSES:
                details = await self.balance.resolve(charge_id, obj)
                await self._complete_contribution(
                    contribution,
                    trxn_ids=[invoice_id, charge_id],
                    payment_trxn_id=payment_trxn_id,
                    order_reference=invoice_id,
                    total_amount=get_object_param("amount", obj),
                    receive_date_text=get_object_param("receive_date", obj),
                    details=details,
                )
                await self.uow.commit()

        await self._handle_installments(subscription_id, recur.id)
        return self._result(True, fn, message, coid=contribution.id)

    async def invoice_finalized(self, event: GatewayEvent) -> ProcessingResult:
        """invoice.finalized: make sure a Pending contribution exists for the invoice."""
        fn = "invoice_finalized"
        obj = event.object
        if obj.get("object") != "invoice":
            return self._result(False, fn, "Invalid object type")
        invoice_id = get_object_param("invoice_id", obj)
        if not invoice_id:
            return self._result(False, fn, "Missing invoice_id")
        charge_id = get_object_param("charge_id", obj)
        subscription_id = get_object_param("subscription_id", obj)

        recur = await self._get_recur(subscription_id)
        if recur is None:
            return self._result(True, fn, "No contributionRecur record found. Ignored")

        ids = EventIdentifiers(charge_id=charge_id, invoice_id=invoice_id, subscription_id=subscription_id)
        async with self.locks.acquire(contribution_lock_name(invoice_id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.finder.find(ids, event)
            if contribution is None:
                contribution = await self._create_next_contribution(recur, ids, obj)
            elif subscription_id and contribution.trxn_id == subscription_id:
                # Placeholder of a future-start subscription now has its first invoice
                contribution.add_trxn_ids(invoice_id)
                await self.contributions.update(contribution)
            await self.uow.commit()

        return self._result(True, fn, "", coid=contribution.id)

    async def invoice_payment_failed(self, event: GatewayEvent) -> ProcessingResult:
        fn = "invoice_payment_failed"
        obj = event.object
        if obj.get("object") != "invoice":
            return self._result(False, fn, "Invalid object type")
        invoice_id = get_object_param("invoice_id", obj)
        if not invoice_id:
            return self._result(False, fn, "Missing invoice_id")
        charge_id = get_object_param("charge_id", obj)

        ids = EventIdentifiers(charge_id=charge_id, invoice_id=invoice_id)
        contribution = await self.finder.find(ids, event)
        if contribution is None:
            return self._result(True, fn, "Contribution not found")
        if contribution.status != ContributionStatus.PENDING:
            return self._result(True, fn, "", coid=contribution.id)

        failure_message = ""
        if charge_id:
            charge = await self.gateway.retrieve_charge(charge_id)
            failure_message = get_object_param("failure_message", charge) or ""

        async with self.locks.acquire(contribution_lock_name(contribution.id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            contribution = await self.contributions.get_by_id(contribution.id)
            if contribution.status == ContributionStatus.PENDING:
                contribution.fail(
                    cancel_date=parse_date(get_object_param("receive_date", obj)),
                    cancel_reason=failure_message,
                    order_reference=invoice_id,
                )
                await self.contributions.update(contribution)
                await self.uow.commit()

        return self._result(True, fn, "", coid=contribution.id)

    # ------------------------------------------------------------------ subscriptions

    async def _recur_for_subscription_event(self, event: GatewayEvent, subscription_id: str) -> Optional[ContributionRecur]:
        recur = await self._get_recur(subscription_id)
        if recur is None:
            recur = await self.hook.subscription_not_found(event)
        return recur

    async def _reload_recur(self, recur: ContributionRecur) -> ContributionRecur:
        """Latest committed state once the lock is held; hook-supplied recurs may be unsaved."""
        if recur.id is None:
            return recur
        return await self.recurs.get_by_id(recur.id) or recur

    async def customer_subscription_deleted(self, event: GatewayEvent) -> ProcessingResult:
        fn = "customer_subscription_deleted"
        obj = event.object
        if obj.get("object") != "subscription":
            return self._result(False, fn, "Invalid object type")
        subscription_id = get_object_param("subscription_id", obj)
        if not subscription_id:
            return self._result(False, fn, "Missing subscription_id")

        recur = await self._recur_for_subscription_event(event, subscription_id)
        if recur is None:
            return self._result(True, fn, "No contributionRecur record found. Ignored")

        async with self.locks.acquire(recur_lock_name(recur.id or subscription_id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            recur = await self._reload_recur(recur)
            recur.cancel(parse_date(get_object_param("cancel_date", obj)))
            await self.recurs.update(recur)
            await self.uow.commit()
        logger.info("recur_cancelled", recur_id=recur.id, subscription_id=subscription_id)
        return self._result(True, fn, "cancelled", crid=recur.id)

    async def customer_subscription_updated(self, event: GatewayEvent) -> ProcessingResult:
        """customer.subscription.updated: follow item/price changes on the recur's amount."""
        fn = "customer_subscription_updated"
        obj = event.object
        if obj.get("object") != "subscription":
            return self._result(False, fn, "Invalid object type")
        subscription_id = get_object_param("subscription_id", obj)
        if not subscription_id:
            return self._result(False, fn, "Missing subscription_id")

        recur = await self._recur_for_subscription_event(event, subscription_id)
        if recur is None:
            return self._result(True, fn, "No contributionRecur record found. Ignored")

        previous = event.previous_attributes
        if previous is None:
            return self._result(True, fn, "No changes. Ignored")
        # Metadata-only updates carry no previous item data
        if not (previous.get("items") or {}).get("data"):
            return self._result(True, fn, "")

        item = calculate_subscription_items(obj).get(recur.frequency_key)
        if item is None or item["currency"] != recur.currency:
            return self._result(True, fn, "")

        async with self.locks.acquire(recur_lock_name(recur.id or subscription_id)) as lock:
            failure = self._lock_failure(lock, fn)
            if failure is not None:
                return failure
            recur = await self._reload_recur(recur)
            changed = recur.change_amount(item["amount"])
            if changed:
                await self.recurs.update(recur)
                await self.uow.commit()

        if changed:
            logger.info("recur_amount_changed", recur_id=recur.id, amount=str(item["amount"]), currency=item["currency"])
            return self._result(
                True, fn, f"recur: {recur.id}; new amount: {item['amount']} currency: {item['currency']}"
            )
        return self._result(True, fn, "")
