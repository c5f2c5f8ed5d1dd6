"""
Locate the local contribution a Stripe event refers to.

Lookups run in a fixed order and the first hit wins: charge id, payment
intent id, invoice id, subscription id. When all of them miss, the
not-matched hook gets a chance to supply (or create) the contribution.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from application.dtos.webhooks import EventIdentifiers, GatewayEvent
from core.logging_config import get_logger
from domain.contribution.entity import Contribution, ContributionRecur
from domain.contribution.repository import ContributionRepository


logger = get_logger(__name__)


@runtime_checkable
class WebhookNotMatchedHook(Protocol):
    """Extension point consulted when no local record matches an event."""

    async def contribution_not_found(self, event: GatewayEvent) -> Optional[Contribution]: ...

    async def subscription_not_found(self, event: GatewayEvent) -> Optional[ContributionRecur]: ...


class NullNotMatchedHook:
    async def contribution_not_found(self, event: GatewayEvent) -> Optional[Contribution]:
        return None

    async def subscription_not_found(self, event: GatewayEvent) -> Optional[ContributionRecur]:
        return None


class LookupStrategy:
    name = "base"

    async def lookup(self, repository: ContributionRepository, ids: EventIdentifiers) -> Optional[Contribution]:
        raise NotImplementedError


class ByChargeId(LookupStrategy):
    name = "charge_id"

    async def lookup(self, repository, ids):
        if not ids.charge_id:
            return None
        return await repository.find_by_trxn_id(ids.charge_id)


class ByPaymentIntentId(LookupStrategy):
    name = "payment_intent_id"

    async def lookup(self, repository, ids):
        if not ids.payment_intent_id:
            return None
        return await repository.find_by_trxn_id(ids.payment_intent_id)


class ByInvoiceId(LookupStrategy):
    name = "invoice_id"

    async def lookup(self, repository, ids):
        if not ids.invoice_id:
            return None
        return (
            await repository.find_by_order_reference(ids.invoice_id)
            or await repository.find_by_trxn_id(ids.invoice_id)
        )


class BySubscriptionId(LookupStrategy):
    """Matches the placeholder contribution of a subscription that starts in the future.

    Only an exact ``trxn_id`` match counts: once an invoice id has been
    appended the contribution belongs to that invoice, not the subscription.
    """

    name = "subscription_id"

    async def lookup(self, repository, ids):
        if not ids.subscription_id:
            return None
        return (
            await repository.find_by_order_reference(ids.subscription_id)
            or await repository.find_by_trxn_id(ids.subscription_id, exact=True)
        )


DEFAULT_STRATEGIES: Sequence[LookupStrategy] = (
    ByChargeId(),
    ByPaymentIntentId(),
    ByInvoiceId(),
    BySubscriptionId(),
)


class ContributionFinder:
    def __init__(
        self,
        repository: ContributionRepository,
        hook: Optional[WebhookNotMatchedHook] = None,
        *,
        strategies: Sequence[LookupStrategy] = DEFAULT_STRATEGIES,
        debug: bool = False,
    ):
        self.repository = repository
        self.hook = hook or NullNotMatchedHook()
        self.strategies = strategies
        self.debug = debug

    async def find(self, ids: EventIdentifiers, event: GatewayEvent) -> Optional[Contribution]:
        for strategy in self.strategies:
            contribution = await strategy.lookup(self.repository, ids)
            if contribution is not None:
                if self.debug:
                    logger.debug(
                        "contribution_matched",
                        strategy=strategy.name,
                        contribution_id=contribution.id,
                        event_id=event.id,
                    )
                return contribution

        contribution = await self.hook.contribution_not_found(event)
        if contribution is None and self.debug:
            logger.debug(
                "contribution_not_matched",
                event_id=event.id,
                event_type=event.type,
                correlation_key=ids.correlation_key,
            )
        return contribution
