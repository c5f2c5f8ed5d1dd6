"""
Fee and payout details for a Stripe charge.

The fee Stripe took lives on the charge's balance transaction, which is
usually not part of the webhook payload, so it is fetched on demand.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from application.dtos.webhooks import BalanceTransactionDetails
from application.ports.stripe_gateway import StripeGateway
from application.services.object_accessor import (
    currency_conversion,
    format_currency,
    format_date,
    get_object_param,
    minor_to_major,
    parse_date,
)
from core.logging_config import get_logger
from domain.common.exceptions import BalanceTransactionError


logger = get_logger(__name__)


def fee_in_charge_currency(balance_transaction: Mapping[str, Any], charge_currency: Optional[str]) -> Decimal:
    """Fee converted from the payout currency back into the charge currency."""
    fee = balance_transaction.get("fee") or 0
    exchange_rate = balance_transaction.get("exchange_rate")
    payout_currency = (balance_transaction.get("currency") or "").upper()
    if exchange_rate and charge_currency and payout_currency != charge_currency.upper():
        return currency_conversion(fee, exchange_rate, charge_currency)
    return minor_to_major(fee)


class BalanceDetailsResolver:
    def __init__(self, gateway: StripeGateway):
        self.gateway = gateway

    async def resolve(self, charge_id: Optional[str], event_object: Optional[Mapping[str, Any]]) -> BalanceTransactionDetails:
        """Resolve fee/payout details for ``charge_id``.

        ``event_object`` is used directly when it is the charge itself;
        otherwise the charge is retrieved first. Only a missing balance
        transaction id yields a zero fee; a failed retrieval raises
        :class:`BalanceTransactionError`.
        """
        charge = event_object if (event_object or {}).get("object") == "charge" else None
        if charge is None:
            if not charge_id:
                return BalanceTransactionDetails()
            charge = await self.gateway.retrieve_charge(charge_id)

        embedded = charge.get("balance_transaction")
        balance_transaction_id = get_object_param("balance_transaction", charge)
        if not balance_transaction_id:
            return BalanceTransactionDetails()

        if isinstance(embedded, Mapping) and "fee" in embedded:
            balance_transaction = embedded
        else:
            try:
                balance_transaction = await self.gateway.retrieve_balance_transaction(balance_transaction_id)
            except Exception as exc:
                logger.error(
                    "balance_transaction_retrieve_failed",
                    balance_transaction_id=balance_transaction_id,
                    charge_id=charge_id,
                    error=str(exc),
                )
                raise BalanceTransactionError(balance_transaction_id) from exc

        charge_currency = get_object_param("currency", charge)
        exchange_rate = balance_transaction.get("exchange_rate")
        return BalanceTransactionDetails(
            fee_amount=fee_in_charge_currency(balance_transaction, charge_currency),
            available_on=parse_date(format_date(balance_transaction.get("available_on"))),
            exchange_rate=Decimal(str(exchange_rate)) if exchange_rate else None,
            charge_amount=get_object_param("amount", charge),
            charge_currency=charge_currency,
            payout_amount=minor_to_major(balance_transaction.get("amount")),
            payout_currency=format_currency(balance_transaction.get("currency")),
        )
