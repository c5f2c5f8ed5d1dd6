"""
Stripe adapter for the webhook handlers, using the official stripe-python SDK.

Notes on SDK usage:
- Module-level resource helpers (``stripe.Charge.retrieve`` etc.) with a
  per-call ``api_key`` so several processors can share one process.
- SDK calls are blocking; they run in the default executor. No retries are
  attempted here: a failed webhook is redelivered by Stripe or picked up by
  the queue sweep.
- Webhook verification uses ``stripe.Webhook.construct_event`` with the
  ``Stripe-Signature`` header.
"""
from __future__ import annotations

import asyncio
import functools
import json
from typing import Any, Callable, Optional, Sequence

import stripe

from application.dtos.webhooks import GatewayEvent
from core.logging_config import get_logger
from core.settings import StripeProcessorSettings, payment_settings
from domain.common.exceptions import GatewayResourceNotFound
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)


logger = get_logger(__name__)


def _to_dict(obj: Any) -> dict[str, Any]:
    """StripeObject -> plain (recursive) dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    return json.loads(str(obj))


class StripeGatewayClient:
    provider = "stripe"

    def __init__(
        self,
        processor: StripeProcessorSettings,
        *,
        tolerance: Optional[int] = None,
        test_event_suffix: Optional[str] = None,
    ):
        if not processor.secret_key:
            raise RuntimeError(f"Stripe secret key not configured for processor {processor.id}")
        self.processor = processor
        self.processor_id = processor.id
        self._api_key = processor.secret_key
        self._webhook_secret = processor.webhook_secret
        self._tolerance = tolerance if tolerance is not None else payment_settings.webhook.tolerance_seconds
        self._test_event_suffix = test_event_suffix or payment_settings.webhook.test_event_suffix

    async def _call(self, fn: Callable[..., Any], *args: Any, resource_id: Optional[str] = None, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, api_key=self._api_key, **kwargs))
        except stripe.InvalidRequestError as exc:
            if exc.http_status == 404:
                raise GatewayResourceNotFound(str(exc.user_message or exc), resource_id=resource_id) from exc
            raise PaymentProviderError.from_stripe(exc, provider=self.provider) from exc
        except (stripe.RateLimitError, stripe.APIConnectionError) as exc:
            raise PaymentRecoverableError.from_stripe(exc, provider=self.provider) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError.from_stripe(exc, provider=self.provider) from exc

    @staticmethod
    def _event(obj: Any) -> GatewayEvent:
        return GatewayEvent.model_validate(_to_dict(obj))

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> GatewayEvent:
        """Verify and decode a webhook delivery.

        With a signing secret the ``Stripe-Signature`` header is checked.
        Without one the event is re-read from Stripe by id so a forged body
        cannot be processed.
        """
        if self._webhook_secret:
            lowered = {str(k).lower(): v for k, v in headers.items()}
            sig = lowered.get("stripe-signature")
            if not sig:
                raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
            try:
                event = stripe.Webhook.construct_event(
                    payload=body,
                    sig_header=sig,
                    secret=self._webhook_secret,
                    tolerance=self._tolerance,
                )
            except (stripe.SignatureVerificationError, ValueError) as exc:
                raise PaymentSignatureError(str(exc), provider=self.provider) from exc
            return self._event(event)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise PaymentSignatureError(f"Invalid payload: {exc}", provider=self.provider) from exc
        event_id = str(payload.get("id") or "")
        if not event_id:
            raise PaymentSignatureError("Event id missing from payload", provider=self.provider)
        if event_id.endswith(self._test_event_suffix):
            return GatewayEvent.model_validate(payload)
        return await self.retrieve_event(event_id)

    async def retrieve_event(self, event_id: str) -> GatewayEvent:
        event = await self._call(stripe.Event.retrieve, event_id, resource_id=event_id)
        return self._event(event)

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:
        kwargs = {"expand": list(expand)} if expand else {}
        charge = await self._call(stripe.Charge.retrieve, charge_id, resource_id=charge_id, **kwargs)
        return _to_dict(charge)

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        subscription = await self._call(stripe.Subscription.retrieve, subscription_id, resource_id=subscription_id)
        return _to_dict(subscription)

    async def update_subscription(self, subscription_id: str, **params: Any) -> dict[str, Any]:
        subscription = await self._call(stripe.Subscription.modify, subscription_id, resource_id=subscription_id, **params)
        logger.info("stripe_subscription_updated", subscription_id=subscription_id, params=sorted(params))
        return _to_dict(subscription)

    async def list_refunds(self, charge_id: str, *, limit: int = 1) -> list[dict[str, Any]]:
        refunds = await self._call(stripe.Refund.list, charge=charge_id, limit=limit, resource_id=charge_id)
        return list(_to_dict(refunds).get("data") or [])

    async def retrieve_balance_transaction(self, balance_transaction_id: str) -> dict[str, Any]:
        balance_transaction = await self._call(
            stripe.BalanceTransaction.retrieve, balance_transaction_id, resource_id=balance_transaction_id
        )
        return _to_dict(balance_transaction)
