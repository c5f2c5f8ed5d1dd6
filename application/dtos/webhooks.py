"""
Webhook DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GatewayEvent(BaseModel):
    """A Stripe event as delivered to the webhook endpoint (or re-read from the queue)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    created: Optional[int] = None
    livemode: bool = False

    @property
    def object(self) -> dict[str, Any]:
        return self.data.get("object") or {}

    @property
    def previous_attributes(self) -> Optional[dict[str, Any]]:
        return self.data.get("previous_attributes")

    def with_object(self, obj: dict[str, Any]) -> "GatewayEvent":
        return self.model_copy(update={"data": {**self.data, "object": obj}})


class EventIdentifiers(BaseModel):
    """Gateway identifiers pulled out of an event; their join is the correlation key."""

    model_config = ConfigDict(frozen=True)

    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None
    invoice_id: Optional[str] = None
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None

    @property
    def correlation_key(self) -> str:
        parts = (self.payment_intent_id, self.charge_id, self.invoice_id, self.subscription_id)
        return ":".join(p or "" for p in parts)


class ProcessingResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    message: str = ""
    exception: Optional[BaseException] = Field(default=None, exclude=True)


class IngestionOutcome(str, Enum):
    PING = "ping"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    QUEUED = "queued"
    PROCESSED = "processed"


class IngestionResult(BaseModel):
    ok: bool
    outcome: IngestionOutcome
    message: str = ""
    webhook_id: Optional[int] = None


class BalanceTransactionDetails(BaseModel):
    """Fee and payout details resolved from a Stripe balance transaction."""

    fee_amount: Decimal = Decimal("0")
    available_on: Optional[datetime] = None
    exchange_rate: Optional[Decimal] = None
    charge_amount: Optional[Decimal] = None
    charge_currency: Optional[str] = None
    payout_amount: Optional[Decimal] = None
    payout_currency: Optional[str] = None


class ProcessorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = "Stripe"
    is_test: bool = False

    @property
    def label(self) -> str:
        return f"{self.name} ({'Test' if self.is_test else 'Live'})"


class WebhookProcessingConfig(BaseModel):
    """Immutable snapshot of the webhook settings handed to the gate and the handlers."""

    model_config = ConfigDict(frozen=True)

    enabled_events: frozenset[str] = frozenset()
    delayed_events: frozenset[str] = frozenset({"invoice.finalized"})
    processing_limit: int = 50
    ipn_debug: bool = False
    strict_locking: bool = False
    exception_on_failure: bool = False
    message_max_length: int = 250
    test_event_suffix: str = "_00000000000000"

    @classmethod
    def from_settings(cls, webhook_settings: Any) -> "WebhookProcessingConfig":
        return cls(
            enabled_events=frozenset(webhook_settings.enabled_events),
            delayed_events=frozenset(webhook_settings.delayed_events),
            processing_limit=webhook_settings.processing_limit,
            ipn_debug=webhook_settings.ipn_debug,
            strict_locking=webhook_settings.strict_locking,
            exception_on_failure=webhook_settings.exception_on_failure,
            message_max_length=webhook_settings.message_max_length,
            test_event_suffix=webhook_settings.test_event_suffix,
        )
