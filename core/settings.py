"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so webhook tuning can be changed per
deployment (e.g. ``PAYMENT__WEBHOOK__PROCESSING_LIMIT=100``) without touching
the application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


DEFAULT_ENABLED_EVENTS = [
    "checkout.session.completed",
    "charge.succeeded",
    "charge.captured",
    "charge.refunded",
    "charge.failed",
    "invoice.paid",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
    "invoice.finalized",
    "customer.subscription.updated",
    "customer.subscription.deleted",
]


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    enabled_events: list[str] = Field(default_factory=lambda: list(DEFAULT_ENABLED_EVENTS))
    # Events that always wait for the queue sweep instead of running inline
    delayed_events: list[str] = Field(default_factory=lambda: ["invoice.finalized"])
    processing_limit: int = 50
    ipn_debug: bool = False
    strict_locking: bool = False
    exception_on_failure: bool = False
    message_max_length: int = 250
    lock_timeout_seconds: float = 30.0
    lock_wait_seconds: float = 5.0
    test_event_suffix: str = "_00000000000000"
    sweep_batch_size: int = 100
    sweep_interval_seconds: float = 60.0
    verify_queued_events: bool = False


class StripeProcessorSettings(BaseModel):
    id: int
    name: str = "Stripe"
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    is_test: bool = False


class StripeSettings(BaseModel):
    processors: list[StripeProcessorSettings] = Field(default_factory=list)

    def get_processor(self, processor_id: int) -> Optional[StripeProcessorSettings]:
        for processor in self.processors:
            if processor.id == processor_id:
                return processor
        return None


class PaymentSettings(BaseSettings):
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
