"""
Factory for Stripe gateway clients, one per configured payment processor.
"""
from __future__ import annotations

from application.ports.stripe_gateway import StripeGateway
from core.settings import payment_settings
from domain.common.exceptions import ProcessorNotFoundException


def get_stripe_gateway(processor_id: int) -> StripeGateway:
    processor = payment_settings.stripe.get_processor(processor_id)
    if processor is None:
        raise ProcessorNotFoundException(processor_id)
    from .stripe_client import StripeGatewayClient
    return StripeGatewayClient(processor)
