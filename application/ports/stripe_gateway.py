"""
Stripe gateway port (application/ports) exposing a replaceable protocol.

Application services depend on this Protocol; infrastructure implements the
adapter over the stripe SDK. Every method returns plain dicts so the
reconciliation code never touches SDK objects.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from application.dtos.webhooks import GatewayEvent


@runtime_checkable
class StripeGateway(Protocol):
    """Read/update access to the Stripe objects the webhook handlers consult."""

    provider: str
    processor_id: int

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> GatewayEvent: ...

    async def retrieve_event(self, event_id: str) -> GatewayEvent: ...

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]: ...

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]: ...

    async def update_subscription(self, subscription_id: str, **params: Any) -> dict[str, Any]: ...

    async def list_refunds(self, charge_id: str, *, limit: int = 1) -> list[dict[str, Any]]: ...

    async def retrieve_balance_transaction(self, balance_transaction_id: str) -> dict[str, Any]: ...
