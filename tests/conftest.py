"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import json
import os

# In-memory SQLite for every test; must be set before settings are imported
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS__URL", "")

from decimal import Decimal
from typing import Any, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.webhooks import GatewayEvent, ProcessorInfo, WebhookProcessingConfig
from core.settings import DEFAULT_ENABLED_EVENTS
from domain.common.exceptions import GatewayResourceNotFound
from domain.contribution.entity import Contribution, ContributionRecur, ContributionStatus
from infrastructure.locks import InMemoryLockManager
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class FakeStripeGateway:
    """In-memory stand-in for the Stripe API, keyed by object id."""

    provider = "stripe"

    def __init__(self, processor_id: int = 1):
        self.processor_id = processor_id
        self.charges: dict[str, dict] = {}
        self.invoices: dict[str, dict] = {}
        self.balance_transactions: dict[str, dict] = {}
        self.refunds: dict[str, list[dict]] = {}
        self.subscriptions: dict[str, dict] = {}
        self.events: dict[str, dict] = {}
        self.subscription_updates: list[tuple[str, dict]] = []

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> GatewayEvent:
        return GatewayEvent.model_validate(json.loads(body))

    async def retrieve_event(self, event_id: str) -> GatewayEvent:
        if event_id not in self.events:
            raise GatewayResourceNotFound(f"No such event: '{event_id}'", resource_id=event_id)
        return GatewayEvent.model_validate(self.events[event_id])

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict:
        if charge_id not in self.charges:
            raise GatewayResourceNotFound(f"No such charge: '{charge_id}'", resource_id=charge_id)
        charge = dict(self.charges[charge_id])
        invoice = charge.get("invoice")
        if expand and "invoice" in expand and isinstance(invoice, str):
            charge["invoice"] = self.invoices[invoice]
        return charge

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        if subscription_id not in self.subscriptions:
            raise GatewayResourceNotFound(f"No such subscription: '{subscription_id}'", resource_id=subscription_id)
        return self.subscriptions[subscription_id]

    async def update_subscription(self, subscription_id: str, **params: Any) -> dict:
        self.subscription_updates.append((subscription_id, params))
        subscription = self.subscriptions.setdefault(subscription_id, {"object": "subscription", "id": subscription_id})
        subscription.update(params)
        return subscription

    async def list_refunds(self, charge_id: str, *, limit: int = 1) -> list[dict]:
        return self.refunds.get(charge_id, [])[:limit]

    async def retrieve_balance_transaction(self, balance_transaction_id: str) -> dict:
        if balance_transaction_id not in self.balance_transactions:
            raise GatewayResourceNotFound(
                f"No such balance transaction: '{balance_transaction_id}'", resource_id=balance_transaction_id
            )
        return self.balance_transactions[balance_transaction_id]


def make_event(event_type: str, obj: dict, *, event_id: str = "evt_1", previous_attributes: Optional[dict] = None) -> GatewayEvent:
    data: dict[str, Any] = {"object": obj}
    if previous_attributes is not None:
        data["previous_attributes"] = previous_attributes
    return GatewayEvent(id=event_id, type=event_type, data=data, created=1700000000)


def make_charge(
    charge_id: str = "ch_1",
    *,
    amount: int = 1000,
    currency: str = "usd",
    customer: Optional[str] = "cus_1",
    payment_intent: Optional[str] = "pi_1",
    invoice: Any = None,
    balance_transaction: Optional[str] = "txn_1",
    captured: bool = True,
    **extra: Any,
) -> dict:
    charge = {
        "object": "charge",
        "id": charge_id,
        "amount": amount,
        "currency": currency,
        "customer": customer,
        "payment_intent": payment_intent,
        "invoice": invoice,
        "balance_transaction": balance_transaction,
        "captured": captured,
        "created": 1700000000,
    }
    charge.update(extra)
    return charge


def make_invoice(
    invoice_id: str = "in_1",
    *,
    charge: Optional[str] = "ch_2",
    subscription: Optional[str] = "sub_1",
    amount_due: int = 1000,
    currency: str = "usd",
    customer: Optional[str] = "cus_1",
    **extra: Any,
) -> dict:
    invoice = {
        "object": "invoice",
        "id": invoice_id,
        "charge": charge,
        "subscription": subscription,
        "customer": customer,
        "amount_due": amount_due,
        "currency": currency,
        "created": 1700000000,
        "status": "paid",
    }
    invoice.update(extra)
    return invoice


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def locks() -> InMemoryLockManager:
    return InMemoryLockManager(wait=0.05)


@pytest.fixture
def config() -> WebhookProcessingConfig:
    return WebhookProcessingConfig(enabled_events=frozenset(DEFAULT_ENABLED_EVENTS))


@pytest.fixture
def processor() -> ProcessorInfo:
    return ProcessorInfo(id=1, name="Stripe", is_test=True)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def uow(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        yield uow


@pytest_asyncio.fixture
async def make_contribution(uow):
    async def _make(
        *,
        total_amount: str = "10.00",
        currency: str = "USD",
        trxn_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        recur_id: Optional[int] = None,
        status: ContributionStatus = ContributionStatus.PENDING,
    ) -> Contribution:
        contribution = await uow.contribution_repository.create(Contribution(
            id=None,
            total_amount=Decimal(total_amount),
            currency=currency,
            status=status,
            trxn_id=trxn_id,
            invoice_id=invoice_id,
            contribution_recur_id=recur_id,
        ))
        await uow.commit()
        return contribution

    return _make


@pytest_asyncio.fixture
async def make_recur(uow):
    async def _make(
        *,
        subscription_id: str = "sub_1",
        amount: str = "10.00",
        currency: str = "USD",
        **extra: Any,
    ) -> ContributionRecur:
        recur = await uow.recur_repository.create(ContributionRecur(
            id=None,
            amount=Decimal(amount),
            currency=currency,
            processor_id=subscription_id,
            payment_processor_id=1,
            status=ContributionStatus.IN_PROGRESS,
            **extra,
        ))
        await uow.commit()
        return recur

    return _make
