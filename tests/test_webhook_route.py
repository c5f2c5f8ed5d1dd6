import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_gateway, get_locks, get_processor_info, get_uow, get_webhook_config
from domain.contribution.entity import Contribution
from domain.customer.repository import StripeCustomer
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from main import app
from shared.codes.payment_codes import WebhookCode

from conftest import make_charge, make_event


URL = "/api/v1/payments/webhooks/stripe/1"


@pytest_asyncio.fixture
async def client(session_factory, gateway, locks, config, processor):
    app.dependency_overrides[get_uow] = lambda: SQLAlchemyUnitOfWork(session_factory)
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_locks] = lambda: locks
    app.dependency_overrides[get_webhook_config] = lambda: config
    app.dependency_overrides[get_processor_info] = lambda: processor
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _post(client, event):
    return client.post(
        URL,
        content=json.dumps(event.model_dump(mode="json")),
        headers={"Content-Type": "application/json", "Stripe-Signature": "t=1,v1=abc"},
    )


@pytest.mark.asyncio
async def test_ping_returns_plain_text(client):
    response = await _post(client, make_event("charge.succeeded", make_charge(), event_id="evt_00000000000000"))
    assert response.status_code == 200
    assert response.text.startswith("Test webhook from Stripe (evt_00000000000000) received successfully")


@pytest.mark.asyncio
async def test_processed_event_returns_outcome(client):
    response = await _post(client, make_event("charge.succeeded", make_charge(customer=None)))
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["outcome"] == "processed"
    assert body["data"]["ok"] is True
    assert response.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_failed_processing_returns_500(client, session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as seed:
        await seed.customer_repository.create(StripeCustomer(id=None, customer_id="cus_1", processor_id=1))
        await seed.contribution_repository.create(
            Contribution(id=None, total_amount=Decimal("10.00"), currency="USD", trxn_id="pi_1")
        )

    response = await _post(client, make_event("charge.succeeded", make_charge()))
    assert response.status_code == 500
    body = response.json()
    assert body["code"] == WebhookCode.PROCESSING_FAILED
    assert body["error"]["details"]["event_id"] == "evt_1"


@pytest.mark.asyncio
async def test_non_json_body_is_rejected(client):
    response = await client.post(URL, content=b"id=evt_1", headers={"Content-Type": "application/x-www-form-urlencoded"})
    assert response.status_code == 415


@pytest.mark.asyncio
async def test_unknown_processor_returns_404(session_factory):
    app.dependency_overrides[get_uow] = lambda: SQLAlchemyUnitOfWork(session_factory)
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/api/v1/payments/webhooks/stripe/999",
                content=b"{}",
                headers={"Content-Type": "application/json"},
            )
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "ProcessorNotFound"
