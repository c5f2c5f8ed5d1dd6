"""
Stripe webhook endpoint.

Keep this thin: signature checks live in the gateway adapter and every
admission/processing decision in the ingestion service. The HTTP status is
the only thing Stripe looks at: 2xx acknowledges, anything else is retried.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from starlette import status as http_status

from api.dependencies import get_gateway, get_locks, get_processor_info, get_uow, get_webhook_config
from application.dtos.webhooks import IngestionOutcome, ProcessorInfo, WebhookProcessingConfig
from application.ports.locks import LockManager
from application.ports.stripe_gateway import StripeGateway
from application.services.ingestion_gate import WebhookIngestionService
from core.logging_config import get_logger
from core.response import error_json_response, success_response
from domain.common.unit_of_work import AbstractUnitOfWork
from shared.codes.payment_codes import WebhookCode


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhooks/stripe/{processor_id}", summary="Receive Stripe webhook")
async def stripe_webhook(
    processor_id: int,
    request: Request,
    processor: ProcessorInfo = Depends(get_processor_info),
    gateway: StripeGateway = Depends(get_gateway),
    uow: AbstractUnitOfWork = Depends(get_uow),
    locks: LockManager = Depends(get_locks),
    config: WebhookProcessingConfig = Depends(get_webhook_config),
):
    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        raise HTTPException(
            status_code=http_status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Stripe webhooks must be sent as application/json",
        )

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    event = await gateway.parse_webhook(headers, raw_body)
    logger.info("webhook_delivery", processor_id=processor_id, event_id=event.id, event_type=event.type)

    async with uow:
        service = WebhookIngestionService(
            uow=uow,
            gateway=gateway,
            locks=locks,
            config=config,
            processor=processor,
        )
        result = await service.receive(event)

    if result.outcome == IngestionOutcome.PING:
        return PlainTextResponse(result.message)

    if not result.ok:
        return error_json_response(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            WebhookCode.PROCESSING_FAILED,
            result.message,
            error_type="WebhookProcessingError",
            details={"event_id": event.id, "webhook_id": result.webhook_id},
            request_id=getattr(request.state, "request_id", None),
        )

    return success_response(data=result.model_dump(mode="json"), message=result.message or "OK")
