"""
Run stored webhook events through the reconciliation handlers and record
the outcome on their queue row.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.webhooks import GatewayEvent, ProcessingResult, WebhookProcessingConfig
from application.ports.locks import LockManager
from application.ports.stripe_gateway import StripeGateway
from application.services.contribution_finder import WebhookNotMatchedHook
from application.services.webhook_handlers import StripeWebhookEvents
from core.logging_config import get_logger
from domain.common.exceptions import WebhookProcessingError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import QueuedWebhook


logger = get_logger(__name__)


class WebhookQueueProcessor:
    def __init__(
        self,
        *,
        uow: AbstractUnitOfWork,
        gateway: StripeGateway,
        locks: LockManager,
        config: WebhookProcessingConfig,
        hook: Optional[WebhookNotMatchedHook] = None,
        verify_data: bool = False,
    ):
        self.uow = uow
        self.gateway = gateway
        self.config = config
        self.verify_data = verify_data
        self.events = StripeWebhookEvents(uow=uow, gateway=gateway, locks=locks, config=config, hook=hook)

    async def _record(self, webhook: QueuedWebhook, result: ProcessingResult) -> None:
        # Handlers may have rolled back; reload the row before writing the outcome
        current = await self.uow.webhook_repository.get_by_id(webhook.id) or webhook
        current.mark_processed(result.ok, result.message, max_length=self.config.message_max_length)
        await self.uow.webhook_repository.update(current)
        await self.uow.commit()
        webhook.status = current.status
        webhook.message = current.message
        webhook.processed_at = current.processed_at

    async def process(self, webhook: QueuedWebhook, event: GatewayEvent) -> ProcessingResult:
        """Process ``event`` and mark its queue row success/error."""
        try:
            result = await self.events.process_event(event)
        except WebhookProcessingError as exc:
            await self._record(webhook, ProcessingResult(ok=False, message=exc.message))
            raise

        await self._record(webhook, result)
        logger.info(
            "webhook_processed",
            event_id=webhook.event_id,
            event_type=webhook.trigger,
            webhook_id=webhook.id,
            ok=result.ok,
            message=webhook.message,
        )
        return result

    async def process_queued(self, webhook: QueuedWebhook) -> ProcessingResult:
        """Re-run a stored event, re-reading it from Stripe when ``verify_data`` is set."""
        if self.verify_data:
            try:
                event = await self.gateway.retrieve_event(webhook.event_id)
            except Exception as exc:
                logger.error("webhook_event_retrieve_failed", event_id=webhook.event_id, error=str(exc))
                result = ProcessingResult(ok=False, message=f"Failed to retrieve event {webhook.event_id}: {exc}")
                await self._record(webhook, result)
                return result
        else:
            event = GatewayEvent.model_validate(webhook.data)
        return await self.process(webhook, event)

    async def process_pending(self, processor_id: Optional[int] = None, limit: int = 100) -> list[ProcessingResult]:
        """Sweep unprocessed rows oldest first."""
        webhooks = await self.uow.webhook_repository.list_pending(processor_id, limit)
        results = []
        for webhook in webhooks:
            results.append(await self.process_queued(webhook))
        if webhooks:
            logger.info(
                "webhook_queue_swept",
                processor_id=processor_id,
                processed=len(results),
                failed=sum(1 for r in results if not r.ok),
            )
        return results
