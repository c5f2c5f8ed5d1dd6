"""
Webhook 队列仓储实现
"""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.webhook.entity import QueuedWebhook, WebhookStatus
from domain.webhook.repository import WebhookQueueRepository
from infrastructure.models.webhook import PaymentProcessorWebhookModel


logger = get_logger(__name__)


class SQLAlchemyWebhookQueueRepository(WebhookQueueRepository):
    """Webhook 队列仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentProcessorWebhookModel) -> QueuedWebhook:
        return QueuedWebhook(
            id=model.id,
            processor_id=model.processor_id,
            event_id=model.event_id,
            trigger=model.trigger,
            identifier=model.identifier,
            data=model.data or {},
            status=WebhookStatus(model.status),
            message=model.message,
            created_at=model.created_at,
            processed_at=model.processed_at,
        )

    def _to_model(self, entity: QueuedWebhook) -> PaymentProcessorWebhookModel:
        return PaymentProcessorWebhookModel(
            id=entity.id,
            processor_id=entity.processor_id,
            event_id=entity.event_id,
            trigger=entity.trigger,
            identifier=entity.identifier,
            data=entity.data,
            status=entity.status.value,
            message=entity.message,
            created_at=entity.created_at,
            processed_at=entity.processed_at,
        )

    async def add(self, webhook: QueuedWebhook) -> Optional[QueuedWebhook]:
        """插入队列记录，(processor_id, event_id) 冲突时返回 None"""
        try:
            db_webhook = self._to_model(webhook)
            self.session.add(db_webhook)
            await self.session.flush()
            await self.session.refresh(db_webhook)
            return self._to_entity(db_webhook)
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "webhook_insert_conflict",
                processor_id=webhook.processor_id,
                event_id=webhook.event_id,
            )
            return None

    async def get_by_id(self, webhook_id: int) -> Optional[QueuedWebhook]:
        result = await self.session.execute(
            select(PaymentProcessorWebhookModel)
            .where(PaymentProcessorWebhookModel.id == webhook_id)
            .execution_options(populate_existing=True)
        )
        db_webhook = result.scalar_one_or_none()
        return self._to_entity(db_webhook) if db_webhook else None

    async def get_by_event_id(self, processor_id: int, event_id: str) -> Optional[QueuedWebhook]:
        result = await self.session.execute(
            select(PaymentProcessorWebhookModel).where(
                PaymentProcessorWebhookModel.processor_id == processor_id,
                PaymentProcessorWebhookModel.event_id == event_id,
            )
        )
        db_webhook = result.scalar_one_or_none()
        return self._to_entity(db_webhook) if db_webhook else None

    async def list_unprocessed_by_identifier(self, processor_id: int, identifier: str) -> List[QueuedWebhook]:
        result = await self.session.execute(
            select(PaymentProcessorWebhookModel)
            .where(
                PaymentProcessorWebhookModel.processor_id == processor_id,
                PaymentProcessorWebhookModel.identifier == identifier,
                PaymentProcessorWebhookModel.processed_at.is_(None),
            )
            .order_by(PaymentProcessorWebhookModel.id)
        )
        return [self._to_entity(w) for w in result.scalars().all()]

    async def count_unprocessed(self, processor_id: int) -> int:
        result = await self.session.execute(
            select(func.count(PaymentProcessorWebhookModel.id)).where(
                PaymentProcessorWebhookModel.processor_id == processor_id,
                PaymentProcessorWebhookModel.processed_at.is_(None),
            )
        )
        return result.scalar_one()

    async def list_pending(self, processor_id: Optional[int] = None, limit: int = 100) -> List[QueuedWebhook]:
        query = select(PaymentProcessorWebhookModel).where(
            PaymentProcessorWebhookModel.status == WebhookStatus.NEW.value,
            PaymentProcessorWebhookModel.processed_at.is_(None),
        )
        if processor_id is not None:
            query = query.where(PaymentProcessorWebhookModel.processor_id == processor_id)
        result = await self.session.execute(
            query.order_by(PaymentProcessorWebhookModel.created_at, PaymentProcessorWebhookModel.id).limit(limit)
        )
        return [self._to_entity(w) for w in result.scalars().all()]

    async def find_latest_processed(
        self,
        processor_id: int,
        trigger: str,
        identifier_contains: str,
        status: WebhookStatus = WebhookStatus.SUCCESS,
    ) -> Optional[QueuedWebhook]:
        escaped = identifier_contains.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        result = await self.session.execute(
            select(PaymentProcessorWebhookModel)
            .where(
                PaymentProcessorWebhookModel.processor_id == processor_id,
                PaymentProcessorWebhookModel.trigger == trigger,
                PaymentProcessorWebhookModel.status == status.value,
                PaymentProcessorWebhookModel.processed_at.is_not(None),
                PaymentProcessorWebhookModel.identifier.like(f"%{escaped}%", escape="\\"),
            )
            .order_by(PaymentProcessorWebhookModel.processed_at.desc(), PaymentProcessorWebhookModel.id.desc())
            .limit(1)
        )
        db_webhook = result.scalars().first()
        return self._to_entity(db_webhook) if db_webhook else None

    async def update(self, webhook: QueuedWebhook) -> QueuedWebhook:
        result = await self.session.execute(
            select(PaymentProcessorWebhookModel).where(PaymentProcessorWebhookModel.id == webhook.id)
        )
        db_webhook = result.scalar_one_or_none()

        if not db_webhook:
            raise ValueError(f"Webhook with id {webhook.id} not found")

        db_webhook.status = webhook.status.value
        db_webhook.message = webhook.message
        db_webhook.processed_at = webhook.processed_at
        db_webhook.data = webhook.data

        await self.session.flush()
        await self.session.refresh(db_webhook)
        return self._to_entity(db_webhook)
