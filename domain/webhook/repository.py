"""
Webhook 队列仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import QueuedWebhook, WebhookStatus


class WebhookQueueRepository(ABC):
    """Webhook 队列仓储抽象接口"""

    @abstractmethod
    async def add(self, webhook: QueuedWebhook) -> Optional[QueuedWebhook]:
        """
        插入队列记录

        Returns:
            新记录；若 (processor_id, event_id) 已存在则返回 None
        """
        pass

    @abstractmethod
    async def get_by_id(self, webhook_id: int) -> Optional[QueuedWebhook]:
        pass

    @abstractmethod
    async def get_by_event_id(self, processor_id: int, event_id: str) -> Optional[QueuedWebhook]:
        pass

    @abstractmethod
    async def list_unprocessed_by_identifier(self, processor_id: int, identifier: str) -> List[QueuedWebhook]:
        """获取同一关联键下尚未处理的记录"""
        pass

    @abstractmethod
    async def count_unprocessed(self, processor_id: int) -> int:
        """统计尚未处理的记录数（背压判断）"""
        pass

    @abstractmethod
    async def list_pending(self, processor_id: Optional[int] = None, limit: int = 100) -> List[QueuedWebhook]:
        """按创建顺序获取待处理（status=new 且未处理）的记录"""
        pass

    @abstractmethod
    async def find_latest_processed(
        self,
        processor_id: int,
        trigger: str,
        identifier_contains: str,
        status: WebhookStatus = WebhookStatus.SUCCESS,
    ) -> Optional[QueuedWebhook]:
        """获取最近一条已处理、关联键包含指定片段的记录"""
        pass

    @abstractmethod
    async def update(self, webhook: QueuedWebhook) -> QueuedWebhook:
        pass
