"""
Webhook 队列领域实体 - 收到的网关事件在处理前后的持久化记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class WebhookStatus(str, Enum):
    """队列记录状态"""
    NEW = "new"
    SUCCESS = "success"
    ERROR = "error"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_message(message: Optional[str], max_length: int = 250) -> Optional[str]:
    """超过长度的处理结果截断并追加 " ..." 标记"""
    if message is None or len(message) <= max_length:
        return message
    return f"{message[:max_length]} ..."


@dataclass
class QueuedWebhook:
    """
    队列中的 webhook 事件

    业务规则：
    1. (processor_id, event_id) 唯一
    2. processed_at 为空表示尚未处理，是排队/去重判断的依据
    3. 重新处理只覆盖状态、消息与处理时间，不改变身份
    """

    id: Optional[int]
    processor_id: int
    event_id: str
    trigger: str
    identifier: str
    data: dict[str, Any] = field(default_factory=dict)
    status: WebhookStatus = WebhookStatus.NEW
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
        self.processed_at = _ensure_utc(self.processed_at)

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    def mark_processed(self, ok: bool, message: Optional[str], *, max_length: int = 250) -> None:
        self.status = WebhookStatus.SUCCESS if ok else WebhookStatus.ERROR
        self.message = truncate_message(message, max_length)
        self.processed_at = datetime.now(timezone.utc)

    def requeue(self) -> None:
        """重新标记为待处理，由队列扫描任务再次执行"""
        self.status = WebhookStatus.NEW
        self.processed_at = None
