"""
Webhook 队列数据库模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class PaymentProcessorWebhookModel(Base):
    """
    收到的网关事件（待处理/已处理）

    processed_at 为空即视为未处理
    """
    __tablename__ = "paymentprocessor_webhooks"

    id = Column(Integer, primary_key=True, index=True)

    processor_id = Column(Integer, nullable=False, comment="支付处理器ID")
    event_id = Column(String(255), nullable=False, comment="网关事件ID")
    trigger = Column(String(255), nullable=False, comment="事件类型")
    identifier = Column(String(255), nullable=False, default="", comment="关联键 pi:ch:in:sub")
    data = Column(JSON, nullable=True, comment="原始事件数据")

    status = Column(String(16), nullable=False, default="new", index=True, comment="状态: new/success/error")
    message = Column(Text, nullable=True, comment="处理结果消息")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="接收时间"
    )
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="处理时间")

    __table_args__ = (
        UniqueConstraint("processor_id", "event_id", name="uq_paymentprocessor_webhooks_event"),
        Index("ix_paymentprocessor_webhooks_identifier", "processor_id", "identifier", "processed_at"),
        Index("ix_paymentprocessor_webhooks_pending", "status", "processed_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentProcessorWebhookModel(id={self.id}, event_id='{self.event_id}', "
            f"trigger='{self.trigger}', status='{self.status}')>"
        )
