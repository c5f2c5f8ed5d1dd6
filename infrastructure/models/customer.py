"""
Stripe 客户数据库模型
"""
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class StripeCustomerModel(Base):
    __tablename__ = "stripe_customers"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(255), nullable=False, index=True, comment="Stripe customer ID")
    processor_id = Column(Integer, nullable=False, comment="支付处理器ID")
    contact_id = Column(Integer, nullable=True, index=True, comment="联系人ID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "processor_id", name="uq_stripe_customers_customer_processor"),
    )
