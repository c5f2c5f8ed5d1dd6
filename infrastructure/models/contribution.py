"""
捐款数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, Text,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class ContributionRecurModel(Base):
    """
    定期捐款数据库模型

    所有业务规则都在 domain.contribution.entity.ContributionRecur 中
    """
    __tablename__ = "contribution_recurs"

    id = Column(Integer, primary_key=True, index=True)

    # 网关信息
    processor_id = Column(String(255), nullable=True, index=True, comment="Stripe subscription ID")
    payment_processor_id = Column(Integer, nullable=True, comment="支付处理器ID")

    # 模板金额与周期
    amount = Column(Numeric(precision=20, scale=2), nullable=False, comment="每期金额")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")
    frequency_unit = Column(String(16), nullable=False, default="month", comment="周期单位: day/week/month/year")
    frequency_interval = Column(Integer, nullable=False, default=1, comment="周期间隔")

    status = Column(String(32), nullable=False, default="Pending", index=True, comment="定期捐款状态")

    start_date = Column(DateTime(timezone=True), nullable=True, comment="开始时间")
    end_date = Column(DateTime(timezone=True), nullable=True, comment="结束时间（分期付款）")
    cancel_date = Column(DateTime(timezone=True), nullable=True, comment="取消时间")
    is_test = Column(Boolean, nullable=False, default=False, comment="是否测试数据")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    contributions = relationship("ContributionModel", back_populates="recur", lazy="select")

    def __repr__(self):
        return (
            f"<ContributionRecurModel(id={self.id}, processor_id='{self.processor_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class ContributionModel(Base):
    """
    捐款数据库模型

    trxn_id 保存逗号分隔的网关标识（payment intent / charge / invoice / refund）
    """
    __tablename__ = "contributions"

    id = Column(Integer, primary_key=True, index=True)

    contribution_recur_id = Column(
        Integer,
        ForeignKey("contribution_recurs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="关联的定期捐款ID"
    )

    # 标识
    invoice_id = Column(String(255), nullable=True, unique=True, comment="本地发票号（checkout client_reference_id）")
    trxn_id = Column(String(255), nullable=True, comment="网关交易号列表（逗号分隔）")
    order_reference = Column(String(255), nullable=True, index=True, comment="订单引用（通常为 Stripe invoice id）")

    # 金额信息
    total_amount = Column(Numeric(precision=20, scale=2), nullable=False, comment="捐款金额")
    fee_amount = Column(Numeric(precision=20, scale=2), nullable=False, default=0, comment="手续费")
    net_amount = Column(Numeric(precision=20, scale=2), nullable=True, comment="净额")
    currency = Column(String(3), nullable=False, comment="货币代码")

    status = Column(String(32), nullable=False, default="Pending", index=True, comment="捐款状态")

    receive_date = Column(DateTime(timezone=True), nullable=True, comment="收款时间")
    cancel_date = Column(DateTime(timezone=True), nullable=True, comment="取消/失败时间")
    cancel_reason = Column(Text, nullable=True, comment="失败原因")
    is_test = Column(Boolean, nullable=False, default=False, comment="是否测试数据")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    recur = relationship("ContributionRecurModel", back_populates="contributions")
    payments = relationship("FinancialTrxnModel", back_populates="contribution", lazy="select")

    __table_args__ = (
        Index("ix_contributions_trxn_id", "trxn_id"),
        Index("ix_contributions_recur_status", "contribution_recur_id", "status"),
    )

    def __repr__(self):
        return (
            f"<ContributionModel(id={self.id}, trxn_id='{self.trxn_id}', "
            f"total_amount={self.total_amount}, status='{self.status}')>"
        )


class FinancialTrxnModel(Base):
    """
    支付流水数据库模型

    退款以负金额记录
    """
    __tablename__ = "financial_trxns"

    id = Column(Integer, primary_key=True, index=True)

    contribution_id = Column(
        Integer,
        ForeignKey("contributions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联的捐款ID"
    )

    trxn_id = Column(String(255), nullable=False, index=True, comment="网关交易号（charge/invoice/refund id）")
    order_reference = Column(String(255), nullable=True, comment="订单引用")
    total_amount = Column(Numeric(precision=20, scale=2), nullable=False, comment="金额（退款为负）")
    fee_amount = Column(Numeric(precision=20, scale=2), nullable=False, default=0, comment="手续费")
    status = Column(String(32), nullable=False, default="Completed", comment="流水状态: Completed/Refunded")
    trxn_date = Column(DateTime(timezone=True), nullable=True, comment="交易时间")
    trxn_result_code = Column(String(255), nullable=True, comment="结果码（退款原因等）")

    # 结算信息
    available_on = Column(DateTime(timezone=True), nullable=True, comment="资金可用时间")
    exchange_rate = Column(Numeric(precision=20, scale=8), nullable=True, comment="汇率")
    charge_amount = Column(Numeric(precision=20, scale=2), nullable=True, comment="收款金额（收款币种）")
    charge_currency = Column(String(3), nullable=True, comment="收款币种")
    payout_amount = Column(Numeric(precision=20, scale=2), nullable=True, comment="结算金额（结算币种）")
    payout_currency = Column(String(3), nullable=True, comment="结算币种")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    contribution = relationship("ContributionModel", back_populates="payments")

    __table_args__ = (
        Index("ix_financial_trxns_trxn_status", "trxn_id", "status"),
    )

    def __repr__(self):
        return (
            f"<FinancialTrxnModel(id={self.id}, contribution_id={self.contribution_id}, "
            f"trxn_id='{self.trxn_id}', total_amount={self.total_amount})>"
        )
