"""
捐款领域实体 - 捐款（Contribution）、支付流水（FinancialTransaction）与定期捐款（ContributionRecur）
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import DomainValidationException


class ContributionStatus(str, Enum):
    """捐款/定期捐款状态枚举（与 CiviCRM 状态名保持一致）"""
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    CANCELLED = "Cancelled"
    IN_PROGRESS = "In Progress"
    OVERDUE = "Overdue"
    PARTIALLY_PAID = "Partially paid"


# 允许被标记为已完成的状态
COMPLETABLE_STATUSES = (ContributionStatus.PENDING, ContributionStatus.FAILED)

ZERO = Decimal("0")


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def split_trxn_ids(value: Optional[str]) -> list[str]:
    """拆分逗号分隔的交易号列表"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class FinancialTransaction:
    """
    支付流水 - 捐款下的一笔收款或退款

    退款以负金额记录，手续费为 0。
    """

    id: Optional[int]
    contribution_id: int
    trxn_id: str
    total_amount: Decimal
    status: ContributionStatus = ContributionStatus.COMPLETED
    fee_amount: Decimal = ZERO
    order_reference: Optional[str] = None
    trxn_date: Optional[datetime] = None
    trxn_result_code: Optional[str] = None

    # 结算信息（来自 Stripe balance transaction）
    available_on: Optional[datetime] = None
    exchange_rate: Optional[Decimal] = None
    charge_amount: Optional[Decimal] = None
    charge_currency: Optional[str] = None
    payout_amount: Optional[Decimal] = None
    payout_currency: Optional[str] = None

    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.trxn_date = _ensure_utc(self.trxn_date)
        self.available_on = _ensure_utc(self.available_on)
        self.created_at = _ensure_utc(self.created_at)

    @property
    def is_refund(self) -> bool:
        return self.total_amount < 0

    @property
    def has_payout_details(self) -> bool:
        return self.available_on is not None

    def apply_payout_details(
        self,
        *,
        fee_amount: Decimal,
        available_on: Optional[datetime] = None,
        exchange_rate: Optional[Decimal] = None,
        charge_amount: Optional[Decimal] = None,
        charge_currency: Optional[str] = None,
        payout_amount: Optional[Decimal] = None,
        payout_currency: Optional[str] = None,
    ) -> None:
        self.fee_amount = fee_amount
        self.available_on = _ensure_utc(available_on)
        self.exchange_rate = exchange_rate
        self.charge_amount = charge_amount
        self.charge_currency = charge_currency
        self.payout_amount = payout_amount
        self.payout_currency = payout_currency


@dataclass
class Contribution:
    """
    捐款聚合根 - 一笔应收款项

    业务规则：
    1. trxn_id 为逗号分隔的网关标识列表，只追加不覆盖
    2. 只有 Pending/Failed 的捐款可以被标记为 Completed
    3. 只有 Pending 的捐款可以被标记为 Failed
    4. 累计退款达到已收金额时状态变为 Refunded
    """

    id: Optional[int]
    total_amount: Decimal
    currency: str
    status: ContributionStatus = ContributionStatus.PENDING
    contribution_recur_id: Optional[int] = None
    invoice_id: Optional[str] = None
    trxn_id: Optional[str] = None
    order_reference: Optional[str] = None
    fee_amount: Decimal = ZERO
    net_amount: Optional[Decimal] = None
    receive_date: Optional[datetime] = None
    cancel_date: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    is_test: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.currency:
            self.currency = self.currency.upper()
        self.receive_date = _ensure_utc(self.receive_date)
        self.cancel_date = _ensure_utc(self.cancel_date)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def trxn_ids(self) -> list[str]:
        return split_trxn_ids(self.trxn_id)

    @property
    def is_recurring(self) -> bool:
        return self.contribution_recur_id is not None

    def has_trxn_id(self, ref: Optional[str]) -> bool:
        return bool(ref) and ref in self.trxn_ids

    def add_trxn_ids(self, *refs: Optional[str]) -> None:
        """追加交易号（去重、保持顺序）"""
        ids = self.trxn_ids
        for ref in refs:
            if ref and ref not in ids:
                ids.append(ref)
        self.trxn_id = ",".join(ids) or None

    def complete(
        self,
        *,
        trxn_ids: Iterable[Optional[str]],
        fee_amount: Decimal = ZERO,
        receive_date: Optional[datetime] = None,
        order_reference: Optional[str] = None,
    ) -> None:
        if self.status not in COMPLETABLE_STATUSES:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 Completed",
                field="status",
            )
        self.status = ContributionStatus.COMPLETED
        self.add_trxn_ids(*trxn_ids)
        self.fee_amount = fee_amount or ZERO
        self.net_amount = self.total_amount - self.fee_amount
        if receive_date:
            self.receive_date = _ensure_utc(receive_date)
        if order_reference:
            self.order_reference = order_reference
        self.updated_at = datetime.now(timezone.utc)

    def fail(
        self,
        *,
        cancel_date: Optional[datetime] = None,
        cancel_reason: Optional[str] = None,
        order_reference: Optional[str] = None,
    ) -> None:
        if self.status != ContributionStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 Failed",
                field="status",
            )
        self.status = ContributionStatus.FAILED
        self.cancel_date = _ensure_utc(cancel_date) or datetime.now(timezone.utc)
        self.cancel_reason = cancel_reason
        if order_reference:
            self.order_reference = order_reference
        self.updated_at = datetime.now(timezone.utc)

    def apply_refund(self, refund_id: str, *, refunded_total: Decimal, paid_total: Decimal) -> None:
        """记录退款：追加退款号，全额退款时状态变为 Refunded"""
        self.add_trxn_ids(refund_id)
        paid = paid_total if paid_total > 0 else self.total_amount
        if refunded_total >= paid:
            self.status = ContributionStatus.REFUNDED
            self.cancel_date = datetime.now(timezone.utc)
        self.updated_at = datetime.now(timezone.utc)


@dataclass
class ContributionRecur:
    """
    定期捐款 - 对应一个 Stripe subscription

    processor_id 保存 Stripe subscription id。
    """

    id: Optional[int]
    amount: Decimal
    currency: str
    frequency_unit: str = "month"
    frequency_interval: int = 1
    status: ContributionStatus = ContributionStatus.PENDING
    processor_id: Optional[str] = None
    payment_processor_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    cancel_date: Optional[datetime] = None
    is_test: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.currency:
            self.currency = self.currency.upper()
        self.start_date = _ensure_utc(self.start_date)
        self.end_date = _ensure_utc(self.end_date)
        self.cancel_date = _ensure_utc(self.cancel_date)

    @property
    def frequency_key(self) -> str:
        """币种+周期键，与订阅条目的分组键一致"""
        return f"{self.currency.lower()}_{self.frequency_unit}_{self.frequency_interval}"

    def cancel(self, cancel_date: Optional[datetime] = None) -> None:
        self.status = ContributionStatus.CANCELLED
        self.cancel_date = _ensure_utc(cancel_date) or datetime.now(timezone.utc)
        self.updated_at = datetime.now(timezone.utc)

    def mark_completed(self) -> None:
        self.status = ContributionStatus.COMPLETED
        self.updated_at = datetime.now(timezone.utc)

    def change_amount(self, amount: Decimal) -> bool:
        """更新模板金额，返回是否发生变化"""
        if amount == self.amount:
            return False
        self.amount = amount
        self.updated_at = datetime.now(timezone.utc)
        return True
