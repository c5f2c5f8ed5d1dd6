"""
捐款仓储接口 - 定义捐款、支付流水与定期捐款数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from .entity import (
    Contribution,
    ContributionRecur,
    ContributionStatus,
    FinancialTransaction,
)


class ContributionRepository(ABC):
    """捐款仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, contribution: Contribution) -> Contribution:
        """创建捐款记录"""
        pass

    @abstractmethod
    async def get_by_id(self, contribution_id: int) -> Optional[Contribution]:
        """根据ID获取捐款（总是读取数据库最新状态）"""
        pass

    @abstractmethod
    async def get_by_invoice_id(self, invoice_id: str) -> Optional[Contribution]:
        """根据本地发票号获取捐款（checkout 的 client_reference_id）"""
        pass

    @abstractmethod
    async def find_by_trxn_id(self, ref: str, *, exact: bool = False) -> Optional[Contribution]:
        """
        根据交易号查找捐款

        Args:
            ref: 网关标识（charge/payment intent/invoice/subscription id）
            exact: 为 True 时要求 trxn_id 完全等于 ref，否则匹配逗号列表中的任一项
        """
        pass

    @abstractmethod
    async def find_by_order_reference(self, ref: str) -> Optional[Contribution]:
        """根据订单引用查找捐款"""
        pass

    @abstractmethod
    async def update(self, contribution: Contribution) -> Contribution:
        """更新捐款记录"""
        pass

    @abstractmethod
    async def create_next_payment(
        self,
        recur: ContributionRecur,
        *,
        total_amount: Decimal,
        currency: Optional[str] = None,
        receive_date: Optional[datetime] = None,
        order_reference: Optional[str] = None,
        trxn_ids: Sequence[Optional[str]] = (),
        fee_amount: Decimal = Decimal("0"),
    ) -> Contribution:
        """为定期捐款创建下一笔待支付捐款（以定期捐款为模板）"""
        pass

    @abstractmethod
    async def list_payments(self, contribution_id: int) -> List[FinancialTransaction]:
        """获取捐款下的全部支付流水"""
        pass

    @abstractmethod
    async def get_payment_by_trxn_id(
        self,
        trxn_id: str,
        status: Optional[ContributionStatus] = None,
    ) -> Optional[FinancialTransaction]:
        """根据交易号获取支付流水"""
        pass

    @abstractmethod
    async def add_payment(self, payment: FinancialTransaction) -> FinancialTransaction:
        """追加支付流水"""
        pass

    @abstractmethod
    async def update_payment(self, payment: FinancialTransaction) -> FinancialTransaction:
        """更新支付流水"""
        pass


class ContributionRecurRepository(ABC):
    """定期捐款仓储抽象接口"""

    @abstractmethod
    async def create(self, recur: ContributionRecur) -> ContributionRecur:
        pass

    @abstractmethod
    async def get_by_id(self, recur_id: int) -> Optional[ContributionRecur]:
        pass

    @abstractmethod
    async def get_by_processor_id(self, subscription_id: str) -> Optional[ContributionRecur]:
        """根据 Stripe subscription id 获取定期捐款"""
        pass

    @abstractmethod
    async def update(self, recur: ContributionRecur) -> ContributionRecur:
        pass
