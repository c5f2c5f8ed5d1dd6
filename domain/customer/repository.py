"""
Stripe 客户仓储接口 - 记录 Stripe customer 与支付处理器、联系人的对应关系
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class StripeCustomer:
    id: Optional[int]
    customer_id: str
    processor_id: int
    contact_id: Optional[int] = None


class StripeCustomerRepository(ABC):

    @abstractmethod
    async def create(self, customer: StripeCustomer) -> StripeCustomer:
        pass

    @abstractmethod
    async def list_processor_ids(self, customer_id: str) -> List[int]:
        """获取该 Stripe customer 所属的支付处理器ID列表"""
        pass
