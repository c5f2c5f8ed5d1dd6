"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.contribution.repository import ContributionRecurRepository, ContributionRepository
from domain.customer.repository import StripeCustomerRepository
from domain.webhook.repository import WebhookQueueRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    处理器在持锁期间显式 commit，使下一个持锁者能读到已提交的数据；
    退出上下文时再提交一次剩余的变更。
    """

    contribution_repository: ContributionRepository
    recur_repository: ContributionRecurRepository
    webhook_repository: WebhookQueueRepository
    customer_repository: StripeCustomerRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self.contribution_repository = None  # type: ignore[assignment]
        self.recur_repository = None  # type: ignore[assignment]
        self.webhook_repository = None  # type: ignore[assignment]
        self.customer_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._readonly:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
