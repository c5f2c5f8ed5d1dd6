"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.contribution_repository import (
    SQLAlchemyContributionRecurRepository,
    SQLAlchemyContributionRepository,
)
from infrastructure.repositories.customer_repository import SQLAlchemyStripeCustomerRepository
from infrastructure.repositories.webhook_repository import SQLAlchemyWebhookQueueRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """一个会话对应一个 UoW；会话按需自动开启事务，commit 后可继续使用"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        session = self._session_factory()
        self.session = session
        self.contribution_repository = SQLAlchemyContributionRepository(session)
        self.recur_repository = SQLAlchemyContributionRecurRepository(session)
        self.webhook_repository = SQLAlchemyWebhookQueueRepository(session)
        self.customer_repository = SQLAlchemyStripeCustomerRepository(session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self.session is not None:
                await self.session.close()
                self.session = None

    async def commit(self) -> None:
        if self._readonly or self.session is None:
            return
        if self.session.in_transaction():
            await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
