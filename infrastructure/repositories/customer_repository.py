"""
Stripe 客户仓储实现
"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.customer.repository import StripeCustomer, StripeCustomerRepository
from infrastructure.models.customer import StripeCustomerModel


class SQLAlchemyStripeCustomerRepository(StripeCustomerRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, customer: StripeCustomer) -> StripeCustomer:
        db_customer = StripeCustomerModel(
            customer_id=customer.customer_id,
            processor_id=customer.processor_id,
            contact_id=customer.contact_id,
        )
        self.session.add(db_customer)
        await self.session.flush()
        await self.session.refresh(db_customer)
        return StripeCustomer(
            id=db_customer.id,
            customer_id=db_customer.customer_id,
            processor_id=db_customer.processor_id,
            contact_id=db_customer.contact_id,
        )

    async def list_processor_ids(self, customer_id: str) -> List[int]:
        result = await self.session.execute(
            select(StripeCustomerModel.processor_id).where(StripeCustomerModel.customer_id == customer_id)
        )
        return list(result.scalars().all())
