"""
捐款仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.contribution.entity import (
    Contribution,
    ContributionRecur,
    ContributionStatus,
    FinancialTransaction,
)
from domain.contribution.repository import ContributionRecurRepository, ContributionRepository
from infrastructure.models.contribution import (
    ContributionModel,
    ContributionRecurModel,
    FinancialTrxnModel,
)


logger = get_logger(__name__)


def _decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLAlchemyContributionRepository(ContributionRepository):
    """捐款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ContributionModel) -> Contribution:
        """将数据库模型转换为领域实体"""
        return Contribution(
            id=model.id,
            total_amount=_decimal(model.total_amount),
            currency=model.currency,
            status=ContributionStatus(model.status),
            contribution_recur_id=model.contribution_recur_id,
            invoice_id=model.invoice_id,
            trxn_id=model.trxn_id,
            order_reference=model.order_reference,
            fee_amount=_decimal(model.fee_amount) or Decimal("0"),
            net_amount=_decimal(model.net_amount),
            receive_date=model.receive_date,
            cancel_date=model.cancel_date,
            cancel_reason=model.cancel_reason,
            is_test=bool(model.is_test),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Contribution) -> ContributionModel:
        """将领域实体转换为数据库模型"""
        return ContributionModel(
            id=entity.id,
            contribution_recur_id=entity.contribution_recur_id,
            invoice_id=entity.invoice_id,
            trxn_id=entity.trxn_id,
            order_reference=entity.order_reference,
            total_amount=entity.total_amount,
            fee_amount=entity.fee_amount,
            net_amount=entity.net_amount,
            currency=entity.currency,
            status=entity.status.value,
            receive_date=entity.receive_date,
            cancel_date=entity.cancel_date,
            cancel_reason=entity.cancel_reason,
            is_test=entity.is_test,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    def _payment_to_entity(self, model: FinancialTrxnModel) -> FinancialTransaction:
        return FinancialTransaction(
            id=model.id,
            contribution_id=model.contribution_id,
            trxn_id=model.trxn_id,
            total_amount=_decimal(model.total_amount),
            status=ContributionStatus(model.status),
            fee_amount=_decimal(model.fee_amount) or Decimal("0"),
            order_reference=model.order_reference,
            trxn_date=model.trxn_date,
            trxn_result_code=model.trxn_result_code,
            available_on=model.available_on,
            exchange_rate=_decimal(model.exchange_rate),
            charge_amount=_decimal(model.charge_amount),
            charge_currency=model.charge_currency,
            payout_amount=_decimal(model.payout_amount),
            payout_currency=model.payout_currency,
            created_at=model.created_at,
        )

    async def _first(self, query) -> Optional[Contribution]:
        result = await self.session.execute(query.order_by(ContributionModel.id.desc()).limit(1))
        db_contribution = result.scalars().first()
        return self._to_entity(db_contribution) if db_contribution else None

    async def create(self, contribution: Contribution) -> Contribution:
        """创建捐款记录"""
        db_contribution = self._to_model(contribution)
        self.session.add(db_contribution)
        await self.session.flush()
        await self.session.refresh(db_contribution)
        logger.info(
            "contribution_created",
            contribution_id=db_contribution.id,
            recur_id=db_contribution.contribution_recur_id,
            trxn_id=db_contribution.trxn_id,
        )
        return self._to_entity(db_contribution)

    async def get_by_id(self, contribution_id: int) -> Optional[Contribution]:
        """根据ID获取捐款，覆盖会话中的缓存对象以读取最新提交的状态"""
        result = await self.session.execute(
            select(ContributionModel)
            .where(ContributionModel.id == contribution_id)
            .execution_options(populate_existing=True)
        )
        db_contribution = result.scalar_one_or_none()
        return self._to_entity(db_contribution) if db_contribution else None

    async def get_by_invoice_id(self, invoice_id: str) -> Optional[Contribution]:
        return await self._first(select(ContributionModel).where(ContributionModel.invoice_id == invoice_id))

    async def find_by_trxn_id(self, ref: str, *, exact: bool = False) -> Optional[Contribution]:
        """根据交易号查找捐款（trxn_id 为逗号分隔列表）"""
        column = ContributionModel.trxn_id
        if exact:
            return await self._first(select(ContributionModel).where(column == ref))
        escaped = _escape_like(ref)
        return await self._first(
            select(ContributionModel).where(
                or_(
                    column == ref,
                    column.like(f"{escaped},%", escape="\\"),
                    column.like(f"%,{escaped}", escape="\\"),
                    column.like(f"%,{escaped},%", escape="\\"),
                )
            )
        )

    async def find_by_order_reference(self, ref: str) -> Optional[Contribution]:
        return await self._first(select(ContributionModel).where(ContributionModel.order_reference == ref))

    async def update(self, contribution: Contribution) -> Contribution:
        """更新捐款记录"""
        result = await self.session.execute(
            select(ContributionModel).where(ContributionModel.id == contribution.id)
        )
        db_contribution = result.scalar_one_or_none()

        if not db_contribution:
            raise ValueError(f"Contribution with id {contribution.id} not found")

        # 更新字段
        db_contribution.trxn_id = contribution.trxn_id
        db_contribution.order_reference = contribution.order_reference
        db_contribution.status = contribution.status.value
        db_contribution.total_amount = contribution.total_amount
        db_contribution.fee_amount = contribution.fee_amount
        db_contribution.net_amount = contribution.net_amount
        db_contribution.receive_date = contribution.receive_date
        db_contribution.cancel_date = contribution.cancel_date
        db_contribution.cancel_reason = contribution.cancel_reason

        await self.session.flush()
        await self.session.refresh(db_contribution)

        logger.info(
            "contribution_updated",
            contribution_id=db_contribution.id,
            status=db_contribution.status,
            trxn_id=db_contribution.trxn_id,
        )
        return self._to_entity(db_contribution)

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
        """以定期捐款为模板创建下一笔 Pending 捐款"""
        contribution = Contribution(
            id=None,
            total_amount=total_amount,
            currency=currency or recur.currency,
            status=ContributionStatus.PENDING,
            contribution_recur_id=recur.id,
            order_reference=order_reference,
            fee_amount=fee_amount,
            receive_date=receive_date,
            is_test=recur.is_test,
        )
        contribution.add_trxn_ids(*trxn_ids)
        return await self.create(contribution)

    async def list_payments(self, contribution_id: int) -> List[FinancialTransaction]:
        result = await self.session.execute(
            select(FinancialTrxnModel)
            .where(FinancialTrxnModel.contribution_id == contribution_id)
            .order_by(FinancialTrxnModel.id)
        )
        return [self._payment_to_entity(p) for p in result.scalars().all()]

    async def get_payment_by_trxn_id(
        self,
        trxn_id: str,
        status: Optional[ContributionStatus] = None,
    ) -> Optional[FinancialTransaction]:
        query = select(FinancialTrxnModel).where(FinancialTrxnModel.trxn_id == trxn_id)
        if status:
            query = query.where(FinancialTrxnModel.status == status.value)
        result = await self.session.execute(query.order_by(FinancialTrxnModel.id.desc()).limit(1))
        db_payment = result.scalars().first()
        return self._payment_to_entity(db_payment) if db_payment else None

    async def add_payment(self, payment: FinancialTransaction) -> FinancialTransaction:
        """追加支付流水"""
        db_payment = FinancialTrxnModel(
            contribution_id=payment.contribution_id,
            trxn_id=payment.trxn_id,
            order_reference=payment.order_reference,
            total_amount=payment.total_amount,
            fee_amount=payment.fee_amount,
            status=payment.status.value,
            trxn_date=payment.trxn_date,
            trxn_result_code=payment.trxn_result_code,
            available_on=payment.available_on,
            exchange_rate=payment.exchange_rate,
            charge_amount=payment.charge_amount,
            charge_currency=payment.charge_currency,
            payout_amount=payment.payout_amount,
            payout_currency=payment.payout_currency,
        )
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_recorded",
            payment_id=db_payment.id,
            contribution_id=db_payment.contribution_id,
            trxn_id=db_payment.trxn_id,
            amount=str(db_payment.total_amount),
        )
        return self._payment_to_entity(db_payment)

    async def update_payment(self, payment: FinancialTransaction) -> FinancialTransaction:
        result = await self.session.execute(
            select(FinancialTrxnModel).where(FinancialTrxnModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise ValueError(f"Payment with id {payment.id} not found")

        db_payment.fee_amount = payment.fee_amount
        db_payment.available_on = payment.available_on
        db_payment.exchange_rate = payment.exchange_rate
        db_payment.charge_amount = payment.charge_amount
        db_payment.charge_currency = payment.charge_currency
        db_payment.payout_amount = payment.payout_amount
        db_payment.payout_currency = payment.payout_currency

        await self.session.flush()
        await self.session.refresh(db_payment)
        return self._payment_to_entity(db_payment)


class SQLAlchemyContributionRecurRepository(ContributionRecurRepository):
    """定期捐款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ContributionRecurModel) -> ContributionRecur:
        return ContributionRecur(
            id=model.id,
            amount=_decimal(model.amount),
            currency=model.currency,
            frequency_unit=model.frequency_unit,
            frequency_interval=model.frequency_interval,
            status=ContributionStatus(model.status),
            processor_id=model.processor_id,
            payment_processor_id=model.payment_processor_id,
            start_date=model.start_date,
            end_date=model.end_date,
            cancel_date=model.cancel_date,
            is_test=bool(model.is_test),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: ContributionRecur) -> ContributionRecurModel:
        return ContributionRecurModel(
            id=entity.id,
            amount=entity.amount,
            currency=entity.currency,
            frequency_unit=entity.frequency_unit,
            frequency_interval=entity.frequency_interval,
            status=entity.status.value,
            processor_id=entity.processor_id,
            payment_processor_id=entity.payment_processor_id,
            start_date=entity.start_date,
            end_date=entity.end_date,
            cancel_date=entity.cancel_date,
            is_test=entity.is_test,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, recur: ContributionRecur) -> ContributionRecur:
        db_recur = self._to_model(recur)
        self.session.add(db_recur)
        await self.session.flush()
        await self.session.refresh(db_recur)
        logger.info("recur_created", recur_id=db_recur.id, processor_id=db_recur.processor_id)
        return self._to_entity(db_recur)

    async def get_by_id(self, recur_id: int) -> Optional[ContributionRecur]:
        result = await self.session.execute(
            select(ContributionRecurModel)
            .where(ContributionRecurModel.id == recur_id)
            .execution_options(populate_existing=True)
        )
        db_recur = result.scalar_one_or_none()
        return self._to_entity(db_recur) if db_recur else None

    async def get_by_processor_id(self, subscription_id: str) -> Optional[ContributionRecur]:
        result = await self.session.execute(
            select(ContributionRecurModel)
            .where(ContributionRecurModel.processor_id == subscription_id)
            .order_by(ContributionRecurModel.id.desc())
            .limit(1)
        )
        db_recur = result.scalars().first()
        return self._to_entity(db_recur) if db_recur else None

    async def update(self, recur: ContributionRecur) -> ContributionRecur:
        result = await self.session.execute(
            select(ContributionRecurModel).where(ContributionRecurModel.id == recur.id)
        )
        db_recur = result.scalar_one_or_none()

        if not db_recur:
            raise ValueError(f"ContributionRecur with id {recur.id} not found")

        db_recur.processor_id = recur.processor_id
        db_recur.amount = recur.amount
        db_recur.currency = recur.currency
        db_recur.status = recur.status.value
        db_recur.end_date = recur.end_date
        db_recur.cancel_date = recur.cancel_date

        await self.session.flush()
        await self.session.refresh(db_recur)

        logger.info("recur_updated", recur_id=db_recur.id, status=db_recur.status, amount=str(db_recur.amount))
        return self._to_entity(db_recur)
