"""create_webhook_reconciliation_tables

Revision ID: 3b8e1c4d2a71
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b8e1c4d2a71'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # contribution_recurs
    op.create_table(
        'contribution_recurs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('processor_id', sa.String(length=255), nullable=True, comment='Stripe subscription ID'),
        sa.Column('payment_processor_id', sa.Integer(), nullable=True, comment='支付处理器ID'),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False, comment='每期金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('frequency_unit', sa.String(length=16), nullable=False, server_default='month', comment='周期单位: day/week/month/year'),
        sa.Column('frequency_interval', sa.Integer(), nullable=False, server_default='1', comment='周期间隔'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Pending', comment='定期捐款状态'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True, comment='开始时间'),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True, comment='结束时间（分期付款）'),
        sa.Column('cancel_date', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('is_test', sa.Boolean(), nullable=False, server_default='false', comment='是否测试数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_contribution_recurs_id', 'contribution_recurs', ['id'], unique=False)
    op.create_index('ix_contribution_recurs_processor_id', 'contribution_recurs', ['processor_id'], unique=False)
    op.create_index('ix_contribution_recurs_status', 'contribution_recurs', ['status'], unique=False)

    # contributions
    op.create_table(
        'contributions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('contribution_recur_id', sa.Integer(), nullable=True, comment='关联的定期捐款ID'),
        sa.Column('invoice_id', sa.String(length=255), nullable=True, comment='本地发票号（checkout client_reference_id）'),
        sa.Column('trxn_id', sa.String(length=255), nullable=True, comment='网关交易号列表（逗号分隔）'),
        sa.Column('order_reference', sa.String(length=255), nullable=True, comment='订单引用（通常为 Stripe invoice id）'),
        sa.Column('total_amount', sa.Numeric(precision=20, scale=2), nullable=False, comment='捐款金额'),
        sa.Column('fee_amount', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0', comment='手续费'),
        sa.Column('net_amount', sa.Numeric(precision=20, scale=2), nullable=True, comment='净额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Pending', comment='捐款状态'),
        sa.Column('receive_date', sa.DateTime(timezone=True), nullable=True, comment='收款时间'),
        sa.Column('cancel_date', sa.DateTime(timezone=True), nullable=True, comment='取消/失败时间'),
        sa.Column('cancel_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('is_test', sa.Boolean(), nullable=False, server_default='false', comment='是否测试数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['contribution_recur_id'], ['contribution_recurs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id'),
    )
    op.create_index('ix_contributions_id', 'contributions', ['id'], unique=False)
    op.create_index('ix_contributions_contribution_recur_id', 'contributions', ['contribution_recur_id'], unique=False)
    op.create_index('ix_contributions_order_reference', 'contributions', ['order_reference'], unique=False)
    op.create_index('ix_contributions_status', 'contributions', ['status'], unique=False)
    op.create_index('ix_contributions_created_at', 'contributions', ['created_at'], unique=False)
    op.create_index('ix_contributions_trxn_id', 'contributions', ['trxn_id'], unique=False)
    op.create_index('ix_contributions_recur_status', 'contributions', ['contribution_recur_id', 'status'], unique=False)

    # financial_trxns
    op.create_table(
        'financial_trxns',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('contribution_id', sa.Integer(), nullable=False, comment='关联的捐款ID'),
        sa.Column('trxn_id', sa.String(length=255), nullable=False, comment='网关交易号（charge/invoice/refund id）'),
        sa.Column('order_reference', sa.String(length=255), nullable=True, comment='订单引用'),
        sa.Column('total_amount', sa.Numeric(precision=20, scale=2), nullable=False, comment='金额（退款为负）'),
        sa.Column('fee_amount', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0', comment='手续费'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Completed', comment='流水状态: Completed/Refunded'),
        sa.Column('trxn_date', sa.DateTime(timezone=True), nullable=True, comment='交易时间'),
        sa.Column('trxn_result_code', sa.String(length=255), nullable=True, comment='结果码（退款原因等）'),
        sa.Column('available_on', sa.DateTime(timezone=True), nullable=True, comment='资金可用时间'),
        sa.Column('exchange_rate', sa.Numeric(precision=20, scale=8), nullable=True, comment='汇率'),
        sa.Column('charge_amount', sa.Numeric(precision=20, scale=2), nullable=True, comment='收款金额（收款币种）'),
        sa.Column('charge_currency', sa.String(length=3), nullable=True, comment='收款币种'),
        sa.Column('payout_amount', sa.Numeric(precision=20, scale=2), nullable=True, comment='结算金额（结算币种）'),
        sa.Column('payout_currency', sa.String(length=3), nullable=True, comment='结算币种'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['contribution_id'], ['contributions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_financial_trxns_id', 'financial_trxns', ['id'], unique=False)
    op.create_index('ix_financial_trxns_contribution_id', 'financial_trxns', ['contribution_id'], unique=False)
    op.create_index('ix_financial_trxns_trxn_id', 'financial_trxns', ['trxn_id'], unique=False)
    op.create_index('ix_financial_trxns_trxn_status', 'financial_trxns', ['trxn_id', 'status'], unique=False)

    # paymentprocessor_webhooks
    op.create_table(
        'paymentprocessor_webhooks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('processor_id', sa.Integer(), nullable=False, comment='支付处理器ID'),
        sa.Column('event_id', sa.String(length=255), nullable=False, comment='网关事件ID'),
        sa.Column('trigger', sa.String(length=255), nullable=False, comment='事件类型'),
        sa.Column('identifier', sa.String(length=255), nullable=False, server_default='', comment='关联键 pi:ch:in:sub'),
        sa.Column('data', sa.JSON(), nullable=True, comment='原始事件数据'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='new', comment='状态: new/success/error'),
        sa.Column('message', sa.Text(), nullable=True, comment='处理结果消息'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='接收时间'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='处理时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('processor_id', 'event_id', name='uq_paymentprocessor_webhooks_event'),
    )
    op.create_index('ix_paymentprocessor_webhooks_id', 'paymentprocessor_webhooks', ['id'], unique=False)
    op.create_index('ix_paymentprocessor_webhooks_status', 'paymentprocessor_webhooks', ['status'], unique=False)
    op.create_index(
        'ix_paymentprocessor_webhooks_identifier',
        'paymentprocessor_webhooks',
        ['processor_id', 'identifier', 'processed_at'],
        unique=False,
    )
    op.create_index(
        'ix_paymentprocessor_webhooks_pending',
        'paymentprocessor_webhooks',
        ['status', 'processed_at', 'created_at'],
        unique=False,
    )

    # stripe_customers
    op.create_table(
        'stripe_customers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.String(length=255), nullable=False, comment='Stripe customer ID'),
        sa.Column('processor_id', sa.Integer(), nullable=False, comment='支付处理器ID'),
        sa.Column('contact_id', sa.Integer(), nullable=True, comment='联系人ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'processor_id', name='uq_stripe_customers_customer_processor'),
    )
    op.create_index('ix_stripe_customers_id', 'stripe_customers', ['id'], unique=False)
    op.create_index('ix_stripe_customers_customer_id', 'stripe_customers', ['customer_id'], unique=False)
    op.create_index('ix_stripe_customers_contact_id', 'stripe_customers', ['contact_id'], unique=False)


def downgrade() -> None:
    op.drop_table('stripe_customers')
    op.drop_table('paymentprocessor_webhooks')
    op.drop_table('financial_trxns')
    op.drop_table('contributions')
    op.drop_table('contribution_recurs')
