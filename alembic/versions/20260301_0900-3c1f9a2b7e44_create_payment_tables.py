"""create_payment_tables

Revision ID: 3c1f9a2b7e44
Revises:
Create Date: 2026-03-01 09:00:12.418203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7e44'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 普通订单
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='业务订单号 ORD-...'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending',
                  comment='订单状态: pending/paid/processing/finished/failed/fraud_attempt/cancelled'),
        sa.Column('items', sa.JSON(), nullable=False, comment='订单明细'),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False, comment='不含税金额'),
        sa.Column('vat', sa.Numeric(precision=15, scale=2), nullable=False, comment='增值税'),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False, comment='含税合计'),
        sa.Column('expected_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='应付金额（创建时固化）'),
        sa.Column('paid_amount', sa.Numeric(precision=15, scale=2), nullable=True, comment='网关回报的实收金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR', comment='货币代码 ISO-4217'),
        sa.Column('customer_data', sa.JSON(), nullable=True, comment='客户信息'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, comment='支付方式: mypos_embedded/stripe'),
        sa.Column('payment_data', sa.JSON(), nullable=True, comment='网关凭据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment='待支付订单过期时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='普通订单表，expected_amount 为对账唯一依据'
    )
    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_order_id', 'orders', ['order_id'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_status_expires', 'orders', ['status', 'expires_at'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)

    # 商标申请订单
    op.create_table(
        'trademark_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='业务订单号 TM-...'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=40), nullable=False, server_default='pending', comment='申请状态'),
        sa.Column('customer_data', sa.JSON(), nullable=False, comment='申请人信息'),
        sa.Column('trademark_data', sa.JSON(), nullable=False, comment='商标信息'),
        sa.Column('pricing', sa.JSON(), nullable=False, comment='价格快照（创建后不可修改）'),
        sa.Column('paid_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('payment_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True, comment='取消/驳回时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='商标申请订单表'
    )
    op.create_index('ix_trademark_orders_id', 'trademark_orders', ['id'], unique=False)
    op.create_index('ix_trademark_orders_order_id', 'trademark_orders', ['order_id'], unique=True)
    op.create_index('ix_trademark_orders_user_id', 'trademark_orders', ['user_id'], unique=False)
    op.create_index('ix_trademark_orders_status', 'trademark_orders', ['status'], unique=False)

    # 订单镜像（最终一致的派生视图）
    op.create_table(
        'order_documents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('payment_reference', sa.String(length=200), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        comment='订单文档镜像，业务判断只读 orders 表'
    )
    op.create_index('ix_order_documents_id', 'order_documents', ['id'], unique=False)
    op.create_index('ix_order_documents_order_id', 'order_documents', ['order_id'], unique=True)

    # Webhook 幂等账本
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False, comment='网关事件ID'),
        sa.Column('type', sa.String(length=100), nullable=False, comment='事件类型'),
        sa.Column('provider', sa.String(length=32), nullable=False, server_default='stripe'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, comment='过期时间（保留期后清理）'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', name='uq_webhook_events_event_id'),
        comment='Webhook 事件去重表'
    )
    op.create_index('ix_webhook_events_expires_at', 'webhook_events', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_webhook_events_expires_at', table_name='webhook_events')
    op.drop_table('webhook_events')

    op.drop_index('ix_order_documents_order_id', table_name='order_documents')
    op.drop_index('ix_order_documents_id', table_name='order_documents')
    op.drop_table('order_documents')

    op.drop_index('ix_trademark_orders_status', table_name='trademark_orders')
    op.drop_index('ix_trademark_orders_user_id', table_name='trademark_orders')
    op.drop_index('ix_trademark_orders_order_id', table_name='trademark_orders')
    op.drop_index('ix_trademark_orders_id', table_name='trademark_orders')
    op.drop_table('trademark_orders')

    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_status_expires', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_order_id', table_name='orders')
    op.drop_index('ix_orders_id', table_name='orders')
    op.drop_table('orders')
