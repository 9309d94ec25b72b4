"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, JSON, Index
)
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderModel(Base):
    """
    普通订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, index=True, nullable=False, comment="业务订单号 ORD-...")
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")

    status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/paid/processing/finished/failed/fraud_attempt/cancelled"
    )

    # 订单明细（价目表价格）
    items = Column(JSON, nullable=False, default=list, comment="订单明细")

    # 金额信息（使用 Numeric 存储精确金额）
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False, comment="不含税金额")
    vat = Column(Numeric(precision=15, scale=2), nullable=False, comment="增值税")
    total = Column(Numeric(precision=15, scale=2), nullable=False, comment="含税合计")
    expected_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="应付金额（创建时固化）")
    paid_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="网关回报的实收金额")
    currency = Column(String(3), nullable=False, default="EUR", comment="货币代码 ISO-4217")

    customer_data = Column(JSON, nullable=True, comment="客户信息")
    payment_method = Column(String(32), nullable=False, comment="支付方式: mypos_embedded/stripe")
    payment_data = Column(JSON, nullable=True, comment="网关凭据: transactionRef/paymentIntentId/receiptUrl")

    # 时间戳
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="支付失败时间")
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="待支付订单过期时间")

    __table_args__ = (
        Index("ix_orders_status_expires", "status", "expires_at"),
        Index("ix_orders_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_id='{self.order_id}', "
            f"total={self.total}, status='{self.status}')>"
        )


class TrademarkOrderModel(Base):
    """商标申请订单数据库模型"""
    __tablename__ = "trademark_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, index=True, nullable=False, comment="业务订单号 TM-...")
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")
    status = Column(String(40), nullable=False, default="pending", index=True, comment="申请状态")

    customer_data = Column(JSON, nullable=False, comment="申请人信息")
    trademark_data = Column(JSON, nullable=False, comment="商标信息: markType/niceClasses/priorityClaims")
    pricing = Column(JSON, nullable=False, comment="价格快照（创建后不可修改）")
    paid_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="网关回报的实收金额")
    payment_data = Column(JSON, nullable=True, comment="网关凭据")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="取消/驳回时间")

    def __repr__(self):
        return f"<TrademarkOrderModel(id={self.id}, order_id='{self.order_id}', status='{self.status}')>"


class OrderDocumentModel(Base):
    """
    订单文档镜像

    对外展示用的派生视图，最终一致；业务判断只读 orders 表。
    """
    __tablename__ = "order_documents"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, index=True, nullable=False, comment="业务订单号")
    paid = Column(Boolean, nullable=False, default=False, comment="是否已支付")
    amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="金额")
    currency = Column(String(3), nullable=True, comment="货币代码")
    payment_reference = Column(String(200), nullable=True, comment="网关交易号")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="支付失败时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        comment="更新时间"
    )
