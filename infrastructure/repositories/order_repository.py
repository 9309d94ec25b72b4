"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import DuplicateOrderException
from domain.order.entity import (
    CustomerData,
    Order,
    OrderItem,
    OrderStatus,
    PaymentData,
    PaymentMethod,
    TrademarkData,
    TrademarkOrder,
    TrademarkStatus,
)
from domain.order.repository import OrderRepository, TrademarkOrderRepository
from domain.pricing.trademark import PricingSnapshot
from infrastructure.models.order import OrderModel, TrademarkOrderModel


logger = get_logger(__name__)


def _decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _column_value(value: Any) -> Any:
    """把领域值对象转换为可落库的列值"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (PaymentData, CustomerData, TrademarkData, PricingSnapshot)):
        return value.to_dict()
    if isinstance(value, list) and value and isinstance(value[0], OrderItem):
        return [item.to_dict() for item in value]
    return value


# 允许通过 update_by_order_id 修改的字段（实体字段名 -> 列名）
_ORDER_UPDATABLE = {
    "status": "status",
    "paid_amount": "paid_amount",
    "paid_at": "paid_at",
    "failed_at": "failed_at",
    "payment_data": "payment_data",
    "customer": "customer_data",
    "expires_at": "expires_at",
}
_TRADEMARK_UPDATABLE = {
    "status": "status",
    "paid_amount": "paid_amount",
    "paid_at": "paid_at",
    "failed_at": "failed_at",
    "payment_data": "payment_data",
}


def _apply_fields(model, mapping: dict[str, str], fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(mapping)
    if unknown:
        # expected_amount / pricing 等字段创建后不可修改
        raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    for name, value in fields.items():
        setattr(model, mapping[name], _column_value(value))


class SQLAlchemyOrderRepository(OrderRepository):
    """普通订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_id=model.order_id,
            status=OrderStatus(model.status),
            items=[OrderItem.from_dict(i) for i in (model.items or [])],
            subtotal=_decimal(model.subtotal),
            vat=_decimal(model.vat),
            total=_decimal(model.total),
            expected_amount=_decimal(model.expected_amount),
            currency=model.currency,
            customer=CustomerData.from_dict(model.customer_data),
            payment_method=PaymentMethod(model.payment_method),
            payment_data=PaymentData.from_dict(model.payment_data),
            paid_amount=_decimal(model.paid_amount),
            user_id=model.user_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            failed_at=model.failed_at,
            expires_at=model.expires_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            order_id=entity.order_id,
            user_id=entity.user_id,
            status=entity.status.value,
            items=[i.to_dict() for i in entity.items],
            subtotal=entity.subtotal,
            vat=entity.vat,
            total=entity.total,
            expected_amount=entity.expected_amount,
            paid_amount=entity.paid_amount,
            currency=entity.currency,
            customer_data=entity.customer.to_dict(),
            payment_method=entity.payment_method.value,
            payment_data=entity.payment_data.to_dict(),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            paid_at=entity.paid_at,
            failed_at=entity.failed_at,
            expires_at=entity.expires_at,
        )

    async def _get_model(self, order_id: str) -> Optional[OrderModel]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.order_id == order_id))
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        """创建订单"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
            logger.info(
                "order_created",
                order_id=db_order.order_id,
                total=str(db_order.total),
                currency=db_order.currency,
                payment_method=db_order.payment_method,
            )
            return self._to_entity(db_order)
        except IntegrityError as e:
            await self.session.rollback()
            if "order_id" in str(e).lower():
                logger.warning("order_create_conflict", order_id=order.order_id)
                raise DuplicateOrderException(order.order_id)
            raise

    async def get_by_id(self, id: int) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        db_order = await self._get_model(order_id)
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        """更新订单（只写可变字段，金额快照保持不变）"""
        db_order = await self._get_model(order.order_id)
        if not db_order:
            raise ValueError(f"Order {order.order_id} not found")

        db_order.status = order.status.value
        db_order.paid_amount = order.paid_amount
        db_order.paid_at = order.paid_at
        db_order.failed_at = order.failed_at
        db_order.payment_data = order.payment_data.to_dict()
        db_order.customer_data = order.customer.to_dict()
        db_order.updated_at = order.updated_at

        await self.session.flush()
        await self.session.refresh(db_order)

        logger.info("order_updated", order_id=db_order.order_id, status=db_order.status)
        return self._to_entity(db_order)

    async def update_by_order_id(self, order_id: str, **fields: Any) -> Optional[Order]:
        db_order = await self._get_model(order_id)
        if not db_order:
            return None
        _apply_fields(db_order, _ORDER_UPDATABLE, fields)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_fields_updated", order_id=order_id, fields=sorted(fields))
        return self._to_entity(db_order)

    async def delete_stale(self, statuses: Iterable[OrderStatus], before: datetime) -> int:
        values = [OrderStatus(s).value for s in statuses]
        result = await self.session.execute(
            delete(OrderModel).where(
                OrderModel.status.in_(values),
                OrderModel.expires_at.is_not(None),
                OrderModel.expires_at < before,
            )
        )
        deleted = result.rowcount or 0
        logger.info("stale_orders_deleted", count=deleted, statuses=values, before=before.isoformat())
        return deleted


class SQLAlchemyTrademarkOrderRepository(TrademarkOrderRepository):
    """商标订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TrademarkOrderModel) -> TrademarkOrder:
        return TrademarkOrder(
            id=model.id,
            order_id=model.order_id,
            status=TrademarkStatus(model.status),
            customer=CustomerData.from_dict(model.customer_data),
            trademark=TrademarkData.from_dict(model.trademark_data or {}),
            pricing=PricingSnapshot.from_dict(model.pricing),
            payment_data=PaymentData.from_dict(model.payment_data),
            paid_amount=_decimal(model.paid_amount),
            user_id=model.user_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            failed_at=model.failed_at,
        )

    def _to_model(self, entity: TrademarkOrder) -> TrademarkOrderModel:
        return TrademarkOrderModel(
            id=entity.id,
            order_id=entity.order_id,
            user_id=entity.user_id,
            status=entity.status.value,
            customer_data=entity.customer.to_dict(),
            trademark_data=entity.trademark.to_dict(),
            pricing=entity.pricing.to_dict(),
            paid_amount=entity.paid_amount,
            payment_data=entity.payment_data.to_dict(),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            paid_at=entity.paid_at,
            failed_at=entity.failed_at,
        )

    async def _get_model(self, order_id: str) -> Optional[TrademarkOrderModel]:
        result = await self.session.execute(
            select(TrademarkOrderModel).where(TrademarkOrderModel.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def create(self, order: TrademarkOrder) -> TrademarkOrder:
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
            logger.info(
                "trademark_order_created",
                order_id=db_order.order_id,
                total=str(order.pricing.total),
            )
            return self._to_entity(db_order)
        except IntegrityError as e:
            await self.session.rollback()
            if "order_id" in str(e).lower():
                logger.warning("trademark_order_create_conflict", order_id=order.order_id)
                raise DuplicateOrderException(order.order_id)
            raise

    async def get_by_id(self, id: int) -> Optional[TrademarkOrder]:
        result = await self.session.execute(select(TrademarkOrderModel).where(TrademarkOrderModel.id == id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_order_id(self, order_id: str) -> Optional[TrademarkOrder]:
        db_order = await self._get_model(order_id)
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: TrademarkOrder) -> TrademarkOrder:
        db_order = await self._get_model(order.order_id)
        if not db_order:
            raise ValueError(f"Trademark order {order.order_id} not found")

        db_order.status = order.status.value
        db_order.paid_amount = order.paid_amount
        db_order.paid_at = order.paid_at
        db_order.failed_at = order.failed_at
        db_order.payment_data = order.payment_data.to_dict()
        db_order.updated_at = order.updated_at

        await self.session.flush()
        await self.session.refresh(db_order)

        logger.info("trademark_order_updated", order_id=db_order.order_id, status=db_order.status)
        return self._to_entity(db_order)

    async def update_by_order_id(self, order_id: str, **fields: Any) -> Optional[TrademarkOrder]:
        db_order = await self._get_model(order_id)
        if not db_order:
            return None
        _apply_fields(db_order, _TRADEMARK_UPDATABLE, fields)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("trademark_order_fields_updated", order_id=order_id, fields=sorted(fields))
        return self._to_entity(db_order)

    async def delete_stale(self, statuses: Iterable[TrademarkStatus], before: datetime) -> int:
        values = [TrademarkStatus(s).value for s in statuses]
        result = await self.session.execute(
            delete(TrademarkOrderModel).where(
                TrademarkOrderModel.status.in_(values),
                TrademarkOrderModel.created_at < before,
            )
        )
        deleted = result.rowcount or 0
        logger.info("stale_trademark_orders_deleted", count=deleted, statuses=values)
        return deleted
