"""
订单文档镜像 - SQL 实现

镜像在订单事务提交后单独更新，失败只记录日志，不影响订单状态。
"""
from __future__ import annotations

from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from application.ports.order_mirror import OrderMirrorRecord
from core.logging_config import get_logger
from infrastructure.models.order import OrderDocumentModel


logger = get_logger(__name__)


class SQLAlchemyOrderMirror:
    """OrderMirror 端口的 SQL 实现，每次写入使用独立会话"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def upsert(self, record: OrderMirrorRecord) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(OrderDocumentModel).where(OrderDocumentModel.order_id == record.order_id)
                )
                doc = result.scalar_one_or_none()
                if doc is None:
                    doc = OrderDocumentModel(order_id=record.order_id)
                    session.add(doc)
                doc.paid = record.paid
                doc.amount = record.amount
                doc.currency = record.currency
                doc.payment_reference = record.payment_reference
                doc.paid_at = record.paid_at
                doc.failed_at = record.failed_at
        logger.info("order_mirror_updated", order_id=record.order_id, paid=record.paid)

    async def get(self, order_id: str) -> OrderMirrorRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderDocumentModel).where(OrderDocumentModel.order_id == order_id)
            )
            doc = result.scalar_one_or_none()
            if doc is None:
                return None
            return OrderMirrorRecord(
                order_id=doc.order_id,
                paid=doc.paid,
                amount=doc.amount,
                currency=doc.currency,
                payment_reference=doc.payment_reference,
                paid_at=doc.paid_at,
                failed_at=doc.failed_at,
            )
