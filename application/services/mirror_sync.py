"""
订单镜像同步

订单事务提交之后再写镜像；镜像失败只记日志，订单状态以 orders 表为准。
"""
from __future__ import annotations

from typing import Optional, Union

from application.ports.order_mirror import OrderMirror, OrderMirrorRecord
from core.logging_config import get_logger
from domain.order.entity import Order, TrademarkOrder


logger = get_logger(__name__)


class MirrorSync:
    def __init__(self, mirror: Optional[OrderMirror]):
        self._mirror = mirror

    @property
    def enabled(self) -> bool:
        return self._mirror is not None

    async def publish(self, order: Union[Order, TrademarkOrder]) -> None:
        if self._mirror is None:
            return
        record = OrderMirrorRecord(
            order_id=order.order_id,
            paid=order.is_paid,
            amount=order.paid_amount if order.paid_amount is not None else order.expected_amount,
            currency=order.currency,
            payment_reference=order.payment_data.transaction_ref,
            paid_at=order.paid_at,
            failed_at=order.failed_at,
        )
        try:
            await self._mirror.upsert(record)
        except Exception as exc:
            logger.error(
                "order_mirror_sync_failed",
                order_id=order.order_id,
                error=str(exc),
                exc_info=True,
            )
