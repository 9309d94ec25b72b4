"""
订单领域事件分发

聚合在状态转换时记录事件，服务在事务提交后取出并交给这里。
默认实现只写结构化日志；FraudSuspected 作为内部告警以 error 级别输出。
"""
from __future__ import annotations

from typing import Iterable

from core.logging_config import get_logger
from domain.order.events import (
    FraudSuspected,
    OrderEvent,
    OrderPaid,
    OrderPaymentFailed,
    OrderStatusChanged,
)


logger = get_logger(__name__)


class OrderEventPublisher:
    async def publish(self, events: Iterable[OrderEvent]) -> None:
        for event in events:
            self.dispatch(event)

    def dispatch(self, event: OrderEvent) -> None:
        if isinstance(event, FraudSuspected):
            logger.error(
                "fraud_suspected",
                order_id=event.order_id,
                event_id=event.event_id,
                expected_amount=str(event.expected_amount),
                received_amount=str(event.received_amount),
                currency=event.currency,
                alert="fraud_attempt",
            )
        elif isinstance(event, OrderPaid):
            logger.info(
                "order_paid_event",
                order_id=event.order_id,
                event_id=event.event_id,
                amount=str(event.amount),
                currency=event.currency,
                transaction_ref=event.transaction_ref,
            )
        elif isinstance(event, OrderPaymentFailed):
            logger.info("order_payment_failed_event", order_id=event.order_id, reason=event.reason)
        elif isinstance(event, OrderStatusChanged):
            logger.info(
                "order_status_changed",
                order_id=event.order_id,
                previous=event.previous,
                current=event.current,
            )
