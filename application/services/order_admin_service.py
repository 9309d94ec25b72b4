"""
订单管理服务 - 管理员状态变更与网关查询/退款
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.orders import AdminStatusUpdateResponse, GatewayOperationResponse
from application.dtos.payments import LegacyTransactionResult
from application.ports.payment_gateway import LegacyGateway
from application.services.mirror_sync import MirrorSync
from application.services.order_events import OrderEventPublisher
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    GatewayNotConfiguredException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus, PaymentMethod, TrademarkStatus


logger = get_logger(__name__)


def _parse_status(enum_cls, value: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise DomainValidationException(
            f"Unknown status: {value}",
            field="status",
            details={"allowed": [s.value for s in enum_cls]},
        )


def _operation_response(result: LegacyTransactionResult) -> GatewayOperationResponse:
    return GatewayOperationResponse(
        order_id=result.order_id,
        method=result.method,
        success=result.success,
        status_code=result.status_code,
        status_message=result.status_message,
        transaction_ref=result.transaction_ref,
    )


class OrderAdminService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        legacy_gateway: Optional[LegacyGateway] = None,
        mirror: Optional[MirrorSync] = None,
        events: Optional[OrderEventPublisher] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._legacy = legacy_gateway
        self._mirror = mirror or MirrorSync(None)
        self._events = events or OrderEventPublisher()

    async def update_order_status(self, order_id: str, status: str) -> AdminStatusUpdateResponse:
        """按转换表变更普通订单状态；重复设置当前状态返回 changed=False"""
        target = _parse_status(OrderStatus, status)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            previous = order.status
            changed = order.transition_to(target)
            if changed:
                if target == OrderStatus.PAID:
                    order.paid_at = order.updated_at
                elif target == OrderStatus.CANCELLED:
                    order.failed_at = order.updated_at
                events = order.pull_events()
                order = await uow.order_repository.update(order)

        if changed:
            logger.info(
                "admin_order_status_changed",
                order_id=order_id,
                previous=previous.value,
                status=target.value,
            )
            await self._events.publish(events)
            await self._mirror.publish(order)
        return AdminStatusUpdateResponse(
            order_id=order_id,
            previous_status=previous.value,
            status=order.status.value,
            changed=changed,
        )

    async def update_trademark_status(self, order_id: str, status: str) -> AdminStatusUpdateResponse:
        target = _parse_status(TrademarkStatus, status)
        async with self._uow_factory() as uow:
            order = await uow.trademark_order_repository.get_by_order_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            previous = order.status
            changed = order.transition_to(target)
            if changed:
                events = order.pull_events()
                order = await uow.trademark_order_repository.update(order)

        if changed:
            logger.info(
                "admin_trademark_status_changed",
                order_id=order_id,
                previous=previous.value,
                status=target.value,
            )
            await self._events.publish(events)
            await self._mirror.publish(order)
        return AdminStatusUpdateResponse(
            order_id=order_id,
            previous_status=previous.value,
            status=order.status.value,
            changed=changed,
        )

    async def query_gateway_status(self, order_id: str) -> GatewayOperationResponse:
        """向旧网关查询交易状态（IPCGetTxnStatus），只读不改订单"""
        if self._legacy is None:
            raise GatewayNotConfiguredException("mypos")
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        result = await self._legacy.get_transaction_status(order_id)
        logger.info(
            "legacy_gateway_status_queried",
            order_id=order_id,
            success=result.success,
            status_code=result.status_code,
            order_status=order.status.value,
        )
        return _operation_response(result)

    async def refund(self, order_id: str, amount: Optional[Decimal] = None) -> GatewayOperationResponse:
        if self._legacy is None:
            raise GatewayNotConfiguredException("mypos")
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.payment_method != PaymentMethod.MYPOS_EMBEDDED:
            raise DomainValidationException(
                "Refunds are only supported for mypos_embedded orders",
                field="paymentMethod",
            )
        if not order.is_paid or order.paid_amount is None:
            raise DomainValidationException(f"Order {order_id} is not paid", field="status")
        transaction_ref = order.payment_data.transaction_ref
        if not transaction_ref:
            raise DomainValidationException(f"Order {order_id} has no transaction reference", field="transactionRef")

        refund_amount = amount if amount is not None else order.paid_amount
        if refund_amount > order.paid_amount:
            raise DomainValidationException(
                "Refund amount exceeds paid amount",
                field="amount",
                details={"paid_amount": str(order.paid_amount), "requested": str(refund_amount)},
            )

        result = await self._legacy.refund(order_id, transaction_ref, refund_amount, order.currency)
        if not result.success:
            logger.warning(
                "legacy_refund_declined",
                order_id=order_id,
                status_code=result.status_code,
                status_message=result.status_message,
            )
        return _operation_response(result)
