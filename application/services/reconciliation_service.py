"""
支付回调对账服务

把网关回调转换为订单状态变更。应答（给网关看的传输层结果）与业务结果分开返回：
- 旧网关（myPOS IPC）无论业务结果如何一律应答 "OK"，否则网关会无限重投
- Checkout 网关（Stripe）签名失败返回 400，账本写入失败抛出让路由返回 5xx，其余 200
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Iterable, Optional, Union
from urllib.parse import parse_qsl

from application.dtos.payments import CheckoutSessionDetails, GatewayWebhookEvent
from application.ports.payment_gateway import CheckoutGateway, LegacyGateway
from application.services.mirror_sync import MirrorSync
from application.services.order_events import OrderEventPublisher
from core.logging_config import get_logger
from domain.common.exceptions import GatewayNotConfiguredException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus, TrademarkOrder, TrademarkStatus
from domain.pricing.validator import PriceValidator
from domain.webhook_event.repository import WebhookEventLedger
from shared.codes.payment_codes import (
    CHECKOUT_PAYMENT_STATUS_PAID,
    LEGACY_CALLBACK_METHODS,
    LEGACY_STATUS_SUCCESS,
    LEGACY_SUCCESS_METHODS,
)


logger = get_logger(__name__)

LEGACY_ACK = "OK"
LEGACY_REQUIRED_FIELDS = ("IPCmethod", "SID", "Amount", "Currency", "OrderID")
CHECKOUT_COMPLETED = "checkout.session.completed"


class WebhookOutcome(str, Enum):
    PAID = "paid"
    FAILED = "failed"
    FRAUD_ATTEMPT = "fraud_attempt"
    CANCELLED = "cancelled"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class WebhookDecision:
    """一次回调的处理结果：acknowledgement 给网关，其余字段描述业务变更"""
    acknowledgement: str
    outcome: WebhookOutcome
    order_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None


def ip_allowed(client_ip: Optional[str], allowlist: Optional[Iterable[str]]) -> bool:
    """allowlist 为空表示不限制；支持单个 IP 与 CIDR"""
    if not allowlist:
        return True
    if not client_ip:
        return False
    try:
        addr = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if addr in ipaddress.ip_network(entry.strip(), strict=False):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


def _parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


class ReconciliationService:
    """回调对账：验证 → 定位订单 → 金额比对 → 状态转换 → 镜像同步"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        validator: PriceValidator,
        *,
        legacy_gateway: Optional[LegacyGateway] = None,
        checkout_gateway: Optional[CheckoutGateway] = None,
        ledger: Optional[WebhookEventLedger] = None,
        mirror: Optional[MirrorSync] = None,
        legacy_allowed_ips: Optional[list[str]] = None,
        checkout_allowed_ips: Optional[list[str]] = None,
        events: Optional[OrderEventPublisher] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._validator = validator
        self._legacy = legacy_gateway
        self._checkout = checkout_gateway
        self._ledger = ledger
        self._mirror = mirror or MirrorSync(None)
        self._legacy_allowed_ips = legacy_allowed_ips
        self._checkout_allowed_ips = checkout_allowed_ips
        self._events = events or OrderEventPublisher()

    # -- legacy (myPOS IPC) ---------------------------------------------------

    def _legacy_reject(self, reason: str, order_id: Optional[str] = None, **kw) -> WebhookDecision:
        logger.warning("legacy_webhook_rejected", reason=reason, order_id=order_id, **kw)
        return WebhookDecision(LEGACY_ACK, WebhookOutcome.REJECTED, order_id=order_id, reason=reason)

    async def handle_legacy_webhook(self, body: bytes, *, client_ip: Optional[str] = None) -> WebhookDecision:
        """处理 IPC 回调；任何情况下 acknowledgement 都是 "OK" """
        try:
            return await self._handle_legacy(body, client_ip)
        except Exception as exc:
            logger.error("legacy_webhook_processing_failed", error=str(exc), exc_info=True)
            return WebhookDecision(LEGACY_ACK, WebhookOutcome.ERROR, reason=str(exc))

    async def _handle_legacy(self, body: bytes, client_ip: Optional[str]) -> WebhookDecision:
        if self._legacy is None:
            return self._legacy_reject("gateway_disabled")
        if not ip_allowed(client_ip, self._legacy_allowed_ips):
            return self._legacy_reject("ip_not_allowed", client_ip=client_ip)
        if not body or not body.strip():
            return self._legacy_reject("empty_body")

        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        fields = parse_qsl(text, keep_blank_values=True)
        payload = dict(fields)
        order_id = payload.get("OrderID")
        missing = [name for name in LEGACY_REQUIRED_FIELDS if not payload.get(name)]
        if missing:
            return self._legacy_reject("missing_fields", order_id=order_id, missing=missing)
        if payload.get("SID") != self._legacy.sid:
            return self._legacy_reject("sid_mismatch", order_id=order_id)

        method = payload.get("IPCmethod")
        if method not in LEGACY_CALLBACK_METHODS:
            return self._legacy_reject("unknown_method", order_id=order_id, method=method)
        amount = _parse_amount(payload.get("Amount"))
        if amount is None:
            return self._legacy_reject("invalid_amount", order_id=order_id, amount=payload.get("Amount"))
        if not self._legacy.verify_callback(fields):
            return self._legacy_reject("invalid_signature", order_id=order_id)

        status_code = payload.get("Status")
        success = method in LEGACY_SUCCESS_METHODS and (
            status_code is None or status_code == LEGACY_STATUS_SUCCESS
        )
        transaction_ref = payload.get("IPC_Trnref") or None

        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
            if order is None:
                logger.warning("legacy_webhook_order_not_found", order_id=order_id)
                return WebhookDecision(LEGACY_ACK, WebhookOutcome.NOT_FOUND, order_id=order_id)

            decision = self._apply_legacy_outcome(order, amount, success, transaction_ref, method)
            events = order.pull_events()
            if decision.outcome in (WebhookOutcome.PAID, WebhookOutcome.FAILED, WebhookOutcome.FRAUD_ATTEMPT):
                order = await uow.order_repository.update(order)

        if decision.outcome in (WebhookOutcome.PAID, WebhookOutcome.FAILED, WebhookOutcome.FRAUD_ATTEMPT):
            await self._events.publish(events)
            await self._mirror.publish(order)
        return decision

    def _apply_legacy_outcome(
        self,
        order: Order,
        amount: Decimal,
        success: bool,
        transaction_ref: Optional[str],
        method: str,
    ) -> WebhookDecision:
        target = OrderStatus.PAID if success else OrderStatus.FAILED
        if order.status == target:
            logger.info("legacy_webhook_duplicate", order_id=order.order_id, status=order.status.value)
            return WebhookDecision(LEGACY_ACK, WebhookOutcome.DUPLICATE, order.order_id, order.status.value)
        if order.status != OrderStatus.PENDING:
            logger.warning(
                "legacy_webhook_order_not_pending",
                order_id=order.order_id,
                status=order.status.value,
                method=method,
            )
            return WebhookDecision(
                LEGACY_ACK, WebhookOutcome.IGNORED, order.order_id, order.status.value, reason="not_pending"
            )

        # 金额比对先于成功/失败分支：被篡改的取消回调同样记为 fraud_attempt
        if not self._validator.validate_payment_amount(
            order.order_id, amount, order.expected_amount, order.currency
        ):
            order.mark_fraud_attempt(amount)
            return WebhookDecision(LEGACY_ACK, WebhookOutcome.FRAUD_ATTEMPT, order.order_id, order.status.value)

        if success:
            order.mark_paid(amount, transaction_ref=transaction_ref, payment_reference=transaction_ref)
            logger.info(
                "order_paid",
                order_id=order.order_id,
                amount=str(amount),
                provider="mypos",
                transaction_ref=transaction_ref,
            )
            return WebhookDecision(LEGACY_ACK, WebhookOutcome.PAID, order.order_id, order.status.value)

        order.mark_failed(reason=method)
        logger.info("order_payment_failed", order_id=order.order_id, method=method, provider="mypos")
        return WebhookDecision(LEGACY_ACK, WebhookOutcome.FAILED, order.order_id, order.status.value)

    # -- checkout (Stripe) ----------------------------------------------------

    def verify_checkout_source(self, client_ip: Optional[str]) -> bool:
        return ip_allowed(client_ip, self._checkout_allowed_ips)

    async def _record_event(self, event: GatewayWebhookEvent) -> bool:
        if self._ledger is not None:
            return await self._ledger.try_insert(event.id, event.type, event.provider)
        async with self._uow_factory() as uow:
            return await uow.webhook_event_ledger.try_insert(event.id, event.type, event.provider)

    async def handle_checkout_webhook(self, raw_body: bytes, signature_header: str) -> WebhookDecision:
        """
        处理 Checkout 回调

        Raises:
            PaymentSignatureError: 签名校验失败（路由返回 400）
            其他异常: 幂等账本写入失败（路由返回 5xx，由网关重投）
        """
        if self._checkout is None:
            raise GatewayNotConfiguredException("stripe")

        event = self._checkout.construct_webhook_event(raw_body, signature_header)
        if not await self._record_event(event):
            logger.info("webhook_duplicate_ignored", event_id=event.id, event_type=event.type)
            return WebhookDecision("", WebhookOutcome.DUPLICATE, reason=event.id)

        if event.type != CHECKOUT_COMPLETED:
            logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
            return WebhookDecision("", WebhookOutcome.IGNORED, reason=event.type)

        # 账本已写入：之后的处理失败只记录日志并应答 200
        try:
            return await self._handle_checkout_completed(event)
        except Exception as exc:
            logger.error(
                "checkout_webhook_processing_failed",
                event_id=event.id,
                error=str(exc),
                exc_info=True,
            )
            return WebhookDecision("", WebhookOutcome.ERROR, reason=str(exc))

    async def _handle_checkout_completed(self, event: GatewayWebhookEvent) -> WebhookDecision:
        session_obj = (event.data or {}).get("object") or {}
        session_id = session_obj.get("id")
        if not session_id:
            logger.warning("checkout_webhook_missing_session", event_id=event.id)
            return WebhookDecision("", WebhookOutcome.IGNORED, reason="missing_session")

        details = await self._checkout.retrieve_session(session_id)
        order_id = details.metadata.get("orderId")
        order_type = details.metadata.get("orderType", "order")
        if not order_id:
            logger.warning("checkout_webhook_missing_order_id", event_id=event.id, session_id=session_id)
            return WebhookDecision("", WebhookOutcome.IGNORED, reason="missing_order_id")
        if not CHECKOUT_PAYMENT_STATUS_PAID.get(details.payment_status or "", False):
            logger.info(
                "checkout_session_not_paid",
                order_id=order_id,
                session_id=session_id,
                payment_status=details.payment_status,
            )
            return WebhookDecision("", WebhookOutcome.IGNORED, order_id=order_id, reason="not_paid")

        trademark = order_type == "trademark"
        async with self._uow_factory() as uow:
            repo = uow.trademark_order_repository if trademark else uow.order_repository
            order = await repo.get_by_order_id(order_id)
            if order is None:
                logger.warning("checkout_webhook_order_not_found", order_id=order_id, order_type=order_type)
                return WebhookDecision("", WebhookOutcome.NOT_FOUND, order_id=order_id)
            if trademark:
                decision = self._apply_trademark_outcome(order, details)
            else:
                decision = self._apply_order_outcome(order, details)
            events = order.pull_events()
            changed = decision.outcome in (
                WebhookOutcome.PAID, WebhookOutcome.FRAUD_ATTEMPT, WebhookOutcome.CANCELLED
            )
            if changed:
                order = await repo.update(order)

        if changed:
            await self._events.publish(events)
            await self._mirror.publish(order)
        return decision

    def _payment_fields(self, details: CheckoutSessionDetails) -> dict[str, Optional[str]]:
        return {
            "transaction_ref": details.transaction_ref,
            "payment_intent_id": details.payment_intent_id,
            "receipt_url": details.receipt_url,
            "checkout_session_id": details.session_id,
        }

    def _not_pending(self, order: Union[Order, TrademarkOrder]) -> Optional[WebhookDecision]:
        if order.status.value == OrderStatus.PENDING.value:
            return None
        logger.warning("checkout_webhook_order_not_pending", order_id=order.order_id, status=order.status.value)
        return WebhookDecision(
            "", WebhookOutcome.IGNORED, order.order_id, order.status.value, reason="not_pending"
        )

    def _apply_order_outcome(self, order: Order, details: CheckoutSessionDetails) -> WebhookDecision:
        skipped = self._not_pending(order)
        if skipped is not None:
            return skipped
        amount = details.amount_total
        if not self._validator.validate_payment_amount(
            order.order_id, amount, order.expected_amount, details.currency
        ):
            order.mark_fraud_attempt(amount)
            order.payment_data.merge(**self._payment_fields(details))
            return WebhookDecision("", WebhookOutcome.FRAUD_ATTEMPT, order.order_id, order.status.value)

        order.mark_paid(amount, **self._payment_fields(details))
        logger.info(
            "order_paid",
            order_id=order.order_id,
            amount=str(amount),
            provider="stripe",
            transaction_ref=details.transaction_ref,
        )
        return WebhookDecision("", WebhookOutcome.PAID, order.order_id, order.status.value)

    def _apply_trademark_outcome(self, order: TrademarkOrder, details: CheckoutSessionDetails) -> WebhookDecision:
        skipped = self._not_pending(order)
        if skipped is not None:
            return skipped
        amount = details.amount_total
        if not self._validator.validate_payment_amount(
            order.order_id, amount, order.pricing.total, details.currency
        ):
            order.reject_payment(amount)
            order.payment_data.merge(**self._payment_fields(details))
            return WebhookDecision("", WebhookOutcome.CANCELLED, order.order_id, order.status.value)

        order.mark_paid(amount, **self._payment_fields(details))
        logger.info(
            "trademark_order_paid",
            order_id=order.order_id,
            amount=str(amount),
            transaction_ref=details.transaction_ref,
        )
        return WebhookDecision("", WebhookOutcome.PAID, order.order_id, TrademarkStatus.PAID.value)
