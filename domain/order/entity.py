"""
订单领域实体 - 普通订单与商标申请订单两个聚合根

状态只允许沿转换表前进；重复设置当前状态是幂等的空操作。
expected_amount / pricing 在创建时固化，之后不可修改。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException, InvalidStatusTransitionException
from domain.order.events import (
    FraudSuspected,
    OrderEvent,
    OrderPaid,
    OrderPaymentFailed,
    OrderStatusChanged,
)
from domain.pricing.trademark import PricingSnapshot


class OrderStatus(str, Enum):
    """普通订单状态"""
    PENDING = "pending"                # 待支付
    PAID = "paid"                      # 已支付
    PROCESSING = "processing"          # 文档生成中
    FINISHED = "finished"              # 已完成
    FAILED = "failed"                  # 支付失败
    FRAUD_ATTEMPT = "fraud_attempt"    # 金额不一致，疑似篡改
    CANCELLED = "cancelled"            # 已取消


class TrademarkStatus(str, Enum):
    """商标申请订单状态"""
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SUBMITTED_TO_EXTERNAL_OFFICE = "submitted_to_external_office"
    PUBLISHED = "published"
    REGISTERED = "registered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PaymentMethod(str, Enum):
    MYPOS_EMBEDDED = "mypos_embedded"
    STRIPE = "stripe"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PAID,
        OrderStatus.FAILED,
        OrderStatus.FRAUD_ATTEMPT,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.FINISHED}),
    OrderStatus.FINISHED: frozenset(),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.FRAUD_ATTEMPT: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

_TM_FORWARD = (
    TrademarkStatus.DRAFT,
    TrademarkStatus.PENDING,
    TrademarkStatus.PAID,
    TrademarkStatus.PROCESSING,
    TrademarkStatus.SUBMITTED_TO_EXTERNAL_OFFICE,
    TrademarkStatus.PUBLISHED,
    TrademarkStatus.REGISTERED,
)
TRADEMARK_TERMINAL = frozenset({
    TrademarkStatus.REGISTERED,
    TrademarkStatus.CANCELLED,
    TrademarkStatus.REJECTED,
})


def _trademark_transitions() -> dict[TrademarkStatus, frozenset[TrademarkStatus]]:
    table: dict[TrademarkStatus, frozenset[TrademarkStatus]] = {}
    for idx, status in enumerate(_TM_FORWARD):
        if status in TRADEMARK_TERMINAL:
            table[status] = frozenset()
            continue
        table[status] = frozenset({
            _TM_FORWARD[idx + 1],
            TrademarkStatus.CANCELLED,
            TrademarkStatus.REJECTED,
        })
    table[TrademarkStatus.CANCELLED] = frozenset()
    table[TrademarkStatus.REJECTED] = frozenset()
    return table


TRADEMARK_TRANSITIONS = _trademark_transitions()

# 视为“已付款”的状态（用于支付状态查询）
ORDER_PAID_STATES = frozenset({OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.FINISHED})
TRADEMARK_PAID_STATES = frozenset({
    TrademarkStatus.PAID,
    TrademarkStatus.PROCESSING,
    TrademarkStatus.SUBMITTED_TO_EXTERNAL_OFFICE,
    TrademarkStatus.PUBLISHED,
    TrademarkStatus.REGISTERED,
})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CustomerData:
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    ip: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    address: Optional[str] = None
    is_company: bool = False
    company_name: Optional[str] = None
    company_eik: Optional[str] = None
    company_address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CustomerData":
        data = data or {}
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class PaymentData:
    """网关返回的支付凭据"""
    transaction_ref: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_intent_id: Optional[str] = None
    receipt_url: Optional[str] = None
    checkout_session_id: Optional[str] = None

    def merge(self, **fields: Optional[str]) -> None:
        for key, value in fields.items():
            if value is not None and key in self.__dataclass_fields__:
                setattr(self, key, value)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PaymentData":
        data = data or {}
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class OrderItem:
    id: str
    type: str  # document | package
    name: str
    price: Decimal  # 价目表价格，而非客户端提交的价格
    description: Optional[str] = None
    form_data: dict = field(default_factory=dict)
    document_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "price": str(self.price),
            "description": self.description,
            "form_data": self.form_data,
            "document_ids": list(self.document_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        return cls(
            id=data["id"],
            type=data["type"],
            name=data.get("name") or data["id"],
            price=Decimal(str(data["price"])),
            description=data.get("description"),
            form_data=data.get("form_data") or {},
            document_ids=list(data.get("document_ids") or []),
        )


@dataclass
class Order:
    """
    普通订单聚合根

    业务规则：
    1. order_id 全局唯一
    2. expected_amount 创建时固化，支付回调只与它比对
    3. 状态转换必须遵循 ORDER_TRANSITIONS
    """

    id: Optional[int]
    order_id: str
    status: OrderStatus
    items: list[OrderItem]
    subtotal: Decimal
    vat: Decimal
    total: Decimal
    expected_amount: Decimal
    currency: str
    customer: CustomerData = field(default_factory=CustomerData)
    payment_method: PaymentMethod = PaymentMethod.MYPOS_EMBEDDED
    payment_data: PaymentData = field(default_factory=PaymentData)
    paid_amount: Optional[Decimal] = None
    user_id: Optional[int] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    events: list[OrderEvent] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self):
        if self.expected_amount < 0:
            raise DomainValidationException(
                f"订单金额不能为负数: {self.expected_amount}",
                field="expected_amount",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.status = OrderStatus(self.status)
        self.payment_method = PaymentMethod(self.payment_method)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.failed_at = _ensure_utc(self.failed_at)
        self.expires_at = _ensure_utc(self.expires_at)

    @classmethod
    def create_pending(
        cls,
        *,
        order_id: str,
        items: list[OrderItem],
        subtotal: Decimal,
        vat: Decimal,
        total: Decimal,
        currency: str,
        customer: CustomerData,
        payment_method: PaymentMethod,
        user_id: Optional[int] = None,
        expiry_hours: int = 24,
    ) -> "Order":
        now = _now()
        return cls(
            id=None,
            order_id=order_id,
            status=OrderStatus.PENDING,
            items=items,
            subtotal=subtotal,
            vat=vat,
            total=total,
            expected_amount=total,
            currency=currency,
            customer=customer,
            payment_method=payment_method,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(hours=expiry_hours),
        )

    @property
    def is_paid(self) -> bool:
        return self.status in ORDER_PAID_STATES

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target == self.status or target in ORDER_TRANSITIONS[self.status]

    def transition_to(self, target: OrderStatus | str, *, at: Optional[datetime] = None) -> bool:
        """
        执行状态转换

        Returns:
            bool: 状态是否实际发生变化（重复设置同一状态返回 False）
        """
        target = OrderStatus(target)
        if target == self.status:
            return False
        if target not in ORDER_TRANSITIONS[self.status]:
            raise InvalidStatusTransitionException(self.order_id, self.status.value, target.value)
        previous = self.status
        self.status = target
        self.updated_at = _ensure_utc(at) or _now()
        self.events.append(OrderStatusChanged(order_id=self.order_id, previous=previous.value, current=target.value))
        return True

    def mark_paid(
        self,
        amount: Decimal,
        *,
        at: Optional[datetime] = None,
        **payment_fields: Optional[str],
    ) -> bool:
        """标记已支付并记录实收金额与网关凭据"""
        changed = self.transition_to(OrderStatus.PAID, at=at)
        if not changed:
            return False
        self.paid_amount = amount
        self.paid_at = self.updated_at
        self.payment_data.merge(**payment_fields)
        self.events.append(
            OrderPaid(
                order_id=self.order_id,
                amount=amount,
                currency=self.currency,
                transaction_ref=self.payment_data.transaction_ref,
            )
        )
        return True

    def mark_failed(self, *, reason: Optional[str] = None, at: Optional[datetime] = None) -> bool:
        changed = self.transition_to(OrderStatus.FAILED, at=at)
        if changed:
            self.failed_at = self.updated_at
            self.events.append(OrderPaymentFailed(order_id=self.order_id, reason=reason))
        return changed

    def mark_fraud_attempt(self, received_amount: Decimal, *, at: Optional[datetime] = None) -> bool:
        """
        金额不一致：记录实际收到的金额，绝不标记为已支付

        业务规则：只能从 pending 进入，且之后为终态
        """
        changed = self.transition_to(OrderStatus.FRAUD_ATTEMPT, at=at)
        if changed:
            self.paid_amount = received_amount
            self.events.append(
                FraudSuspected(
                    order_id=self.order_id,
                    expected_amount=self.expected_amount,
                    received_amount=received_amount,
                    currency=self.currency,
                )
            )
        return changed

    def pull_events(self) -> list[OrderEvent]:
        events, self.events = self.events, []
        return events


@dataclass
class TrademarkData:
    mark_type: str
    goods_and_services: str
    nice_classes: list[int]
    mark_text: Optional[str] = None
    is_collective: bool = False
    is_certified: bool = False
    priority_claims: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mark_type": self.mark_type,
            "mark_text": self.mark_text,
            "goods_and_services": self.goods_and_services,
            "nice_classes": list(self.nice_classes),
            "is_collective": self.is_collective,
            "is_certified": self.is_certified,
            "priority_claims": list(self.priority_claims),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrademarkData":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class TrademarkOrder:
    """
    商标申请订单聚合根

    pricing 为创建时固化的价格快照；管理员可在任意非终态取消或驳回。
    """

    id: Optional[int]
    order_id: str
    status: TrademarkStatus
    customer: CustomerData
    trademark: TrademarkData
    pricing: PricingSnapshot
    payment_data: PaymentData = field(default_factory=PaymentData)
    paid_amount: Optional[Decimal] = None
    user_id: Optional[int] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    events: list[OrderEvent] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self):
        self.status = TrademarkStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.failed_at = _ensure_utc(self.failed_at)

    @property
    def currency(self) -> str:
        return self.pricing.currency

    @property
    def expected_amount(self) -> Decimal:
        return self.pricing.total

    @property
    def is_paid(self) -> bool:
        return self.status in TRADEMARK_PAID_STATES

    def transition_to(self, target: TrademarkStatus | str, *, at: Optional[datetime] = None) -> bool:
        target = TrademarkStatus(target)
        if target == self.status:
            return False
        if target not in TRADEMARK_TRANSITIONS[self.status]:
            raise InvalidStatusTransitionException(self.order_id, self.status.value, target.value)
        previous = self.status
        self.status = target
        self.updated_at = _ensure_utc(at) or _now()
        if target == TrademarkStatus.PAID:
            self.paid_at = self.updated_at
        elif target in (TrademarkStatus.CANCELLED, TrademarkStatus.REJECTED):
            self.failed_at = self.updated_at
        self.events.append(OrderStatusChanged(order_id=self.order_id, previous=previous.value, current=target.value))
        return True

    def mark_paid(self, amount: Decimal, *, at: Optional[datetime] = None, **payment_fields: Optional[str]) -> bool:
        changed = self.transition_to(TrademarkStatus.PAID, at=at)
        if changed:
            self.paid_amount = amount
            self.payment_data.merge(**payment_fields)
            self.events.append(
                OrderPaid(
                    order_id=self.order_id,
                    amount=amount,
                    currency=self.currency,
                    transaction_ref=self.payment_data.transaction_ref,
                )
            )
        return changed

    def reject_payment(self, received_amount: Decimal, *, at: Optional[datetime] = None) -> bool:
        """金额与价格快照不一致：取消订单并记录实收金额"""
        changed = self.transition_to(TrademarkStatus.CANCELLED, at=at)
        if changed:
            self.paid_amount = received_amount
            self.events.append(
                FraudSuspected(
                    order_id=self.order_id,
                    expected_amount=self.pricing.total,
                    received_amount=received_amount,
                    currency=self.currency,
                )
            )
        return changed

    def pull_events(self) -> list[OrderEvent]:
        events, self.events = self.events, []
        return events
