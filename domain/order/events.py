"""
Order domain events.

Aggregates record lifecycle facts here; the application layer drains them after a
successful commit to update derived views (e.g. the document mirror).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPaid(OrderEvent):
    amount: Optional[Decimal] = None
    currency: str = "EUR"
    transaction_ref: Optional[str] = None


@dataclass
class OrderPaymentFailed(OrderEvent):
    reason: Optional[str] = None


@dataclass
class FraudSuspected(OrderEvent):
    expected_amount: Optional[Decimal] = None
    received_amount: Optional[Decimal] = None
    currency: str = "EUR"


@dataclass
class OrderStatusChanged(OrderEvent):
    previous: str = ""
    current: str = ""
