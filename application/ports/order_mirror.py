"""Order mirror port: the derived, eventually-consistent "document" view of an order."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable


@dataclass
class OrderMirrorRecord:
    order_id: str
    paid: bool
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


@runtime_checkable
class OrderMirror(Protocol):
    async def upsert(self, record: OrderMirrorRecord) -> None: ...
