"""
价格校验器

纯函数：不做任何 I/O，收集全部错误后一次性返回，便于调用方用一个 400 响应列出所有不一致项。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from core.logging_config import get_logger
from domain.pricing.catalog import PriceCatalog
from domain.pricing.money import Number, round_money, to_decimal


logger = get_logger(__name__)


class PricedItem(Protocol):
    id: str
    type: str
    price: Optional[Number]


@dataclass(frozen=True)
class SubmittedItem:
    id: str
    type: str
    price: Optional[Number] = None


@dataclass
class PriceValidationResult:
    is_valid: bool
    expected_amount: Decimal
    expected_vat: Decimal
    expected_total: Decimal
    errors: list[str] = field(default_factory=list)


class AmountTolerance:
    """按币种配置的绝对金额容差；差值严格大于容差才算不一致"""

    def __init__(self, default: Decimal = Decimal("0.01"), per_currency: Optional[dict[str, Decimal]] = None):
        self.default = to_decimal(default)
        self._per_currency = {k.upper(): to_decimal(v) for k, v in (per_currency or {}).items()}

    def for_currency(self, currency: str) -> Decimal:
        return self._per_currency.get((currency or "").upper(), self.default)

    def exceeded(self, received: Number, expected: Number, currency: str) -> bool:
        return abs(to_decimal(received) - to_decimal(expected)) > self.for_currency(currency)


def _fmt(value: Decimal) -> str:
    return f"€{round_money(value):.2f}"


class PriceValidator:
    def __init__(self, catalog: PriceCatalog, tolerance: Optional[AmountTolerance] = None) -> None:
        self.catalog = catalog
        self.tolerance = tolerance or AmountTolerance()

    def validate(self, items: Iterable[PricedItem]) -> PriceValidationResult:
        errors: list[str] = []
        base = Decimal("0")
        currency = self.catalog.currency

        for item in items:
            entry = self.catalog.resolve(item.id, item.type)
            if entry is None:
                errors.append(f"Unknown {item.type} ID: {item.id}")
                continue

            base += entry.price
            if item.price is None:
                errors.append(
                    f'Price mismatch for {item.type} "{item.id}". '
                    f"Expected: {_fmt(entry.price)}, Received: none"
                )
                continue
            try:
                received = to_decimal(item.price)
            except ValueError:
                errors.append(
                    f'Price mismatch for {item.type} "{item.id}". '
                    f"Expected: {_fmt(entry.price)}, Received: {item.price!r}"
                )
                continue
            if self.tolerance.exceeded(received, entry.price, currency):
                errors.append(
                    f'Price mismatch for {item.type} "{item.id}". '
                    f"Expected: {_fmt(entry.price)}, Received: {_fmt(received)}"
                )

        # 对累计基数一次性计算 VAT 与合计，避免逐行舍入误差
        vat = round_money(base * self.catalog.vat_rate)
        total = round_money(base + vat)
        return PriceValidationResult(
            is_valid=not errors,
            expected_amount=round_money(base),
            expected_vat=vat,
            expected_total=total,
            errors=errors,
        )

    def validate_payment_amount(self, order_id: str, received: Number, expected: Number, currency: str) -> bool:
        if self.tolerance.exceeded(received, expected, currency):
            logger.error(
                "payment_amount_mismatch",
                order_id=order_id,
                received=str(round_money(received)),
                expected=str(round_money(expected)),
                currency=currency,
                alert="fraud_attempt",
            )
            return False
        return True
