"""金额工具：统一使用 Decimal，两位小数，四舍五入（ROUND_HALF_UP）"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

TWO_PLACES = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """float 经 str 转换，避免二进制误差带入 Decimal"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a valid amount: {value!r}") from exc


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(value: Number) -> str:
    """网关要求的金额格式，例如 30 -> "30.00" """
    return f"{round_money(value):.2f}"


def to_minor_units(value: Number) -> int:
    return int((to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int) -> Decimal:
    return round_money(Decimal(value) / 100)
