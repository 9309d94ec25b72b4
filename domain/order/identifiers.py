"""订单业务 ID 生成：{PREFIX}-{毫秒时间戳(base36)}-{8位随机十六进制}，全部大写"""
from __future__ import annotations

import secrets
import time
from typing import Optional

REGULAR_ORDER_PREFIX = "ORD"
TRADEMARK_ORDER_PREFIX = "TM"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_id(prefix: str = REGULAR_ORDER_PREFIX, *, now_ms: Optional[int] = None) -> str:
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}-{_to_base36(ts)}-{secrets.token_hex(4).upper()}"


def is_trademark_order_id(order_id: str) -> bool:
    return order_id.upper().startswith(f"{TRADEMARK_ORDER_PREFIX}-")
