"""
商标申请定价

费用为官方规费的代收，不计 VAT；仅对最终合计做一次舍入。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from domain.common.exceptions import DomainValidationException
from domain.pricing.money import round_money


@dataclass(frozen=True)
class TrademarkFeeTier:
    up_to_three_classes: Decimal
    additional_class: Decimal
    priority_claim: Decimal


REGULAR_TIER = TrademarkFeeTier(Decimal("265.87"), Decimal("15.34"), Decimal("10.23"))
COLLECTIVE_OR_CERTIFIED_TIER = TrademarkFeeTier(Decimal("516.40"), Decimal("40.90"), Decimal("10.23"))

INCLUDED_CLASSES = 3
TRADEMARK_CURRENCY = "EUR"

VALID_MARK_TYPES = (
    "word", "figurative", "combined", "3d", "color", "sound",
    "hologram", "position", "pattern", "motion", "multimedia", "other",
)
MIN_NICE_CLASS = 1
MAX_NICE_CLASS = 45


@dataclass(frozen=True)
class PricingSnapshot:
    """创建订单时固化的价格快照，之后不可修改"""
    subtotal: Decimal
    vat: Decimal
    total: Decimal
    currency: str

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "vat": str(self.vat),
            "total": str(self.total),
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PricingSnapshot":
        return cls(
            subtotal=Decimal(str(data["subtotal"])),
            vat=Decimal(str(data.get("vat", "0"))),
            total=Decimal(str(data["total"])),
            currency=data.get("currency", TRADEMARK_CURRENCY),
        )


def calculate_trademark_price(
    nice_class_count: int,
    priority_claim_count: int = 0,
    *,
    is_collective: bool = False,
    is_certified: bool = False,
) -> PricingSnapshot:
    if nice_class_count < 1:
        raise DomainValidationException("At least one Nice class is required", field="niceClasses")
    if priority_claim_count < 0:
        raise DomainValidationException("Priority claim count cannot be negative", field="priorityClaims")

    tier = COLLECTIVE_OR_CERTIFIED_TIER if (is_collective or is_certified) else REGULAR_TIER
    extra_classes = max(0, nice_class_count - INCLUDED_CLASSES)
    subtotal = round_money(
        tier.up_to_three_classes
        + extra_classes * tier.additional_class
        + priority_claim_count * tier.priority_claim
    )
    return PricingSnapshot(subtotal=subtotal, vat=Decimal("0.00"), total=subtotal, currency=TRADEMARK_CURRENCY)


def validate_nice_classes(classes: list[int]) -> list[int]:
    if not classes:
        raise DomainValidationException("At least one Nice class is required", field="niceClasses")
    invalid = [c for c in classes if not MIN_NICE_CLASS <= int(c) <= MAX_NICE_CLASS]
    if invalid:
        raise DomainValidationException(
            f"Nice classes must be between {MIN_NICE_CLASS} and {MAX_NICE_CLASS}",
            field="niceClasses",
            details={"invalid": invalid},
        )
    # 去重并排序，重复类别不重复计费
    return sorted({int(c) for c in classes})


def validate_mark_type(mark_type: str) -> str:
    if mark_type not in VALID_MARK_TYPES:
        raise DomainValidationException(
            f"Invalid markType. Must be one of: {', '.join(VALID_MARK_TYPES)}",
            field="markType",
        )
    return mark_type
