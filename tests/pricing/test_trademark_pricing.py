from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.pricing.trademark import (
    COLLECTIVE_OR_CERTIFIED_TIER,
    REGULAR_TIER,
    PricingSnapshot,
    calculate_trademark_price,
    validate_mark_type,
    validate_nice_classes,
)


def test_five_classes_charge_two_additional_class_fees():
    pricing = calculate_trademark_price(5)

    expected = REGULAR_TIER.up_to_three_classes + 2 * REGULAR_TIER.additional_class
    assert pricing.subtotal == expected == Decimal("296.55")
    assert pricing.vat == Decimal("0.00")
    assert pricing.total == pricing.subtotal
    assert pricing.currency == "EUR"


def test_up_to_three_classes_pay_base_fee_only():
    assert calculate_trademark_price(1).total == REGULAR_TIER.up_to_three_classes
    assert calculate_trademark_price(3).total == REGULAR_TIER.up_to_three_classes


def test_collective_or_certified_marks_use_higher_tier_and_priority_fees():
    pricing = calculate_trademark_price(4, 2, is_certified=True)

    assert pricing.total == (
        COLLECTIVE_OR_CERTIFIED_TIER.up_to_three_classes
        + COLLECTIVE_OR_CERTIFIED_TIER.additional_class
        + 2 * COLLECTIVE_OR_CERTIFIED_TIER.priority_claim
    )
    assert calculate_trademark_price(1, is_collective=True).total == Decimal("516.40")


def test_zero_classes_is_rejected():
    with pytest.raises(DomainValidationException):
        calculate_trademark_price(0)


def test_nice_classes_are_range_checked_and_deduplicated():
    assert validate_nice_classes([9, 35, 9, 42]) == [9, 35, 42]
    with pytest.raises(DomainValidationException) as exc:
        validate_nice_classes([0, 46])
    assert exc.value.details == {"invalid": [0, 46]}


def test_mark_type_must_be_known():
    assert validate_mark_type("word") == "word"
    with pytest.raises(DomainValidationException):
        validate_mark_type("smell")


def test_pricing_snapshot_survives_json_roundtrip():
    snapshot = calculate_trademark_price(5)
    assert PricingSnapshot.from_dict(snapshot.to_dict()) == snapshot
