from decimal import Decimal

from domain.pricing.catalog import PriceCatalog
from domain.pricing.validator import AmountTolerance, PriceValidator, SubmittedItem


def _validator(**kwargs) -> PriceValidator:
    return PriceValidator(PriceCatalog(), **kwargs)


def test_tampered_client_price_is_reported_with_item_id():
    result = _validator().validate([SubmittedItem(id="nda", type="document", price=1)])

    assert result.is_valid is False
    assert len(result.errors) == 1
    assert '"nda"' in result.errors[0]
    assert "Expected: €15.00" in result.errors[0]
    assert "Received: €1.00" in result.errors[0]
    # 期望金额仍按价目表计算
    assert result.expected_amount == Decimal("15.00")


def test_matching_prices_compute_vat_and_total_on_the_sum():
    result = _validator().validate([SubmittedItem(id="employment_contract", type="document", price="25")])

    assert result.is_valid
    assert result.errors == []
    assert result.expected_amount == Decimal("25.00")
    assert result.expected_vat == Decimal("5.00")
    assert result.expected_total == Decimal("30.00")


def test_expected_total_is_amount_plus_vat_for_mixed_cart():
    items = [
        SubmittedItem(id="speciment_test", type="document", price=10),
        SubmittedItem(id="nda", type="document", price=15),
        SubmittedItem(id="employment_package", type="package", price=100),
        SubmittedItem(id="test_production_package", type="package", price=1),
    ]
    result = _validator().validate(items)

    assert result.is_valid
    assert result.expected_amount == Decimal("126.00")
    assert result.expected_vat == Decimal("25.20")
    assert result.expected_total == result.expected_amount + result.expected_vat


def test_all_errors_are_collected_in_one_pass():
    items = [
        SubmittedItem(id="nda", type="document", price=1),
        SubmittedItem(id="ghost", type="document", price=5),
        SubmittedItem(id="nda", type="package", price=15),
        SubmittedItem(id="speciment", type="document", price=None),
    ]
    result = _validator().validate(items)

    assert result.is_valid is False
    assert len(result.errors) == 4
    assert "Unknown document ID: ghost" in result.errors
    assert "Unknown package ID: nda" in result.errors
    assert any("Received: none" in e for e in result.errors)


def test_unparseable_price_is_a_mismatch_not_a_crash():
    result = _validator().validate([SubmittedItem(id="nda", type="document", price="abc")])

    assert result.is_valid is False
    assert "nda" in result.errors[0]


def test_one_cent_difference_is_within_default_tolerance():
    result = _validator().validate([SubmittedItem(id="nda", type="document", price="15.01")])
    assert result.is_valid

    result = _validator().validate([SubmittedItem(id="nda", type="document", price="15.02")])
    assert result.is_valid is False


def test_float_prices_do_not_leak_binary_error():
    # 0.1 + 0.2 风格的误差不能导致误判
    result = _validator().validate([SubmittedItem(id="speciment", type="document", price=20.000000000000004)])
    assert result.is_valid


def test_payment_amount_check_uses_strict_greater_than():
    validator = _validator()

    assert validator.validate_payment_amount("ORD-1", Decimal("30.00"), Decimal("30.00"), "EUR")
    assert validator.validate_payment_amount("ORD-1", Decimal("29.99"), Decimal("30.00"), "EUR")
    assert not validator.validate_payment_amount("ORD-1", Decimal("29.50"), Decimal("30.00"), "EUR")
    assert not validator.validate_payment_amount("ORD-1", Decimal("30.02"), Decimal("30.00"), "EUR")


def test_tolerance_is_configurable_per_currency():
    validator = _validator(tolerance=AmountTolerance(Decimal("0.01"), {"jpy": Decimal("1")}))

    assert validator.validate_payment_amount("ORD-1", Decimal("1001"), Decimal("1000"), "JPY")
    assert not validator.validate_payment_amount("ORD-1", Decimal("1002"), Decimal("1000"), "JPY")
    assert not validator.validate_payment_amount("ORD-1", Decimal("1000.50"), Decimal("1000"), "EUR")


def test_catalog_lists_documents_and_packages():
    catalog = PriceCatalog()

    assert {e.id for e in catalog.list_documents()} >= {"nda", "speciment", "employment_contract"}
    assert catalog.package_documents("employment_package") == ("employment_contract", "nda", "personal_data_form")
    assert catalog.resolve("nda", "bogus") is None
