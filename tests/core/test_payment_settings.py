from decimal import Decimal

import pytest

from core.logging_config import REDACTED, redact_sensitive
from core.settings import FatalConfigError, PaymentSettings


def _settings(**kwargs) -> PaymentSettings:
    return PaymentSettings(_env_file=None, **kwargs)


def test_enabled_gateways_must_carry_credentials():
    cfg = _settings(mypos={"enabled": True, "sid": "000000000000010"}, stripe={"enabled": True})

    with pytest.raises(FatalConfigError) as exc_info:
        cfg.ensure_configured()

    message = str(exc_info.value)
    assert "PAYMENT__MYPOS__WALLET_NUMBER" in message
    assert "PAYMENT__MYPOS__PRIVATE_KEY" in message
    assert "PAYMENT__STRIPE__WEBHOOK_SECRET" in message
    assert "PAYMENT__MYPOS__SID" not in message


def test_disabled_gateways_need_nothing():
    cfg = _settings(mypos={"enabled": False}, stripe={"enabled": False})

    cfg.ensure_configured()


def test_unknown_ledger_backend_is_fatal():
    cfg = _settings(mypos={"enabled": False}, stripe={"enabled": False}, webhook={"ledger_backend": "memcached"})

    assert cfg.missing_credentials() == ["PAYMENT__WEBHOOK__LEDGER_BACKEND (database|redis)"]


def test_escaped_newlines_in_pem_are_restored():
    cfg = _settings(mypos={"enabled": False, "private_key": "-----BEGIN-----\\nabc\\n-----END-----"})

    assert cfg.mypos.private_key == "-----BEGIN-----\nabc\n-----END-----"


def test_endpoint_follows_environment():
    assert _settings(mypos={"is_production": True}).mypos.endpoint == "https://www.mypos.eu/vmp/checkout"
    assert _settings(mypos={"is_production": False}).mypos.endpoint.endswith("/checkout-test")


def test_tolerance_lookup_is_case_insensitive():
    pricing = _settings().pricing

    assert pricing.tolerance_for("jpy") == Decimal("1")
    assert pricing.tolerance_for("EUR") == Decimal("0.01")


def test_sensitive_fields_are_redacted_recursively():
    event = redact_sensitive(
        None,
        "info",
        {
            "event": "legacy_request_signed",
            "fields": {"OrderID": "ORD-1", "Signature": "c2lnbmF0dXJl"},
            "headers": [{"Stripe-Signature": "t=1,v1=abc"}],
            "client_secret": "cs_test_secret",
        },
    )

    assert event["fields"] == {"OrderID": "ORD-1", "Signature": REDACTED}
    assert event["headers"] == [{"Stripe-Signature": REDACTED}]
    assert event["client_secret"] == REDACTED
    assert event["event"] == "legacy_request_signed"
