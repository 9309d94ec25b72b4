import json
from decimal import Decimal
from urllib.parse import parse_qsl

import httpx
import pytest
from cryptography.hazmat.primitives import serialization

from application.dtos.payments import LegacyCartLine, LegacyCustomer, LegacyPurchaseRequest
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.signing import RsaVerifier, SignablePayload


def _purchase_request() -> LegacyPurchaseRequest:
    return LegacyPurchaseRequest(
        order_id="ORD-LX1-ABCD1234",
        amount=Decimal("30"),
        currency="EUR",
        cart=[
            LegacyCartLine(article="Employment contract", price=Decimal("25")),
            LegacyCartLine(article="ДДС (20%)", price=Decimal("5")),
        ],
        customer=LegacyCustomer(email="buyer@example.com", first_name="Ivan", last_name="Petrov"),
        url_ok="http://localhost:3000/checkout/success?orderId=ORD-LX1-ABCD1234",
        url_cancel="http://localhost:3000/checkout/cancel",
        url_notify="http://localhost:8000/api/v1/payments/notify",
    )


def _merchant_verifier(merchant_key) -> RsaVerifier:
    public_pem = merchant_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return RsaVerifier(public_pem)


def test_purchase_form_is_signed_in_wire_order(make_mypos_client, merchant_key):
    form = make_mypos_client().build_purchase_form(_purchase_request())
    keys = [k for k, _ in form.fields]
    fields = form.as_dict()

    assert keys[:5] == ["IPCmethod", "IPCVersion", "IPCLanguage", "SID", "walletnumber"]
    assert keys[-1] == "Signature"
    assert keys.index("Amount") < keys.index("OrderID") < keys.index("CartItems") < keys.index("Article_1")
    assert fields["IPCmethod"] == "IPCPurchase"
    assert fields["Amount"] == "30.00"
    assert fields["CartItems"] == "2"
    assert fields["Amount_2"] == "5.00"
    assert fields["customeremail"] == "buyer@example.com"
    assert fields["Note"] == "Order ORD-LX1-ABCD1234"
    assert form.endpoint.endswith("/checkout-test")

    assert _merchant_verifier(merchant_key).verify(SignablePayload.from_fields(form.fields))


def test_callback_signed_by_gateway_is_accepted(make_mypos_client, gateway_signer):
    signed = gateway_signer.sign(
        SignablePayload.of([("IPCmethod", "IPCPurchaseNotify"), ("OrderID", "ORD-1"), ("Amount", "30.00")])
    )
    client = make_mypos_client()

    assert client.verify_callback(signed.to_fields())
    tampered = [(k, "1.00" if k == "Amount" else v) for k, v in signed.to_fields()]
    assert not client.verify_callback(tampered)


def test_skip_signature_verification_accepts_unsigned_callbacks(make_mypos_client):
    client = make_mypos_client(skip_signature_verification=True)
    assert client.verify_callback([("IPCmethod", "IPCPurchaseNotify"), ("OrderID", "ORD-1")])


@pytest.mark.asyncio
async def test_get_transaction_status_posts_signed_form(make_mypos_client, merchant_key):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["fields"] = parse_qsl(request.content.decode(), keep_blank_values=True)
        seen["content_type"] = request.headers["content-type"]
        return httpx.Response(200, text=json.dumps({"Status": 0, "StatusMsg": "Success", "IPC_Trnref": "TRN-7"}))

    client = make_mypos_client(transport=httpx.MockTransport(handler))
    result = await client.get_transaction_status("ORD-LX1-ABCD1234")
    await client.aclose()

    assert result.success is True
    assert result.status_code == "0"
    assert result.transaction_ref == "TRN-7"
    assert seen["content_type"] == "application/x-www-form-urlencoded"
    fields = dict(seen["fields"])
    assert fields["IPCmethod"] == "IPCGetTxnStatus"
    assert fields["IPCLanguage"] == "en"
    assert fields["OutputFormat"] == "json"
    assert _merchant_verifier(merchant_key).verify(SignablePayload.from_fields(seen["fields"]))


@pytest.mark.asyncio
async def test_refund_parses_urlencoded_reply(make_mypos_client):
    def handler(request: httpx.Request) -> httpx.Response:
        fields = dict(parse_qsl(request.content.decode()))
        assert fields["IPCmethod"] == "IPCRefund"
        assert fields["Amount"] == "12.50"
        assert fields["IPC_Trnref"] == "TRN-7"
        return httpx.Response(200, text="Status=0&StatusMsg=Success&IPC_Trnref=TRN-7")

    client = make_mypos_client(transport=httpx.MockTransport(handler))
    result = await client.refund("ORD-1", "TRN-7", Decimal("12.5"), "EUR")

    assert result.success
    assert result.method == "IPCRefund"


@pytest.mark.asyncio
async def test_gateway_5xx_is_retried_then_recoverable(make_mypos_client):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, text="maintenance")

    client = make_mypos_client(transport=httpx.MockTransport(handler), retry={"max": 1, "base": 0})
    with pytest.raises(PaymentRecoverableError):
        await client.get_transaction_status("ORD-1")
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_gateway_4xx_is_a_provider_error(make_mypos_client):
    client = make_mypos_client(transport=httpx.MockTransport(lambda request: httpx.Response(403, text="denied")))
    with pytest.raises(PaymentProviderError):
        await client.get_transaction_status("ORD-1")


@pytest.mark.asyncio
async def test_declined_status_is_not_success(make_mypos_client):
    client = make_mypos_client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"Status": "3", "StatusMsg": "Declined"}))
    )
    result = await client.refund("ORD-1", "TRN-7", Decimal("1"), "EUR")
    assert result.success is False
    assert result.status_message == "Declined"
