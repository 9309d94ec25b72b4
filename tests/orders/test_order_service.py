from decimal import Decimal

import pytest
from pydantic import ValidationError

from application.dtos.orders import CreateOrderRequest, CreateTrademarkOrderRequest
from application.services.mirror_sync import MirrorSync
from application.services.order_service import VAT_LINE_ARTICLE, OrderApplicationService
from domain.common.exceptions import (
    GatewayNotConfiguredException,
    OrderNotFoundException,
    OrderNotPendingException,
    PriceValidationException,
)
from domain.order.entity import OrderStatus, PaymentMethod, TrademarkStatus


def _request(**overrides) -> CreateOrderRequest:
    data = {
        "items": [{"id": "employment_contract", "type": "document", "price": 25}],
        "customerEmail": "buyer@example.com",
        "customerFirstName": "Ivan",
    }
    data.update(overrides)
    return CreateOrderRequest.model_validate(data)


def _trademark_request(classes=(1, 9, 35, 42, 45)) -> CreateTrademarkOrderRequest:
    return CreateTrademarkOrderRequest.model_validate(
        {
            "customer": {
                "email": "owner@example.com",
                "firstName": "Maria",
                "lastName": "Ivanova",
                "phone": "+359 888 123 456",
            },
            "trademark": {
                "markType": "word",
                "markText": "ACME",
                "goodsAndServices": "Software and consulting",
                "niceClasses": list(classes),
            },
        }
    )


def test_trademark_request_rejects_unknown_mark_type():
    with pytest.raises(ValidationError) as exc_info:
        CreateTrademarkOrderRequest.model_validate(
            {
                "customer": {
                    "email": "owner@example.com",
                    "firstName": "Maria",
                    "lastName": "Ivanova",
                    "phone": "+359 888 123 456",
                },
                "trademark": {
                    "markType": "smell",
                    "goodsAndServices": "Perfume",
                    "niceClasses": [3],
                },
            }
        )

    assert "Invalid markType" in str(exc_info.value)


@pytest.fixture
def service(uow_factory, validator, make_mypos_client, checkout_gateway, mirror_store):
    return OrderApplicationService(
        uow_factory,
        validator,
        legacy_gateway=make_mypos_client(),
        checkout_gateway=checkout_gateway,
        mirror=MirrorSync(mirror_store),
        frontend_url="https://shop.example.com/",
        backend_url="https://api.example.com",
    )


@pytest.mark.asyncio
async def test_legacy_order_uses_catalog_prices_and_signs_form(service, store, mirror_store):
    result = await service.create_legacy_order(_request(), client_ip="203.0.113.7")

    assert result.amount == Decimal("25.00")
    assert result.vat == Decimal("5.00")
    assert result.total == Decimal("30.00")
    fields = result.payment_params.fields
    assert fields["OrderID"] == result.order_id
    assert fields["Amount"] == "30.00"
    assert fields["CartItems"] == "2"
    assert fields["Article_2"] == VAT_LINE_ARTICLE
    assert fields["URL_OK"] == f"https://shop.example.com/checkout/success?orderId={result.order_id}"
    assert fields["URL_Notify"] == "https://api.example.com/api/v1/payments/notify"
    assert "Signature" in fields

    order = await store.orders.get_by_order_id(result.order_id)
    assert order.status == OrderStatus.PENDING
    assert order.expected_amount == Decimal("30.00")
    assert order.payment_method == PaymentMethod.MYPOS_EMBEDDED
    assert order.customer.ip == "203.0.113.7"
    assert mirror_store.records[-1].paid is False


@pytest.mark.asyncio
async def test_tampered_price_is_rejected_and_nothing_persisted(service, store):
    req = _request(items=[{"id": "nda", "type": "document", "price": 1}])

    with pytest.raises(PriceValidationException) as exc:
        await service.create_legacy_order(req)

    assert any("nda" in e for e in exc.value.errors)
    assert store.orders.rows == {}


@pytest.mark.asyncio
async def test_missing_gateway_is_reported(uow_factory, validator):
    service = OrderApplicationService(uow_factory, validator)

    with pytest.raises(GatewayNotConfiguredException):
        await service.create_legacy_order(_request())
    with pytest.raises(GatewayNotConfiguredException):
        await service.create_checkout_order(_request())


@pytest.mark.asyncio
async def test_payment_params_only_for_pending_orders(service, store):
    created = await service.create_legacy_order(_request())

    params = await service.get_legacy_payment_params(created.order_id)
    assert params.fields["OrderID"] == created.order_id

    with pytest.raises(OrderNotFoundException):
        await service.get_legacy_payment_params("ORD-MISSING")

    await store.orders.update_by_order_id(created.order_id, status=OrderStatus.PAID)
    with pytest.raises(OrderNotPendingException):
        await service.get_legacy_payment_params(created.order_id)


@pytest.mark.asyncio
async def test_checkout_order_creates_session_and_remembers_it(service, store, checkout_gateway):
    result = await service.create_checkout_order(_request())

    assert result.client_secret == "cs_test_1_secret_abc"
    req = checkout_gateway.created[0]
    assert req.amount == Decimal("30.00")
    assert req.order_type == "order"
    assert req.customer_email == "buyer@example.com"
    order = await store.orders.get_by_order_id(result.order_id)
    assert order.payment_method == PaymentMethod.STRIPE
    assert order.payment_data.checkout_session_id == "cs_test_1"


@pytest.mark.asyncio
async def test_checkout_session_for_existing_trademark_order(service, store, checkout_gateway):
    created = await service.create_trademark_order(_trademark_request())

    again = await service.create_checkout_session(created.order_id, "trademark")

    assert again.client_secret == "cs_test_2_secret_abc"
    assert checkout_gateway.created[-1].return_url.endswith(f"/trademark/success?orderId={created.order_id}")
    tm = await store.trademark_orders.get_by_order_id(created.order_id)
    assert tm.payment_data.checkout_session_id == "cs_test_2"

    with pytest.raises(OrderNotFoundException):
        await service.create_checkout_session("ORD-MISSING", "order")


@pytest.mark.asyncio
async def test_trademark_order_freezes_filing_fee(service, store, checkout_gateway):
    result = await service.create_trademark_order(_trademark_request())

    assert result.order_id.startswith("TM-")
    assert result.pricing.subtotal == Decimal("296.55")
    assert result.pricing.vat == Decimal("0.00")
    assert result.pricing.total == result.pricing.subtotal
    assert checkout_gateway.created[0].amount == Decimal("296.55")
    assert checkout_gateway.created[0].order_type == "trademark"

    order = await store.trademark_orders.get_by_order_id(result.order_id)
    assert order.status == TrademarkStatus.PENDING
    assert order.trademark.nice_classes == [1, 9, 35, 42, 45]


@pytest.mark.asyncio
async def test_payment_status_for_regular_and_trademark_orders(service, store):
    created = await service.create_legacy_order(_request())
    tm = await service.create_trademark_order(_trademark_request(classes=(9,)))

    status = await service.get_payment_status(created.order_id)
    assert status.status == "pending"
    assert status.paid is False
    assert status.amount == Decimal("30.00")

    tm_status = await service.get_payment_status(tm.order_id)
    assert tm_status.amount == Decimal("265.87")

    with pytest.raises(OrderNotFoundException):
        await service.get_payment_status("ORD-MISSING")


def test_prices_expose_catalog(service):
    prices = service.get_prices()

    assert prices.currency == "EUR"
    assert prices.vat_rate == Decimal("0.20")
    assert any(p.id == "employment_package" and p.documents for p in prices.packages)
