from decimal import Decimal

import pytest

from application.services.mirror_sync import MirrorSync
from application.services.order_admin_service import OrderAdminService
from domain.common.exceptions import (
    DomainValidationException,
    GatewayNotConfiguredException,
    InvalidStatusTransitionException,
    OrderNotFoundException,
)
from domain.order.entity import (
    CustomerData,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    TrademarkData,
    TrademarkOrder,
    TrademarkStatus,
)
from domain.pricing.trademark import calculate_trademark_price


def _order(order_id="ORD-ADM-00000001", *, paid=False, method=PaymentMethod.MYPOS_EMBEDDED) -> Order:
    order = Order.create_pending(
        order_id=order_id,
        items=[OrderItem(id="nda", type="document", name="NDA", price=Decimal("15"))],
        subtotal=Decimal("15.00"),
        vat=Decimal("3.00"),
        total=Decimal("18.00"),
        currency="EUR",
        customer=CustomerData(),
        payment_method=method,
    )
    if paid:
        order.mark_paid(Decimal("18.00"), transaction_ref="TRN-77")
    return order


@pytest.fixture
def service(uow_factory, legacy_stub, mirror_store, event_sink):
    return OrderAdminService(
        uow_factory, legacy_gateway=legacy_stub, mirror=MirrorSync(mirror_store), events=event_sink
    )


@pytest.mark.asyncio
async def test_status_update_follows_transition_table(service, store, mirror_store):
    await store.orders.create(_order(paid=True))

    result = await service.update_order_status("ORD-ADM-00000001", "processing")

    assert result.previous_status == "paid"
    assert result.status == "processing"
    assert result.changed is True
    assert (await store.orders.get_by_order_id("ORD-ADM-00000001")).status == OrderStatus.PROCESSING
    assert mirror_store.records[-1].paid is True


@pytest.mark.asyncio
async def test_same_status_is_reported_unchanged(service, store, mirror_store):
    await store.orders.create(_order())

    result = await service.update_order_status("ORD-ADM-00000001", "pending")

    assert result.changed is False
    assert mirror_store.records == []


@pytest.mark.asyncio
async def test_cancel_stamps_failed_at(service, store):
    await store.orders.create(_order())

    await service.update_order_status("ORD-ADM-00000001", "cancelled")

    assert (await store.orders.get_by_order_id("ORD-ADM-00000001")).failed_at is not None


@pytest.mark.asyncio
async def test_manual_payment_stamps_paid_at_and_publishes_event(service, store, event_sink):
    await store.orders.create(_order())

    result = await service.update_order_status("ORD-ADM-00000001", "paid")

    order = await store.orders.get_by_order_id("ORD-ADM-00000001")
    assert result.changed is True
    assert order.paid_at is not None
    assert order.paid_at == order.updated_at
    assert event_sink.types() == ["OrderStatusChanged"]
    assert event_sink.published[0].previous == "pending"
    assert event_sink.published[0].current == "paid"


@pytest.mark.asyncio
async def test_unchanged_status_publishes_nothing(service, store, event_sink):
    await store.orders.create(_order())

    await service.update_order_status("ORD-ADM-00000001", "pending")

    assert event_sink.published == []


@pytest.mark.asyncio
async def test_invalid_transition_and_unknown_status(service, store):
    await store.orders.create(_order())

    with pytest.raises(InvalidStatusTransitionException):
        await service.update_order_status("ORD-ADM-00000001", "finished")
    with pytest.raises(DomainValidationException):
        await service.update_order_status("ORD-ADM-00000001", "shipped")
    with pytest.raises(OrderNotFoundException):
        await service.update_order_status("ORD-MISSING", "paid")


@pytest.mark.asyncio
async def test_trademark_status_update(service, store):
    await store.trademark_orders.create(
        TrademarkOrder(
            id=None,
            order_id="TM-ADM-00000001",
            status=TrademarkStatus.PENDING,
            customer=CustomerData(email="owner@example.com"),
            trademark=TrademarkData(mark_type="word", goods_and_services="Software", nice_classes=[9]),
            pricing=calculate_trademark_price(1),
        )
    )

    result = await service.update_trademark_status("TM-ADM-00000001", "rejected")

    assert result.status == "rejected"
    order = await store.trademark_orders.get_by_order_id("TM-ADM-00000001")
    assert order.failed_at is not None
    with pytest.raises(InvalidStatusTransitionException):
        await service.update_trademark_status("TM-ADM-00000001", "paid")


@pytest.mark.asyncio
async def test_gateway_status_query_is_read_only(service, store, legacy_stub):
    await store.orders.create(_order())

    result = await service.query_gateway_status("ORD-ADM-00000001")

    assert result.success is True
    assert result.method == "IPCGetTxnStatus"
    assert legacy_stub.status_queries == ["ORD-ADM-00000001"]
    assert (await store.orders.get_by_order_id("ORD-ADM-00000001")).status == OrderStatus.PENDING

    with pytest.raises(OrderNotFoundException):
        await service.query_gateway_status("ORD-MISSING")


@pytest.mark.asyncio
async def test_refund_defaults_to_full_paid_amount(service, store, legacy_stub):
    await store.orders.create(_order(paid=True))

    result = await service.refund("ORD-ADM-00000001")

    assert result.success is True
    assert legacy_stub.refunds == [("ORD-ADM-00000001", "TRN-77", Decimal("18.00"), "EUR")]


@pytest.mark.asyncio
async def test_refund_guards(service, store):
    await store.orders.create(_order("ORD-ADM-PENDING"))
    await store.orders.create(_order("ORD-ADM-STRIPE", paid=True, method=PaymentMethod.STRIPE))
    await store.orders.create(_order("ORD-ADM-PAID", paid=True))

    with pytest.raises(DomainValidationException):
        await service.refund("ORD-ADM-PENDING")
    with pytest.raises(DomainValidationException):
        await service.refund("ORD-ADM-STRIPE")
    with pytest.raises(DomainValidationException):
        await service.refund("ORD-ADM-PAID", Decimal("18.01"))


@pytest.mark.asyncio
async def test_declined_refund_is_returned_not_raised(service, store, legacy_stub):
    legacy_stub.refund_status = "5"
    await store.orders.create(_order(paid=True))

    result = await service.refund("ORD-ADM-00000001", Decimal("5"))

    assert result.success is False
    assert result.status_code == "5"


@pytest.mark.asyncio
async def test_gateway_operations_need_legacy_gateway(uow_factory):
    service = OrderAdminService(uow_factory)

    with pytest.raises(GatewayNotConfiguredException):
        await service.query_gateway_status("ORD-1")
    with pytest.raises(GatewayNotConfiguredException):
        await service.refund("ORD-1")
