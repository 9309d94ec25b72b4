from decimal import Decimal

import pytest

from application.services.order_events import OrderEventPublisher
from domain.order.entity import CustomerData, Order, OrderItem, PaymentMethod
from domain.order.events import FraudSuspected, OrderEvent, OrderPaid, OrderPaymentFailed, OrderStatusChanged


def _pending() -> Order:
    return Order.create_pending(
        order_id="ORD-EVT-00000001",
        items=[OrderItem(id="nda", type="document", name="NDA", price=Decimal("25"))],
        subtotal=Decimal("25.00"),
        vat=Decimal("5.00"),
        total=Decimal("30.00"),
        currency="EUR",
        customer=CustomerData(),
        payment_method=PaymentMethod.MYPOS_EMBEDDED,
    )


@pytest.mark.asyncio
async def test_default_publisher_handles_every_event_kind():
    publisher = OrderEventPublisher()
    events = [
        OrderStatusChanged(order_id="ORD-1", previous="pending", current="paid"),
        OrderPaid(order_id="ORD-1", amount=Decimal("30.00"), transaction_ref="TRN-1"),
        OrderPaymentFailed(order_id="ORD-2", reason="declined"),
        FraudSuspected(order_id="ORD-3", expected_amount=Decimal("30.00"), received_amount=Decimal("1.00")),
        OrderEvent(order_id="ORD-4"),
    ]

    await publisher.publish(events)


@pytest.mark.asyncio
async def test_pulled_events_are_dispatched_in_order(event_sink):
    order = _pending()
    order.mark_fraud_attempt(Decimal("29.50"))

    await event_sink.publish(order.pull_events())

    assert event_sink.types() == ["OrderStatusChanged", "FraudSuspected"]
    assert order.pull_events() == []
