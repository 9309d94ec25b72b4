from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DuplicateOrderException
from domain.order.entity import (
    CustomerData,
    Order,
    OrderItem,
    OrderStatus,
    PaymentData,
    PaymentMethod,
    TrademarkData,
    TrademarkOrder,
    TrademarkStatus,
)
from domain.order.identifiers import generate_order_id
from domain.pricing.trademark import calculate_trademark_price
from application.ports.order_mirror import OrderMirrorRecord
from application.services.retention_service import RetentionService
from infrastructure.repositories.order_mirror_repository import SQLAlchemyOrderMirror


def _pending_order(order_id: str | None = None, **overrides) -> Order:
    params = dict(
        order_id=order_id or generate_order_id(),
        items=[OrderItem(id="employment_contract", type="document", name="Employment contract", price=Decimal("25"))],
        subtotal=Decimal("25.00"),
        vat=Decimal("5.00"),
        total=Decimal("30.00"),
        currency="EUR",
        customer=CustomerData(email="buyer@example.com", ip="203.0.113.7"),
        payment_method=PaymentMethod.MYPOS_EMBEDDED,
    )
    params.update(overrides)
    return Order.create_pending(**params)


@pytest.mark.asyncio
async def test_order_roundtrip_and_paid_update(sql_uow_factory):
    order = _pending_order()
    async with sql_uow_factory() as uow:
        created = await uow.order_repository.create(order)
    assert created.id is not None

    async with sql_uow_factory() as uow:
        loaded = await uow.order_repository.get_by_order_id(order.order_id)
        assert loaded.status == OrderStatus.PENDING
        assert loaded.expected_amount == Decimal("30.00")
        assert loaded.items[0].price == Decimal("25")
        assert loaded.customer.ip == "203.0.113.7"
        assert loaded.created_at.tzinfo is not None

        loaded.mark_paid(Decimal("30.00"), transaction_ref="TRN-1", payment_reference="TRN-1")
        await uow.order_repository.update(loaded)

    async with sql_uow_factory(readonly=True) as uow:
        paid = await uow.order_repository.get_by_order_id(order.order_id)
        by_pk = await uow.order_repository.get_by_id(created.id)
    assert paid.status == OrderStatus.PAID
    assert paid.paid_amount == Decimal("30.00")
    assert paid.payment_data.transaction_ref == "TRN-1"
    assert paid.paid_at is not None
    assert by_pk.order_id == order.order_id


@pytest.mark.asyncio
async def test_duplicate_order_id_is_rejected(sql_uow_factory):
    order = _pending_order("ORD-DUP-00000001")
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(order)

    with pytest.raises(DuplicateOrderException):
        async with sql_uow_factory() as uow:
            await uow.order_repository.create(_pending_order("ORD-DUP-00000001"))


@pytest.mark.asyncio
async def test_update_by_order_id_merges_payment_data_and_refuses_frozen_fields(sql_uow_factory):
    order = _pending_order()
    async with sql_uow_factory() as uow:
        await uow.order_repository.create(order)

    async with sql_uow_factory() as uow:
        updated = await uow.order_repository.update_by_order_id(
            order.order_id, payment_data=PaymentData(checkout_session_id="cs_test_1")
        )
        missing = await uow.order_repository.update_by_order_id("ORD-NOPE", status=OrderStatus.PAID)
    assert updated.payment_data.checkout_session_id == "cs_test_1"
    assert missing is None

    with pytest.raises(ValueError):
        async with sql_uow_factory() as uow:
            await uow.order_repository.update_by_order_id(order.order_id, expected_amount=Decimal("1"))

    async with sql_uow_factory(readonly=True) as uow:
        unchanged = await uow.order_repository.get_by_order_id(order.order_id)
    assert unchanged.expected_amount == Decimal("30.00")


@pytest.mark.asyncio
async def test_trademark_order_roundtrip_keeps_pricing_snapshot(sql_uow_factory):
    order = TrademarkOrder(
        id=None,
        order_id=generate_order_id("TM"),
        status=TrademarkStatus.PENDING,
        customer=CustomerData(email="owner@example.com", first_name="Ivan", last_name="Petrov"),
        trademark=TrademarkData(mark_type="word", mark_text="ACME", goods_and_services="Software", nice_classes=[9, 35, 42, 45, 1]),
        pricing=calculate_trademark_price(5),
    )
    async with sql_uow_factory() as uow:
        await uow.trademark_order_repository.create(order)

    async with sql_uow_factory() as uow:
        loaded = await uow.trademark_order_repository.get_by_order_id(order.order_id)
        assert loaded.pricing.total == Decimal("296.55")
        assert loaded.trademark.nice_classes == [9, 35, 42, 45, 1]
        loaded.reject_payment(Decimal("10.00"))
        await uow.trademark_order_repository.update(loaded)

    async with sql_uow_factory(readonly=True) as uow:
        cancelled = await uow.trademark_order_repository.get_by_order_id(order.order_id)
    assert cancelled.status == TrademarkStatus.CANCELLED
    assert cancelled.failed_at is not None
    assert cancelled.paid_amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_ledger_insert_is_at_most_once(sql_uow_factory):
    async with sql_uow_factory() as uow:
        assert await uow.webhook_event_ledger.try_insert("evt_1", "checkout.session.completed") is True

    async with sql_uow_factory() as uow:
        assert await uow.webhook_event_ledger.try_insert("evt_1", "checkout.session.completed") is False

    async with sql_uow_factory() as uow:
        assert await uow.webhook_event_ledger.try_insert("evt_2", "payment_intent.created") is True


@pytest.mark.asyncio
async def test_ledger_purge_removes_only_expired_entries(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.webhook_event_ledger.try_insert("evt_old", "checkout.session.completed")

    retention = RetentionService(sql_uow_factory)
    assert await retention.purge_webhook_events(now=datetime.now(timezone.utc)) == 0
    assert await retention.purge_webhook_events(now=datetime.now(timezone.utc) + timedelta(days=61)) == 1

    async with sql_uow_factory() as uow:
        assert await uow.webhook_event_ledger.try_insert("evt_old", "checkout.session.completed") is True


@pytest.mark.asyncio
async def test_cleanup_deletes_expired_pending_and_cancelled_orders_only(sql_uow_factory):
    stale = _pending_order()
    cancelled = _pending_order()
    cancelled.transition_to(OrderStatus.CANCELLED)
    paid = _pending_order()
    paid.mark_paid(Decimal("30.00"))
    async with sql_uow_factory() as uow:
        for order in (stale, cancelled, paid):
            await uow.order_repository.create(order)

    retention = RetentionService(sql_uow_factory)
    deleted = await retention.cleanup_stale_orders(now=datetime.now(timezone.utc) + timedelta(hours=25))

    assert deleted == 2
    async with sql_uow_factory(readonly=True) as uow:
        assert await uow.order_repository.get_by_order_id(paid.order_id) is not None
        assert await uow.order_repository.get_by_order_id(stale.order_id) is None


@pytest.mark.asyncio
async def test_order_mirror_upserts_single_document(session_factory):
    mirror = SQLAlchemyOrderMirror(session_factory)
    await mirror.upsert(OrderMirrorRecord(order_id="ORD-M-1", paid=False, amount=Decimal("30.00"), currency="EUR"))
    await mirror.upsert(
        OrderMirrorRecord(order_id="ORD-M-1", paid=True, amount=Decimal("30.00"), currency="EUR", payment_reference="TRN-9")
    )

    doc = await mirror.get("ORD-M-1")
    assert doc.paid is True
    assert doc.payment_reference == "TRN-9"
    assert await mirror.get("ORD-M-2") is None
