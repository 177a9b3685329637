import asyncio
import re
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from unifood.crud.menu import update_menu_item
from unifood.crud.order import get_order_by_id, get_order_by_payment_ref, update_order_status
from unifood.errors import (
    EmptyCart, ItemUnavailable, PaymentFailed, PendingCheckoutNotFound, PersistenceFailure, SlotUnavailable,
)
from unifood.models import Notification, NotificationTypeEnum, Order, OrderStatusEnum
from unifood.schemas.menu import MenuItemUpdate
from unifood.schemas.order import OrderCreate, OrderItemCreate, OrderItemRead
from unifood.services.notifications import Notifier
from unifood.services.payment import PaymentResult
from unifood.services.pipeline import OrderPipeline, TokenIssuer, format_token
from unifood.services.slots import SLOT_FULL

from factories import FakeGateway, RecordingSink, make_item, make_order, make_user

TODAY = date(2026, 10, 18)


async def count_orders(db):
    return await db.scalar(select(func.count(Order.id)))


@pytest.fixture
async def user(db):
    return await make_user(db)


@pytest.fixture
async def biryani(db):
    return await make_item(db, name="Chicken Biryani", price="120", is_veg=False, allergens=["dairy"], preparation_time=25)


@pytest.fixture
async def soda(db):
    return await make_item(db, name="Fresh Lime Soda", price="30", preparation_time=5)


async def booked(db, slot_book, label):
    return (await slot_book.current(db)).get(label).booked


async def test_places_order_with_tax_token_and_notification(db, pipeline, carts, user, biryani, soda, gateway, sink, slot_book):
    cart = carts.get(user.id)
    cart.add_or_increment(biryani.id, 2)

    order = await pipeline.place_order(db, user, "13:00", "upi", "less spicy")

    assert order.subtotal == Decimal("240.00")
    assert order.total_amount == Decimal("252.00")
    assert order.status == OrderStatusEnum.ordered
    assert order.token == "261018-001"
    assert order.payment_ref == "pay_test_1"
    assert order.scheduled_time == "13:00"
    assert order.special_instructions == "less spicy"
    assert order.estimated_preparation_time == 25
    assert [(i.name, i.quantity, i.price) for i in order.items] == [("Chicken Biryani", 2, Decimal("120.00"))]

    assert gateway.calls == [(Decimal("252.00"), "INR", str(user.id), "upi")]
    assert cart.is_empty()
    assert await booked(db, slot_book, "13:00") == 1

    [note] = (await db.execute(select(Notification))).scalars().all()
    assert note.type == NotificationTypeEnum.success
    assert note.title == "Order Placed Successfully"
    assert order.token in note.message and "13:00" in note.message
    assert [n.id for n in sink.delivered] == [note.id]


async def test_estimated_time_is_longest_item(db, pipeline, carts, user, biryani, soda):
    carts.get(user.id).add_or_increment(soda.id, 3)
    carts.get(user.id).add_or_increment(biryani.id, 1)
    order = await pipeline.place_order(db, user, "13:00", "card")
    assert order.estimated_preparation_time == 25
    assert order.total_amount == Decimal("220.50")


async def test_empty_cart(db, pipeline, user, gateway):
    with pytest.raises(EmptyCart):
        await pipeline.place_order(db, user, "13:00", "upi")
    assert gateway.calls == []


async def test_missing_slot_aborts_before_payment(db, pipeline, carts, user, biryani, gateway):
    carts.get(user.id).add_or_increment(biryani.id)
    with pytest.raises(SlotUnavailable):
        await pipeline.place_order(db, user, None, "upi")
    with pytest.raises(SlotUnavailable) as exc_info:
        await pipeline.place_order(db, user, "04:00", "upi")
    assert exc_info.value.reason == "SlotNotFound"
    assert gateway.calls == []


async def test_full_slot_aborts_before_payment(db, pipeline, carts, user, biryani, gateway, slot_book):
    manager = await slot_book.current(db)
    manager.seed({"13:00": 20})
    carts.get(user.id).add_or_increment(biryani.id)

    with pytest.raises(SlotUnavailable) as exc_info:
        await pipeline.place_order(db, user, "13:00", "upi")

    assert exc_info.value.reason == SLOT_FULL
    assert gateway.calls == []
    assert await count_orders(db) == 0


async def test_declined_payment_releases_slot(db, carts, slot_book, notifier, clock, user, biryani):
    gateway = FakeGateway(PaymentResult.failed("insufficient_funds"))
    pipeline = OrderPipeline(carts, slot_book, gateway, notifier, clock)
    carts.get(user.id).add_or_increment(biryani.id, 2)

    with pytest.raises(PaymentFailed) as exc_info:
        await pipeline.place_order(db, user, "13:00", "upi")

    assert exc_info.value.reason == "insufficient_funds"
    assert await count_orders(db) == 0
    assert await booked(db, slot_book, "13:00") == 0
    assert carts.get(user.id).quantity_of(biryani.id) == 2


async def test_payment_timeout_releases_slot(db, carts, slot_book, notifier, clock, user, biryani):
    gateway = FakeGateway(delay=1)
    pipeline = OrderPipeline(carts, slot_book, gateway, notifier, clock, payment_timeout=0.01)
    carts.get(user.id).add_or_increment(biryani.id)

    with pytest.raises(PaymentFailed) as exc_info:
        await pipeline.place_order(db, user, "13:00", "upi")

    assert exc_info.value.reason == "timeout"
    assert await booked(db, slot_book, "13:00") == 0
    assert await count_orders(db) == 0


async def test_gateway_crash_is_payment_failure(db, carts, slot_book, notifier, clock, user, biryani):
    gateway = FakeGateway(error=ConnectionError("reset by peer"))
    pipeline = OrderPipeline(carts, slot_book, gateway, notifier, clock)
    carts.get(user.id).add_or_increment(biryani.id)

    with pytest.raises(PaymentFailed) as exc_info:
        await pipeline.place_order(db, user, "13:00", "upi")

    assert exc_info.value.reason == "gateway_error"
    assert await booked(db, slot_book, "13:00") == 0


async def test_unavailable_item_stops_checkout(db, pipeline, carts, user, biryani, gateway, slot_book):
    await update_menu_item(db, biryani.id, MenuItemUpdate(is_available=False))
    carts.get(user.id).add_or_increment(biryani.id)

    with pytest.raises(ItemUnavailable):
        await pipeline.place_order(db, user, "13:00", "upi")
    assert gateway.calls == []
    assert await booked(db, slot_book, "13:00") == 0


async def test_persisting_same_payment_twice_creates_one_order(db, pipeline, carts, user, biryani):
    carts.get(user.id).add_or_increment(biryani.id)
    order = await pipeline.place_order(db, user, "13:00", "upi")

    checkout = pipeline.pending(order.payment_ref)
    assert checkout is None

    replay = OrderCreate(
        user_id=user.id,
        items=[OrderItemCreate(**OrderItemRead.model_validate(i).model_dump(exclude={"id"})) for i in order.items],
        business_day=order.business_day,
        scheduled_time=order.scheduled_time,
        payment_ref=order.payment_ref,
        payment_method="upi",
        subtotal=order.subtotal,
        total_amount=order.total_amount,
        estimated_preparation_time=order.estimated_preparation_time,
    )
    again = await pipeline.persist_checkout(db, replay)
    again_twice = await pipeline.persist_checkout(db, replay)

    assert again.id == order.id == again_twice.id
    assert await count_orders(db) == 1


async def test_store_failure_keeps_payment_for_retry(db, pipeline, carts, user, biryani, gateway, slot_book, monkeypatch):
    import unifood.services.pipeline as pipeline_module

    real_create = pipeline_module.create_order
    calls = {"n": 0}

    async def flaky_create(session, order_in, token):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("INSERT INTO orders", {}, Exception("database is locked"))
        return await real_create(session, order_in, token)

    monkeypatch.setattr(pipeline_module, "create_order", flaky_create)
    user_id = user.id
    carts.get(user_id).add_or_increment(biryani.id, 2)

    with pytest.raises(PersistenceFailure) as exc_info:
        await pipeline.place_order(db, user, "13:00", "upi")

    ref = exc_info.value.payment_ref
    assert ref == "pay_test_1"
    assert pipeline.pending(ref) is not None
    assert await count_orders(db) == 0
    # оплачено: слот держим, корзину не трогаем
    assert await booked(db, slot_book, "13:00") == 1
    assert not carts.get(user_id).is_empty()

    order = await pipeline.retry(db, ref)

    assert order.payment_ref == ref
    assert order.total_amount == Decimal("252.00")
    assert len(gateway.calls) == 1
    assert pipeline.pending(ref) is None
    assert carts.get(user_id).is_empty()
    assert await count_orders(db) == 1

    assert (await pipeline.retry(db, ref)).id == order.id
    assert await count_orders(db) == 1


async def test_retry_unknown_payment(db, pipeline):
    with pytest.raises(PendingCheckoutNotFound):
        await pipeline.retry(db, "pay_unknown")


async def test_snapshot_survives_catalog_changes(db, pipeline, carts, user, biryani):
    carts.get(user.id).add_or_increment(biryani.id, 2)
    order = await pipeline.place_order(db, user, "13:00", "upi")

    await update_menu_item(db, biryani.id, MenuItemUpdate(price=Decimal("200"), allergens=["dairy", "nuts"]))

    stored = await get_order_by_id(db, order.id)
    assert stored.items[0].price == Decimal("120.00")
    assert stored.items[0].allergens == ["dairy"]
    assert stored.total_amount == Decimal("252.00")


async def test_notification_failure_does_not_lose_order(db, carts, slot_book, gateway, clock, user, biryani):
    sink = RecordingSink(fail=True)
    pipeline = OrderPipeline(carts, slot_book, gateway, Notifier(sink), clock)
    carts.get(user.id).add_or_increment(biryani.id)

    order = await pipeline.place_order(db, user, "13:00", "upi")

    assert order.id is not None
    assert sink.attempts == 2
    assert await count_orders(db) == 1


async def test_tokens_follow_daily_sequence(db, pipeline, carts, user, biryani):
    tokens = []
    for _ in range(3):
        carts.get(user.id).add_or_increment(biryani.id)
        tokens.append((await pipeline.place_order(db, user, "13:00", "upi")).token)
    assert tokens == ["261018-001", "261018-002", "261018-003"]
    assert len(set(tokens)) == 3


async def test_token_sequence_continues_after_restart(db, user, biryani):
    await make_order(db, user, [(biryani, 1)], TODAY, ref="pay_x1", token="261018-041")
    await make_order(db, user, [(biryani, 1)], date(2026, 10, 17), ref="pay_x2", token="261017-077")

    issuer = TokenIssuer()
    assert await issuer.issue(db, TODAY) == "261018-042"
    assert await issuer.issue(db, TODAY) == "261018-043"
    assert await issuer.issue(db, date(2026, 10, 19)) == "261019-001"


def test_token_format():
    assert format_token(TODAY, 7) == "261018-007"
    assert format_token(TODAY, 1000) == "261018-1000"
    assert re.fullmatch(r"\d{6}-\d{3,}", format_token(TODAY, 12))


async def test_cancelled_checkout_gives_slot_back(db, carts, slot_book, notifier, clock, user, biryani):
    gateway = FakeGateway(delay=5)
    pipeline = OrderPipeline(carts, slot_book, gateway, notifier, clock, payment_timeout=10)
    carts.get(user.id).add_or_increment(biryani.id)

    task = asyncio.create_task(pipeline.place_order(db, user, "13:00", "upi"))
    while not gateway.calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await booked(db, slot_book, "13:00") == 0
    assert await count_orders(db) == 0
    assert pipeline._user_locks == {}


async def test_parallel_checkouts_of_one_user_run_one_by_one(db, pipeline, carts, user, biryani, gateway):
    carts.get(user.id).add_or_increment(biryani.id)

    first, second = await asyncio.gather(
        pipeline.place_order(db, user, "13:00", "upi"),
        pipeline.place_order(db, user, "13:00", "upi"),
        return_exceptions=True,
    )

    assert first.token == "261018-001"
    assert isinstance(second, EmptyCart)
    assert len(gateway.calls) == 1
    # локи пользователей не копятся
    assert pipeline._user_locks == {}


async def test_payment_ref_lookup_returns_fresh_order(db, user, biryani):
    order = await make_order(db, user, [(biryani, 1)], TODAY, ref="pay_fresh")
    await update_order_status(db, order.id, OrderStatusEnum.ordered, OrderStatusEnum.preparing)

    found = await get_order_by_payment_ref(db, "pay_fresh")

    assert found.status == OrderStatusEnum.preparing
