import asyncio
from datetime import date, datetime, time, timedelta

from unifood.models import OrderStatusEnum
from unifood.services.clock import FixedClock
from unifood.services.slots import (
    SLOT_FULL, SLOT_IN_PAST, SLOT_NOT_FOUND, SlotBook, SlotCapacityManager, generate_slots,
)

from factories import TZ, make_item, make_order, make_user

CLOSING = time(22, 0)


def at(hour, minute, day=18):
    return datetime(2026, 10, day, hour, minute, tzinfo=TZ)


def test_slots_start_at_next_quarter_after_lead_time():
    slots = generate_slots(at(12, 7), CLOSING)
    labels = [s.label for s in slots]
    assert labels[0] == "12:45"
    assert labels[1] == "13:00"
    assert labels[-1] == "22:00"
    assert len(labels) == 38
    assert all(b.starts_at - a.starts_at == timedelta(minutes=15) for a, b in zip(slots, slots[1:]))
    assert all(s.capacity == 20 and s.booked == 0 for s in slots)


def test_slots_on_the_hour():
    assert generate_slots(at(12, 0), CLOSING)[0].label == "12:30"


def test_last_slot_is_closing_time():
    assert [s.label for s in generate_slots(at(21, 20), CLOSING)] == ["22:00"]
    assert generate_slots(at(21, 40), CLOSING) == []


def test_no_slots_at_or_after_closing():
    assert generate_slots(at(22, 0), CLOSING) == []
    assert generate_slots(at(23, 10), CLOSING) == []


def manager_at(clock):
    slots = generate_slots(clock.now(), CLOSING)
    return SlotCapacityManager(slots, clock, business_day=clock.now().date())


async def test_full_slot_is_refused_and_last_place_is_granted():
    clock = FixedClock(at(12, 7))
    manager = manager_at(clock)
    manager.seed({"13:00": 20, "13:15": 19})

    full = await manager.reserve("13:00")
    assert not full.ok and full.reason == SLOT_FULL
    assert manager.get("13:00").booked == 20

    last = await manager.reserve("13:15")
    assert last.ok
    assert manager.get("13:15").booked == 20
    assert not manager.get("13:15").is_available(clock.now())


async def test_unknown_slot():
    manager = manager_at(FixedClock(at(12, 7)))
    result = await manager.reserve("03:00")
    assert result.reason == SLOT_NOT_FOUND


async def test_slot_in_the_past_is_refused():
    clock = FixedClock(at(12, 7))
    manager = manager_at(clock)
    clock.set(at(13, 20))
    result = await manager.reserve("13:15")
    assert not result.ok and result.reason == SLOT_IN_PAST
    assert (await manager.reserve("13:30")).ok


async def test_concurrent_reservations_never_overbook():
    manager = manager_at(FixedClock(at(12, 7)))

    results = await asyncio.gather(*(manager.reserve("13:00") for _ in range(50)))

    assert sum(r.ok for r in results) == 20
    assert all(r.reason == SLOT_FULL for r in results if not r.ok)
    assert manager.get("13:00").booked == 20


async def test_release_returns_place():
    manager = manager_at(FixedClock(at(12, 7)))
    await manager.reserve("13:00")
    assert await manager.release("13:00")
    assert manager.get("13:00").booked == 0
    assert not await manager.release("13:00")
    assert not await manager.release("nope")


def test_seed_never_exceeds_capacity():
    manager = manager_at(FixedClock(at(12, 7)))
    manager.seed({"13:00": 25, "09:00": 3})
    assert manager.get("13:00").booked == 20


async def test_slot_book_seeds_booked_from_existing_orders(db):
    clock = FixedClock(at(12, 7))
    user = await make_user(db)
    item = await make_item(db)
    day = date(2026, 10, 18)
    await make_order(db, user, [(item, 1)], day, slot="13:00", ref="pay_a")
    await make_order(db, user, [(item, 1)], day, slot="13:00", ref="pay_b")
    cancelled = await make_order(db, user, [(item, 1)], day, slot="13:00", ref="pay_c")
    cancelled.status = OrderStatusEnum.cancelled
    await db.commit()
    await make_order(db, user, [(item, 1)], date(2026, 10, 17), slot="13:00", ref="pay_d")

    book = SlotBook(clock, CLOSING)
    manager = await book.current(db)

    assert manager.get("13:00").booked == 2
    assert manager.get("13:15").booked == 0


async def test_slot_book_regenerates_on_new_day(db):
    clock = FixedClock(at(12, 7))
    book = SlotBook(clock, CLOSING)
    first = await book.current(db)
    await first.reserve("13:00")
    assert await book.current(db) is first

    clock.set(at(9, 0, day=19))
    second = await book.current(db)

    assert second is not first
    assert second.business_day == date(2026, 10, 19)
    assert second.slots[0].label == "09:30"
    assert second.get("13:00").booked == 0


async def test_slot_book_is_empty_after_closing(db):
    clock = FixedClock(at(21, 0))
    book = SlotBook(clock, CLOSING)
    assert (await book.current(db)).slots

    clock.set(at(22, 1))
    assert (await book.current(db)).slots == []


async def test_slot_book_release_ignores_other_days(db):
    clock = FixedClock(at(12, 7))
    book = SlotBook(clock, CLOSING)
    manager = await book.current(db)
    await manager.reserve("13:00")

    assert not await book.release(date(2026, 10, 17), "13:00")
    assert await book.release(date(2026, 10, 18), "13:00")
    assert manager.get("13:00").booked == 0
