"""
Слоты выдачи заказов на текущий рабочий день.

Единственный общий изменяемый ресурс - счётчик booked у слота.
Резервирование идёт под asyncio.Lock конкретного слота, поэтому booked
никогда не превышает capacity даже при параллельных оформлениях.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.order import count_booked_by_slot
from unifood.services.clock import Clock

logger = logging.getLogger(__name__)

SLOT_NOT_FOUND = "SlotNotFound"
SLOT_FULL = "SlotFull"
SLOT_IN_PAST = "SlotInPast"


@dataclass
class TimeSlot:
    label: str  # "13:15"
    starts_at: datetime
    capacity: int
    booked: int = 0

    def is_past(self, now: datetime) -> bool:
        return self.starts_at < now

    def is_available(self, now: datetime) -> bool:
        return self.booked < self.capacity and not self.is_past(now)


@dataclass(frozen=True)
class ReservationResult:
    ok: bool
    reason: str | None = None


def generate_slots(
    now: datetime,
    closing_time: time,
    capacity: int = 20,
    interval_minutes: int = 15,
    lead_minutes: int = 30,
) -> List[TimeSlot]:
    """
    Слоты от ближайшей границы четверти часа после now + lead_minutes
    до закрытия включительно. После закрытия - пустой список.
    """
    closing = now.replace(hour=closing_time.hour, minute=closing_time.minute, second=0, microsecond=0)
    if now >= closing:
        return []

    offset = math.ceil((now.minute + lead_minutes) / interval_minutes) * interval_minutes
    current = now.replace(minute=0, second=0, microsecond=0) + timedelta(minutes=offset)

    slots = []
    while current <= closing:
        slots.append(TimeSlot(label=current.strftime("%H:%M"), starts_at=current, capacity=capacity))
        current += timedelta(minutes=interval_minutes)
    return slots


class SlotCapacityManager:
    def __init__(self, slots: Iterable[TimeSlot], clock: Clock, business_day: date | None = None):
        self.clock = clock
        self.business_day = business_day
        self._slots: Dict[str, TimeSlot] = {s.label: s for s in slots}
        self._locks: Dict[str, asyncio.Lock] = {label: asyncio.Lock() for label in self._slots}

    @property
    def slots(self) -> List[TimeSlot]:
        return list(self._slots.values())

    def get(self, label: str) -> TimeSlot | None:
        return self._slots.get(label)

    def seed(self, counts: Mapping[str, int]) -> None:
        """Восстанавливает booked из уже подтверждённых заказов дня."""
        for label, count in counts.items():
            slot = self._slots.get(label)
            if slot is not None:
                slot.booked = min(count, slot.capacity)

    async def reserve(self, label: str) -> ReservationResult:
        slot = self._slots.get(label)
        if slot is None:
            return ReservationResult(False, SLOT_NOT_FOUND)

        async with self._locks[label]:
            if slot.is_past(self.clock.now()):
                return ReservationResult(False, SLOT_IN_PAST)
            if slot.booked >= slot.capacity:
                return ReservationResult(False, SLOT_FULL)
            slot.booked += 1
        logger.debug("Slot %s reserved: %s/%s", label, slot.booked, slot.capacity)
        return ReservationResult(True)

    async def release(self, label: str) -> bool:
        """Компенсация: возвращает место в слоте."""
        slot = self._slots.get(label)
        if slot is None:
            return False
        async with self._locks[label]:
            if slot.booked == 0:
                return False
            slot.booked -= 1
        logger.debug("Slot %s released: %s/%s", label, slot.booked, slot.capacity)
        return True


class SlotBook:
    """
    Держит менеджер слотов текущего рабочего дня.
    При смене дня набор слотов создаётся заново, booked берётся из заказов дня.
    После закрытия слотов нет.
    """

    def __init__(
        self,
        clock: Clock,
        closing_time: time,
        capacity: int = 20,
        interval_minutes: int = 15,
        lead_minutes: int = 30,
    ):
        self.clock = clock
        self.closing_time = closing_time
        self.capacity = capacity
        self.interval_minutes = interval_minutes
        self.lead_minutes = lead_minutes
        self._manager: SlotCapacityManager | None = None
        self._lock = asyncio.Lock()

    def _is_closed(self, now: datetime) -> bool:
        return now.time() >= self.closing_time

    async def current(self, db: AsyncSession) -> SlotCapacityManager:
        now = self.clock.now()
        today = now.date()
        async with self._lock:
            manager = self._manager
            stale = manager is None or manager.business_day != today
            if not stale and self._is_closed(now) and manager.slots:
                stale = True
            if stale:
                manager = await self._regenerate(db, now)
                self._manager = manager
            return manager

    async def _regenerate(self, db: AsyncSession, now: datetime) -> SlotCapacityManager:
        slots = generate_slots(
            now,
            self.closing_time,
            capacity=self.capacity,
            interval_minutes=self.interval_minutes,
            lead_minutes=self.lead_minutes,
        )
        manager = SlotCapacityManager(slots, self.clock, business_day=now.date())
        if slots:
            manager.seed(await count_booked_by_slot(db, now.date()))
        logger.info("Generated %s pickup slots for %s", len(slots), now.date().isoformat())
        return manager

    async def release(self, business_day: date, label: str) -> bool:
        """Освобождает место, если слот относится к текущему набору."""
        manager = self._manager
        if manager is None or manager.business_day != business_day:
            return False
        return await manager.release(label)
