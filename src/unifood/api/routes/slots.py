from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.db.deps import get_async_session, get_clock, get_slot_book
from unifood.schemas.slot import SlotRead
from unifood.services.clock import Clock
from unifood.services.slots import SlotBook


router = APIRouter(prefix="/slots", tags=["slots"])

@router.get("/", response_model=List[SlotRead])
async def list_slots(
    db: AsyncSession = Depends(get_async_session),
    slot_book: SlotBook = Depends(get_slot_book),
    clock: Clock = Depends(get_clock),
):
    """
    Слоты выдачи на сегодня с занятостью. После закрытия список пустой.
    """
    manager = await slot_book.current(db)
    now = clock.now()
    return [
        SlotRead(time=s.label, capacity=s.capacity, booked=s.booked, available=s.is_available(now))
        for s in manager.slots
    ]
