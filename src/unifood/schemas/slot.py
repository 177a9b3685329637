from pydantic import BaseModel


class SlotRead(BaseModel):
    time: str
    capacity: int
    booked: int
    available: bool
