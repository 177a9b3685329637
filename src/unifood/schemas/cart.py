from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    menu_item_id: int
    quantity: int = Field(1, description="Сколько добавить к текущему количеству")


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(..., description="0 и меньше удаляет позицию")


class CartLineRead(BaseModel):
    menu_item_id: int
    name: str
    price: Decimal
    quantity: int
    line_total: Decimal
    preparation_time: int


class CartRead(BaseModel):
    user_id: int
    lines: List[CartLineRead] = []
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    count_items: int


class GateDecisionRead(BaseModel):
    blocked: bool
    reason: Optional[str] = None
    conflicts: List[str] = []
    confirmation_id: Optional[str] = None
