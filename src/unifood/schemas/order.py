from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from unifood.models.order import OrderStatusEnum


class OrderItemRead(BaseModel):
    id: int
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    price: Decimal
    is_veg: bool
    allergens: List[str] = []
    preparation_time: int

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    user_id: int
    status: OrderStatusEnum
    business_day: date
    scheduled_time: str
    token: str
    payment_ref: str
    payment_method: Optional[str] = None
    subtotal: Decimal
    total_amount: Decimal
    special_instructions: Optional[str] = None
    estimated_preparation_time: int
    created_at: datetime
    closed_at: Optional[datetime] = None
    items: List[OrderItemRead] = []
    count_items: int = 0

    @classmethod
    def from_orm_with_items(cls, order):
        data = cls.model_validate(order)
        data.count_items = sum(item.quantity for item in order.items)
        return data

    class Config:
        from_attributes = True


class OrderItemCreate(BaseModel):
    """Замороженная позиция корзины: цена и аллергены на момент оформления."""
    menu_item_id: int
    name: str
    quantity: int = Field(..., ge=1)
    price: Decimal
    is_veg: bool = False
    allergens: List[str] = []
    preparation_time: int = 0


class OrderCreate(BaseModel):
    user_id: int
    items: List[OrderItemCreate]
    business_day: date
    scheduled_time: str
    payment_ref: str
    payment_method: Optional[str] = None
    subtotal: Decimal
    total_amount: Decimal
    special_instructions: Optional[str] = None
    estimated_preparation_time: int = 0

    class Config:
        frozen = True


class PlaceOrderRequest(BaseModel):
    user_id: int
    scheduled_time: str = Field(..., description="Слот выдачи, например 13:15")
    payment_method: str = Field(..., description="Способ оплаты: upi, card, wallet ...")
    special_instructions: Optional[str] = Field(None, max_length=500)


class RetryOrderRequest(BaseModel):
    payment_ref: str


class OrderStatusUpdate(BaseModel):
    status: OrderStatusEnum

    class Config:
        extra = "forbid"
