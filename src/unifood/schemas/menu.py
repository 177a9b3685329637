from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, conint


class MenuItemBase(BaseModel):
    name: str = Field(..., max_length=128)
    description: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    is_veg: bool = False
    spice_level: int = Field(0, ge=0, le=5)
    allergens: List[str] = []
    ingredients: List[str] = []
    is_available: bool = True
    preparation_time: int = Field(10, gt=0)


class MenuItemCreate(MenuItemBase):
    pass


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=128)
    description: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    is_veg: Optional[bool] = None
    spice_level: Optional[int] = Field(None, ge=0, le=5)
    allergens: Optional[List[str]] = None
    ingredients: Optional[List[str]] = None
    is_available: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, gt=0)

    class Config:
        extra = "forbid"


class MenuItemRead(MenuItemBase):
    id: int
    average_rating: float
    review_count: int

    class Config:
        from_attributes = True


class ReviewCreate(BaseModel):
    user_id: int
    rating: conint(ge=1, le=5)
    comment: Optional[str] = None


class ReviewRead(BaseModel):
    id: int
    user_id: int
    menu_item_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
