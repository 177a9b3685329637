from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from unifood.models.user import RoleEnum


class UserOut(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: RoleEnum
    allergens: List[str] = []
    dietary_restrictions: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    username: str = Field(..., max_length=50)
    name: Optional[str] = None
    email: Optional[str] = None
    role: RoleEnum = RoleEnum.student
    allergens: List[str] = []
    dietary_restrictions: List[str] = []


class PreferencesUpdate(BaseModel):
    allergens: Optional[List[str]] = None
    dietary_restrictions: Optional[List[str]] = None

    class Config:
        extra = "forbid"
