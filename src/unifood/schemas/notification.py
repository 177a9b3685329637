from datetime import datetime

from pydantic import BaseModel

from unifood.models.notification import NotificationTypeEnum


class NotificationRead(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: NotificationTypeEnum
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True
