from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.notification import get_notifications, mark_notification_read
from unifood.db.deps import get_async_session
from unifood.errors import NotificationNotFound
from unifood.schemas.notification import NotificationRead


router = APIRouter(tags=["notifications"])

@router.get("/users/{user_id}/notifications", response_model=List[NotificationRead])
async def list_notifications(
    user_id: int,
    unread_only: bool = Query(False, description="Только непрочитанные"),
    db: AsyncSession = Depends(get_async_session),
):
    return await get_notifications(db, user_id, unread_only=unread_only)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationRead)
async def read_notification(notification_id: int, db: AsyncSession = Depends(get_async_session)):
    notification = await mark_notification_read(db, notification_id)
    if not notification:
        raise NotificationNotFound(notification_id)
    return notification
