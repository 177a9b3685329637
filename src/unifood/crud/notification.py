from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.models import Notification, NotificationTypeEnum


async def create_notification(
    db: AsyncSession,
    user_id: int,
    title: str,
    message: str,
    type_: NotificationTypeEnum = NotificationTypeEnum.info,
) -> Notification:
    notification = Notification(user_id=user_id, title=title, message=message, type=type_, read=False)
    db.add(notification)
    await db.commit()
    await db.refresh(notification)
    return notification


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    unread_only: bool = False,
    limit: Optional[int] = None,
) -> List[Notification]:
    """Уведомления пользователя, новые первыми."""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def mark_notification_read(db: AsyncSession, notification_id: int) -> Optional[Notification]:
    """Меняется только флаг read."""
    notification = await db.get(Notification, notification_id)
    if not notification:
        return None
    notification.read = True
    await db.commit()
    await db.refresh(notification)
    return notification
