"""
Уведомления: запись во входящие пользователя + доставка через sink.

Отправка best-effort: ошибка доставки логируется и не откатывает
заказ или смену статуса.
"""
import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.notification import create_notification
from unifood.models import Notification, NotificationTypeEnum

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Только in-app: уведомление уже лежит во входящих, просто пишем в лог."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "Notification #%s for user %s [%s]: %s",
            notification.id, notification.user_id, notification.type.value, notification.title,
        )


class Notifier:
    def __init__(self, sink: NotificationSink, retries: int = 1):
        self.sink = sink
        self.retries = retries

    async def notify(
        self,
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type_: NotificationTypeEnum = NotificationTypeEnum.info,
    ) -> Notification | None:
        try:
            notification = await create_notification(db, user_id, title, message, type_)
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Failed to store notification %r for user %s", title, user_id)
            return None

        for attempt in range(1, self.retries + 2):
            try:
                await self.sink.deliver(notification)
                break
            except Exception:
                logger.warning(
                    "Delivery of notification #%s failed (attempt %s)",
                    notification.id, attempt, exc_info=True,
                )
        else:
            logger.error("Giving up on delivery of notification #%s to user %s", notification.id, user_id)
        return notification
