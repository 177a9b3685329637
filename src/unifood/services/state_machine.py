"""
Статусы заказа:
    ordered -> preparing -> ready -> served
    ordered | preparing | ready -> cancelled
served и cancelled - конечные.
"""
import logging
from typing import Dict, FrozenSet

from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.order import get_order_by_id, update_order_status
from unifood.errors import IllegalTransition, OrderNotFound
from unifood.models import NotificationTypeEnum, Order, OrderStatusEnum
from unifood.services.clock import Clock
from unifood.services.notifications import Notifier
from unifood.services.slots import SlotBook

logger = logging.getLogger(__name__)

S = OrderStatusEnum

ALLOWED_TRANSITIONS: Dict[OrderStatusEnum, FrozenSet[OrderStatusEnum]] = {
    S.ordered: frozenset({S.preparing, S.cancelled}),
    S.preparing: frozenset({S.ready, S.cancelled}),
    S.ready: frozenset({S.served, S.cancelled}),
    S.served: frozenset(),
    S.cancelled: frozenset(),
}

TERMINAL = frozenset({S.served, S.cancelled})

STATUS_MESSAGES = {
    S.preparing: "Your order is being prepared",
    S.ready: "Your order is ready for pickup",
    S.served: "Your order has been served",
    S.cancelled: "Your order has been cancelled",
}


def can_transition(current: OrderStatusEnum, new: OrderStatusEnum) -> bool:
    return S(new) in ALLOWED_TRANSITIONS[S(current)]


def ensure_transition(current: OrderStatusEnum, new: OrderStatusEnum) -> None:
    if not can_transition(current, new):
        raise IllegalTransition(current, new)


class OrderStateMachine:
    def __init__(self, notifier: Notifier, clock: Clock, slot_book: SlotBook | None = None):
        self.notifier = notifier
        self.clock = clock
        self.slot_book = slot_book

    async def transition(self, db: AsyncSession, order_id: int, new_status: OrderStatusEnum) -> Order:
        """
        Меняет статус заказа. Недопустимый переход - IllegalTransition, заказ не меняется.
        Если статус успели поменять параллельно, проверка повторяется на свежем значении.
        """
        new_status = S(new_status)
        order = await get_order_by_id(db, order_id)
        if order is None:
            raise OrderNotFound(order_id)

        while True:
            current = S(order.status)
            ensure_transition(current, new_status)
            closed_at = self.clock.now() if new_status in TERMINAL else None
            if await update_order_status(db, order_id, current, new_status, closed_at=closed_at):
                break
            logger.info("Order %s changed concurrently, re-checking %s -> %s", order_id, current.value, new_status.value)
            order = await get_order_by_id(db, order_id)
            if order is None:
                raise OrderNotFound(order_id)

        order = await get_order_by_id(db, order_id)
        logger.info("Order %s (%s): %s -> %s", order.id, order.token, current.value, new_status.value)

        if new_status == S.cancelled and self.slot_book is not None:
            await self.slot_book.release(order.business_day, order.scheduled_time)

        await self.notifier.notify(
            db,
            order.user_id,
            title=f"Order {new_status.value.capitalize()}",
            message=f"{STATUS_MESSAGES[new_status]} - Token: {order.token}",
            type_=NotificationTypeEnum.error if new_status == S.cancelled else NotificationTypeEnum.info,
        )
        return order
