from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from unifood.models import Order, OrderItem, OrderStatusEnum
from unifood.schemas.order import OrderCreate


async def get_orders(
    db: AsyncSession,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    business_day: Optional[date] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Order]:
    """
    Возвращает список заказов с опциональной фильтрацией по статусу, пользователю и дате.
    Подгружаем items.
    Сортируем по created_at (новые первыми).
    """
    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )

    if status:
        stmt = stmt.where(Order.status == status)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if business_day:
        stmt = stmt.where(Order.business_day == business_day)
    if date_from:
        stmt = stmt.where(Order.created_at >= date_from)
    if date_to:
        stmt = stmt.where(Order.created_at <= date_to)
    if limit:
        stmt = stmt.limit(limit)
    if offset:
        stmt = stmt.offset(offset)

    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def get_orders_with_menu_items(
    db: AsyncSession,
    menu_item_ids: Iterable[int],
    limit: int = 200,
) -> List[Order]:
    """
    Последние заказы, где есть хотя бы одна из позиций, новые первыми.
    Для рекомендаций "с этим заказывали", вся история не нужна.
    """
    ids = list(menu_item_ids)
    if not ids:
        return []
    matching = select(OrderItem.order_id).where(OrderItem.menu_item_id.in_(ids))
    stmt = (
        select(Order)
        .where(Order.id.in_(matching))
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def get_order_by_id(db: AsyncSession, order_id: int) -> Optional[Order]:
    """
    Возвращает заказ по ID с подгруженными items.
    Предотвращает MissingGreenlet при сериализации.
    """
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalars().unique().first()


async def get_order_by_payment_ref(db: AsyncSession, payment_ref: str) -> Optional[Order]:
    stmt = (
        select(Order)
        .where(Order.payment_ref == payment_ref)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalars().unique().first()


async def create_order(db: AsyncSession, order_in: OrderCreate, token: str) -> Order:
    """
    Создаём заказ вместе с позициями одной транзакцией.
    Ошибки БД (в т.ч. IntegrityError по payment_ref/token) пробрасываются наверх.
    """
    order = Order(
        user_id=order_in.user_id,
        status=OrderStatusEnum.ordered,
        business_day=order_in.business_day,
        scheduled_time=order_in.scheduled_time,
        token=token,
        payment_ref=order_in.payment_ref,
        payment_method=order_in.payment_method,
        subtotal=order_in.subtotal,
        total_amount=order_in.total_amount,
        special_instructions=order_in.special_instructions,
        estimated_preparation_time=order_in.estimated_preparation_time,
    )
    order.items = [
        OrderItem(
            menu_item_id=item.menu_item_id,
            name=item.name,
            quantity=item.quantity,
            price=item.price,
            is_veg=item.is_veg,
            allergens=list(item.allergens),
            preparation_time=item.preparation_time,
        )
        for item in order_in.items
    ]
    db.add(order)
    await db.commit()

    # загружаем заказ обратно с items
    return await get_order_by_id(db, order.id)


async def update_order_status(
    db: AsyncSession,
    order_id: int,
    current: OrderStatusEnum,
    new: OrderStatusEnum,
    closed_at: Optional[datetime] = None,
) -> bool:
    """
    Compare-and-set: обновляет статус, только если он всё ещё равен current.
    Возвращает False, если кто-то успел изменить заказ раньше.
    """
    values = {"status": new}
    if closed_at is not None:
        values["closed_at"] = closed_at
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def count_booked_by_slot(db: AsyncSession, business_day: date) -> Dict[str, int]:
    """Количество неотменённых заказов дня по каждому слоту."""
    stmt = (
        select(Order.scheduled_time, func.count(Order.id))
        .where(
            Order.business_day == business_day,
            Order.status != OrderStatusEnum.cancelled,
        )
        .group_by(Order.scheduled_time)
    )
    result = await db.execute(stmt)
    return {label: count for label, count in result.all()}


async def get_tokens_for_day(db: AsyncSession, business_day: date) -> List[str]:
    result = await db.execute(select(Order.token).where(Order.business_day == business_day))
    return list(result.scalars().all())
