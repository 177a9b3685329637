from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.order import get_orders, get_order_by_id
from unifood.crud.user import get_user_or_raise
from unifood.db.deps import get_async_session, get_pipeline, get_state_machine
from unifood.errors import OrderNotFound
from unifood.models.order import OrderStatusEnum
from unifood.schemas.order import OrderRead, OrderStatusUpdate, PlaceOrderRequest, RetryOrderRequest
from unifood.services.pipeline import OrderPipeline
from unifood.services.state_machine import OrderStateMachine


router = APIRouter(prefix="/orders", tags=["orders"])

@router.get("/", response_model=List[OrderRead])
async def list_orders(
    status: Optional[OrderStatusEnum] = Query(None, description="Фильтр по статусу"),
    user_id: Optional[int] = Query(None, description="Заказы одного пользователя"),
    business_day: Optional[date] = Query(None, description="Рабочий день (YYYY-MM-DD)"),
    date_from: Optional[datetime] = Query(None, description="Начальная дата"),
    date_to: Optional[datetime] = Query(None, description="Конечная дата"),
    limit: Optional[int] = Query(None, description="Количество записей для вывода"),
    offset: Optional[int] = Query(None, description="Смещение для пагинации"),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Возвращает список заказов, новые первыми.
    Поддерживает фильтрацию по статусу, пользователю, дню и диапазону дат, и пагинацию.
    """
    orders = await get_orders(
        db,
        status=status,
        user_id=user_id,
        business_day=business_day,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [OrderRead.from_orm_with_items(o) for o in orders]


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int = Path(..., description="ID заказа"),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Возвращает детализацию заказа по id.
    """
    order = await get_order_by_id(db, order_id)
    if not order:
        raise OrderNotFound(order_id)
    return OrderRead.from_orm_with_items(order)


@router.post("/", response_model=OrderRead, status_code=201)
async def place_order_endpoint(
    order_in: PlaceOrderRequest,
    db: AsyncSession = Depends(get_async_session),
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """
    Оформляет заказ из корзины пользователя: слот, оплата, токен выдачи.
    При PersistenceFailure в ответе есть payment_ref для POST /orders/retry.
    """
    user = await get_user_or_raise(db, order_in.user_id)
    order = await pipeline.place_order(
        db,
        user,
        slot_label=order_in.scheduled_time,
        payment_method=order_in.payment_method,
        special_instructions=order_in.special_instructions,
    )
    return OrderRead.from_orm_with_items(order)


@router.post("/retry", response_model=OrderRead, status_code=201)
async def retry_order_endpoint(
    body: RetryOrderRequest,
    db: AsyncSession = Depends(get_async_session),
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """
    Повторная запись уже оплаченного заказа. Деньги повторно не списываются.
    """
    order = await pipeline.retry(db, body.payment_ref)
    return OrderRead.from_orm_with_items(order)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def patch_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    db: AsyncSession = Depends(get_async_session),
    state_machine: OrderStateMachine = Depends(get_state_machine),
):
    """
    Смена статуса персоналом: ordered -> preparing -> ready -> served, или cancelled.
    """
    order = await state_machine.transition(db, order_id, body.status)
    return OrderRead.from_orm_with_items(order)
