import logging
from decimal import Decimal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.config import settings
from unifood.crud.menu import get_menu_item, get_menu_items_by_ids
from unifood.crud.user import get_user_or_raise
from unifood.db.deps import get_async_session, get_cart_gate, get_cart_store
from unifood.errors import ItemUnavailable, MenuItemNotFound
from unifood.schemas.cart import CartItemAdd, CartLineRead, CartQuantityUpdate, CartRead, GateDecisionRead
from unifood.services.allergen_gate import CartGate
from unifood.services.cart import Cart, CartStore, money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users/{user_id}/cart", tags=["cart"])


async def build_cart_view(db: AsyncSession, cart: Cart) -> CartRead:
    """
    Корзина с суммами по текущим ценам.
    Позиции, удалённые из каталога, выкидываются из корзины.
    """
    catalog = await get_menu_items_by_ids(db, cart.item_ids)
    for item_id in cart.item_ids:
        if item_id not in catalog:
            logger.info("Item %s disappeared from catalog, dropped from cart of user %s", item_id, cart.user_id)
            cart.remove(item_id)

    totals = cart.totals(catalog, settings.TAX_RATE)
    lines = [
        CartLineRead(
            menu_item_id=line.menu_item_id,
            name=catalog[line.menu_item_id].name,
            price=money(catalog[line.menu_item_id].price),
            quantity=line.quantity,
            line_total=money(Decimal(catalog[line.menu_item_id].price) * line.quantity),
            preparation_time=catalog[line.menu_item_id].preparation_time,
        )
        for line in cart.lines
    ]
    return CartRead(
        user_id=cart.user_id,
        lines=lines,
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
        count_items=totals.count_items,
    )


async def _gated_add(db: AsyncSession, user_id: int, menu_item_id: int, quantity: int, carts: CartStore, gate: CartGate):
    user = await get_user_or_raise(db, user_id)
    item = await get_menu_item(db, menu_item_id)
    if not item:
        raise MenuItemNotFound(menu_item_id)
    if not item.is_available:
        raise ItemUnavailable(item.id)

    decision, _ = gate.request_add(user, item, quantity)
    if decision.blocked:
        return JSONResponse(
            status_code=409,
            content=GateDecisionRead(
                blocked=True,
                reason=decision.reason,
                conflicts=list(decision.conflicts),
                confirmation_id=decision.confirmation_id,
            ).model_dump(),
        )
    return await build_cart_view(db, carts.get(user_id))


@router.get("/", response_model=CartRead)
async def get_cart(
    user_id: int,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
):
    return await build_cart_view(db, carts.get(user_id))


@router.post("/items", response_model=CartRead, responses={409: {"model": GateDecisionRead}})
async def add_cart_item(
    user_id: int,
    body: CartItemAdd,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
    gate: CartGate = Depends(get_cart_gate),
):
    """
    Добавляет блюдо в корзину.
    Если блюдо конфликтует с аллергенами или диетой пользователя, возвращает 409
    с confirmation_id; добавление выполняется после POST .../confirmations/{id}.
    """
    return await _gated_add(db, user_id, body.menu_item_id, body.quantity, carts, gate)


@router.post("/confirmations/{confirmation_id}", response_model=CartRead)
async def confirm_cart_item(
    user_id: int,
    confirmation_id: str,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
    gate: CartGate = Depends(get_cart_gate),
):
    """
    Пользователь подтвердил добавление несмотря на предупреждение.
    """
    gate.confirm_override(user_id, confirmation_id)
    return await build_cart_view(db, carts.get(user_id))


@router.delete("/confirmations/{confirmation_id}", status_code=204)
async def discard_cart_item(
    user_id: int,
    confirmation_id: str,
    gate: CartGate = Depends(get_cart_gate),
):
    gate.discard(user_id, confirmation_id)


@router.put("/items/{menu_item_id}", response_model=CartRead)
async def set_cart_quantity(
    user_id: int,
    menu_item_id: int,
    body: CartQuantityUpdate,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
    gate: CartGate = Depends(get_cart_gate),
):
    """
    Устанавливает количество. 0 и меньше удаляет позицию.
    Новая позиция проходит ту же проверку аллергенов, что и добавление.
    """
    cart = carts.get(user_id)
    if body.quantity > 0 and not cart.contains(menu_item_id):
        return await _gated_add(db, user_id, menu_item_id, body.quantity, carts, gate)
    cart.set_quantity(menu_item_id, body.quantity)
    return await build_cart_view(db, cart)


@router.delete("/items/{menu_item_id}", response_model=CartRead)
async def remove_cart_item(
    user_id: int,
    menu_item_id: int,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
):
    carts.get(user_id).remove(menu_item_id)
    return await build_cart_view(db, carts.get(user_id))


@router.delete("/", status_code=204)
async def clear_cart(user_id: int, carts: CartStore = Depends(get_cart_store)):
    carts.get(user_id).clear()
