from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.config import settings
from unifood.crud.menu import get_menu_items
from unifood.crud.order import get_orders, get_orders_with_menu_items
from unifood.crud.user import get_user_or_raise
from unifood.db.deps import get_async_session, get_cart_store
from unifood.schemas.menu import MenuItemRead
from unifood.services.cart import CartStore
from unifood.services.recommendations import cart_recommendations, profile_recommendations, ranked_recommendations


router = APIRouter(prefix="/users/{user_id}/recommendations", tags=["recommendations"])

@router.get("/", response_model=List[MenuItemRead])
async def get_profile_recommendations(user_id: int, db: AsyncSession = Depends(get_async_session)):
    """
    По диете, истории заказов или просто начало меню.
    """
    user = await get_user_or_raise(db, user_id)
    catalog = await get_menu_items(db)
    history = await get_orders(db, user_id=user_id)
    return profile_recommendations(user, catalog, history, limit=settings.PROFILE_RECOMMENDATION_LIMIT)


@router.get("/top", response_model=List[MenuItemRead])
async def get_ranked_recommendations(
    user_id: int,
    limit: int = Query(8, ge=1, le=50),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Подходящие блюда, отсортированные по рейтингу, отзывам и остроте.
    """
    user = await get_user_or_raise(db, user_id)
    catalog = await get_menu_items(db)
    return ranked_recommendations(user, catalog, limit=limit)


@router.get("/cart", response_model=List[MenuItemRead])
async def get_cart_recommendations(
    user_id: int,
    db: AsyncSession = Depends(get_async_session),
    carts: CartStore = Depends(get_cart_store),
):
    """
    Что ещё заказывали вместе с блюдами из корзины.
    """
    cart = carts.get(user_id)
    if cart.is_empty():
        return []
    catalog = await get_menu_items(db)
    orders = await get_orders_with_menu_items(db, cart.item_ids, limit=settings.CART_RECOMMENDATION_HISTORY)
    return cart_recommendations(cart.item_ids, orders, catalog, limit=settings.CART_RECOMMENDATION_LIMIT)
