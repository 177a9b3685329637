from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.menu import create_menu_item, delete_menu_item, get_menu_item, get_menu_items, update_menu_item
from unifood.crud.review import add_review, get_reviews
from unifood.crud.user import get_user_or_raise
from unifood.db.deps import get_async_session
from unifood.errors import MenuItemNotFound
from unifood.schemas.menu import MenuItemCreate, MenuItemRead, MenuItemUpdate, ReviewCreate, ReviewRead


router = APIRouter(prefix="/menu", tags=["menu"])

@router.get("/", response_model=List[MenuItemRead])
async def list_menu_items(
    category: Optional[str] = Query(None, description="Фильтр по категории"),
    search: Optional[str] = Query(None, description="Поиск по названию, описанию, кухне"),
    include_unavailable: bool = Query(False, description="Показывать недоступные позиции (для менеджера)"),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Возвращает меню в порядке каталога.
    """
    return await get_menu_items(db, category=category, search=search, only_available=not include_unavailable)


@router.get("/{menu_item_id}", response_model=MenuItemRead)
async def get_menu_item_endpoint(
    menu_item_id: int = Path(..., description="ID позиции меню"),
    db: AsyncSession = Depends(get_async_session),
):
    item = await get_menu_item(db, menu_item_id)
    if not item:
        raise MenuItemNotFound(menu_item_id)
    return item


@router.post("/", response_model=MenuItemRead, status_code=201)
async def create_menu_item_endpoint(item_in: MenuItemCreate, db: AsyncSession = Depends(get_async_session)):
    return await create_menu_item(db, item_in)


@router.patch("/{menu_item_id}", response_model=MenuItemRead)
async def patch_menu_item_endpoint(
    menu_item_id: int,
    item_in: MenuItemUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    """
    Частичное обновление позиции. Оформленные заказы не затрагиваются.
    """
    item = await update_menu_item(db, menu_item_id, item_in)
    if not item:
        raise MenuItemNotFound(menu_item_id)
    return item


@router.delete("/{menu_item_id}", status_code=204)
async def remove_menu_item(menu_item_id: int, db: AsyncSession = Depends(get_async_session)):
    deleted = await delete_menu_item(db, menu_item_id)
    if not deleted:
        raise MenuItemNotFound(menu_item_id)


@router.get("/{menu_item_id}/reviews", response_model=List[ReviewRead])
async def list_reviews(menu_item_id: int, db: AsyncSession = Depends(get_async_session)):
    return await get_reviews(db, menu_item_id)


@router.post("/{menu_item_id}/reviews", response_model=ReviewRead, status_code=201)
async def create_review(
    menu_item_id: int,
    review_in: ReviewCreate,
    db: AsyncSession = Depends(get_async_session),
):
    """
    Добавляет отзыв и пересчитывает средний рейтинг блюда.
    """
    await get_user_or_raise(db, review_in.user_id)
    return await add_review(db, review_in.user_id, menu_item_id, review_in.rating, review_in.comment)
