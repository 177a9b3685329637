import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.models import MenuItem
from unifood.schemas.menu import MenuItemCreate, MenuItemUpdate

logger = logging.getLogger(__name__)


async def get_menu_items(
    db: AsyncSession,
    category: Optional[str] = None,
    search: Optional[str] = None,
    only_available: bool = True,
) -> List[MenuItem]:
    """
    Каталог в порядке добавления.
    Поиск по названию, описанию и кухне без учёта регистра.
    """
    stmt = select(MenuItem).order_by(MenuItem.id)
    if only_available:
        stmt = stmt.where(MenuItem.is_available.is_(True))
    if category:
        stmt = stmt.where(MenuItem.category == category)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(MenuItem.name).like(pattern),
                func.lower(MenuItem.description).like(pattern),
                func.lower(MenuItem.cuisine).like(pattern),
            )
        )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_menu_item(db: AsyncSession, menu_item_id: int) -> Optional[MenuItem]:
    return await db.get(MenuItem, menu_item_id)


async def get_menu_items_by_ids(db: AsyncSession, ids: Iterable[int]) -> Dict[int, MenuItem]:
    ids = list(ids)
    if not ids:
        return {}
    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
    return {item.id: item for item in result.scalars().all()}


async def create_menu_item(db: AsyncSession, item_in: MenuItemCreate) -> MenuItem:
    item = MenuItem(**item_in.model_dump(), average_rating=0.0, review_count=0)
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def update_menu_item(db: AsyncSession, menu_item_id: int, item_in: MenuItemUpdate) -> Optional[MenuItem]:
    """
    Частичное обновление позиции меню.
    Уже оформленные заказы не меняются: у них свой снимок позиций.
    """
    item = await db.get(MenuItem, menu_item_id)
    if not item:
        return None

    for key, value in item_in.model_dump(exclude_unset=True).items():
        setattr(item, key, value)

    await db.commit()
    await db.refresh(item)
    return item


async def delete_menu_item(db: AsyncSession, menu_item_id: int) -> bool:
    item = await db.get(MenuItem, menu_item_id)
    if not item:
        return False
    await db.delete(item)
    await db.commit()
    return True


SAMPLE_MENU_ITEMS = [
    {
        "name": "Chicken Biryani",
        "description": "Aromatic basmati rice cooked with tender chicken pieces and traditional spices",
        "price": Decimal("120"),
        "category": "Main Course",
        "cuisine": "Indian",
        "is_veg": False,
        "spice_level": 3,
        "allergens": ["dairy"],
        "ingredients": ["Chicken", "Basmati Rice", "Spices", "Yogurt", "Onions"],
        "average_rating": 4.5,
        "review_count": 23,
        "preparation_time": 25,
    },
    {
        "name": "Paneer Butter Masala",
        "description": "Rich and creamy tomato-based curry with soft paneer cubes",
        "price": Decimal("100"),
        "category": "Main Course",
        "cuisine": "Indian",
        "is_veg": True,
        "spice_level": 2,
        "allergens": ["dairy"],
        "ingredients": ["Paneer", "Tomatoes", "Cream", "Spices", "Onions"],
        "average_rating": 4.3,
        "review_count": 18,
        "preparation_time": 20,
    },
    {
        "name": "Masala Dosa",
        "description": "Crispy rice crepe filled with spiced potato curry, served with chutney and sambar",
        "price": Decimal("60"),
        "category": "Breakfast",
        "cuisine": "South Indian",
        "is_veg": True,
        "spice_level": 2,
        "allergens": [],
        "ingredients": ["Rice", "Lentils", "Potatoes", "Spices"],
        "average_rating": 4.7,
        "review_count": 31,
        "preparation_time": 15,
    },
    {
        "name": "Chicken Tikka",
        "description": "Marinated chicken pieces grilled to perfection in a tandoor oven",
        "price": Decimal("150"),
        "category": "Appetizer",
        "cuisine": "Indian",
        "is_veg": False,
        "spice_level": 3,
        "allergens": ["dairy"],
        "ingredients": ["Chicken", "Yogurt", "Spices", "Lemon"],
        "average_rating": 4.6,
        "review_count": 27,
        "preparation_time": 20,
    },
    {
        "name": "Fresh Lime Soda",
        "description": "Refreshing lime soda with mint leaves and a hint of black salt",
        "price": Decimal("30"),
        "category": "Beverages",
        "cuisine": "Indian",
        "is_veg": True,
        "spice_level": 0,
        "allergens": [],
        "ingredients": ["Lime", "Soda Water", "Mint", "Black Salt"],
        "average_rating": 4.2,
        "review_count": 15,
        "preparation_time": 5,
    },
]


async def seed_sample_menu(db: AsyncSession) -> int:
    """Заполняет меню примерами, только если таблица пустая."""
    count = await db.scalar(select(func.count(MenuItem.id)))
    if count:
        return 0
    db.add_all(MenuItem(**data) for data in SAMPLE_MENU_ITEMS)
    await db.commit()
    logger.info("Seeded %s sample menu items", len(SAMPLE_MENU_ITEMS))
    return len(SAMPLE_MENU_ITEMS)
