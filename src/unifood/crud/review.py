from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.errors import InvalidRating, MenuItemNotFound
from unifood.models import MenuItem, Review


async def add_review(
    db: AsyncSession,
    user_id: int,
    menu_item_id: int,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """
    Добавляет отзыв и пересчитывает average_rating и review_count позиции.
    Среднее округляется до одного знака.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidRating(rating)

    item = await db.get(MenuItem, menu_item_id)
    if not item:
        raise MenuItemNotFound(menu_item_id)

    review = Review(user_id=user_id, menu_item_id=menu_item_id, rating=rating, comment=comment)
    db.add(review)
    await db.flush()

    avg, count = (
        await db.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(Review.menu_item_id == menu_item_id)
        )
    ).one()
    item.average_rating = round(float(avg or 0), 1)
    item.review_count = count

    await db.commit()
    await db.refresh(review)
    return review


async def get_reviews(db: AsyncSession, menu_item_id: int) -> List[Review]:
    stmt = (
        select(Review)
        .where(Review.menu_item_id == menu_item_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
