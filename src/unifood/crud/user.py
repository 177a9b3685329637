from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.errors import UserNotFound
from unifood.models import User
from unifood.schemas.user import PreferencesUpdate, UserCreate


async def get_users(db: AsyncSession) -> List[User]:
    result = await db.execute(select(User).order_by(User.id))
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id)


async def create_user(db: AsyncSession, user_in: UserCreate) -> User:
    user = User(**user_in.model_dump())
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def update_preferences(db: AsyncSession, user_id: int, prefs: PreferencesUpdate) -> Optional[User]:
    """Аллергены и диеты храним в нижнем регистре."""
    user = await db.get(User, user_id)
    if not user:
        return None
    data = prefs.model_dump(exclude_unset=True)
    for key, values in data.items():
        if values is not None:
            setattr(user, key, sorted({v.strip().lower() for v in values if v.strip()}))
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_or_raise(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise UserNotFound(user_id)
    return user
