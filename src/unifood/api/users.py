from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..crud.user import create_user, get_user, get_users, update_preferences
from ..db.deps import get_async_session
from ..errors import UserNotFound
from ..schemas.user import PreferencesUpdate, UserCreate, UserOut

router = APIRouter(prefix="/users", tags=["users"])

@router.get("/", response_model=List[UserOut])
async def list_users(session: AsyncSession = Depends(get_async_session)):
    return await get_users(session)


@router.post("/", response_model=UserOut, status_code=201)
async def create_user_endpoint(user_in: UserCreate, session: AsyncSession = Depends(get_async_session)):
    return await create_user(session, user_in)


@router.get("/{user_id}", response_model=UserOut)
async def get_user_endpoint(user_id: int, session: AsyncSession = Depends(get_async_session)):
    user = await get_user(session, user_id)
    if not user:
        raise UserNotFound(user_id)
    return user


@router.patch("/{user_id}/preferences", response_model=UserOut)
async def update_preferences_endpoint(
    user_id: int,
    prefs: PreferencesUpdate,
    session: AsyncSession = Depends(get_async_session),
):
    """
    Обновляет аллергены и диетические ограничения пользователя.
    """
    user = await update_preferences(session, user_id, prefs)
    if not user:
        raise UserNotFound(user_id)
    return user
