from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.db.session import AsyncSessionLocal
from unifood.services.allergen_gate import CartGate
from unifood.services.cart import CartStore
from unifood.services.clock import Clock
from unifood.services.pipeline import OrderPipeline
from unifood.services.slots import SlotBook
from unifood.services.state_machine import OrderStateMachine


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Использовать в Depends(get_async_session)
    Пример: async def endpoint(db: AsyncSession = Depends(get_async_session))
    """
    async with AsyncSessionLocal() as session:
        yield session


# Сервисы живут в app.state, создаются в create_app()

def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_cart_store(request: Request) -> CartStore:
    return request.app.state.carts


def get_cart_gate(request: Request) -> CartGate:
    return request.app.state.cart_gate


def get_slot_book(request: Request) -> SlotBook:
    return request.app.state.slot_book


def get_pipeline(request: Request) -> OrderPipeline:
    return request.app.state.pipeline


def get_state_machine(request: Request) -> OrderStateMachine:
    return request.app.state.state_machine
