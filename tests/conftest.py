from datetime import datetime, time

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import unifood.models  # noqa: F401
from unifood.db.base import Base
from unifood.db.deps import get_async_session
from unifood.main import create_app
from unifood.services.cart import CartStore
from unifood.services.clock import FixedClock
from unifood.services.notifications import Notifier
from unifood.services.pipeline import OrderPipeline
from unifood.services.slots import SlotBook
from unifood.services.state_machine import OrderStateMachine

from factories import TZ, FakeGateway, RecordingSink


@pytest.fixture
def clock():
    # 12:07 -> первый слот 12:45
    return FixedClock(datetime(2026, 10, 18, 12, 7, tzinfo=TZ))


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def carts():
    return CartStore()


@pytest.fixture
def slot_book(clock):
    return SlotBook(clock, time(22, 0), capacity=20)


@pytest.fixture
def notifier(sink):
    return Notifier(sink)


@pytest.fixture
def pipeline(carts, slot_book, gateway, notifier, clock):
    return OrderPipeline(carts, slot_book, gateway, notifier, clock, payment_timeout=0.5)


@pytest.fixture
def state_machine(notifier, clock, slot_book):
    return OrderStateMachine(notifier, clock, slot_book)


@pytest.fixture
def app(clock, gateway, sink, session_factory):
    app = create_app(clock=clock, payments=gateway, sink=sink)

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
