import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from unifood.api import health, users
from unifood.api.routes.cart import router as cart_router
from unifood.api.routes.menu import router as menu_router
from unifood.api.routes.notifications import router as notifications_router
from unifood.api.routes.orders import router as orders_router
from unifood.api.routes.recommendations import router as recommendations_router
from unifood.api.routes.slots import router as slots_router
from unifood.config import settings
from unifood.errors import UniFoodError
from unifood.services.allergen_gate import CartGate
from unifood.services.cart import CartStore
from unifood.services.clock import Clock, SystemClock, parse_time_of_day
from unifood.services.notifications import LoggingNotificationSink, NotificationSink, Notifier
from unifood.services.payment import DemoPaymentGateway, PaymentGateway
from unifood.services.pipeline import OrderPipeline
from unifood.services.slots import SlotBook
from unifood.services.state_machine import OrderStateMachine

logger = logging.getLogger("unifood")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SEED_SAMPLE_MENU:
        from unifood.crud.menu import seed_sample_menu
        from unifood.db.session import AsyncSessionLocal

        async with AsyncSessionLocal() as session:
            await seed_sample_menu(session)
    logger.info("🚀 Application started")
    yield
    logger.info("🛑 Application stopped")


async def handle_unifood_error(request: Request, exc: UniFoodError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


def create_app(
    clock: Clock | None = None,
    payments: PaymentGateway | None = None,
    sink: NotificationSink | None = None,
) -> FastAPI:
    """
    Собирает приложение. Часы, платёжный шлюз и канал уведомлений
    можно подменить (тесты, другой провайдер).
    """
    clock = clock or SystemClock(settings.TIMEZONE)
    carts = CartStore()
    notifier = Notifier(sink or LoggingNotificationSink())
    slot_book = SlotBook(
        clock,
        parse_time_of_day(settings.CLOSING_TIME),
        capacity=settings.SLOT_CAPACITY,
        interval_minutes=settings.SLOT_INTERVAL_MINUTES,
        lead_minutes=settings.SLOT_LEAD_MINUTES,
    )

    app = FastAPI(title="UniFood", lifespan=lifespan)
    app.state.clock = clock
    app.state.carts = carts
    app.state.cart_gate = CartGate(carts)
    app.state.slot_book = slot_book
    app.state.pipeline = OrderPipeline(
        carts,
        slot_book,
        payments or DemoPaymentGateway(),
        notifier,
        clock,
        tax_rate=settings.TAX_RATE,
        currency=settings.CURRENCY,
        payment_timeout=settings.PAYMENT_TIMEOUT_SECONDS,
    )
    app.state.state_machine = OrderStateMachine(notifier, clock, slot_book)

    app.add_exception_handler(UniFoodError, handle_unifood_error)

    # Подключаем роуты
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(menu_router)
    app.include_router(cart_router)
    app.include_router(slots_router)
    app.include_router(orders_router)
    app.include_router(recommendations_router)
    app.include_router(notifications_router)
    return app


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
