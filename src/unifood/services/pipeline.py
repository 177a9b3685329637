"""
Оформление заказа.

    корзина -> слот -> оплата -> токен -> снимок корзины -> запись заказа
            -> очистка корзины -> уведомление

Каждый шаг либо проходит, либо откатывает то, что успел сделать предыдущий:
отказ оплаты освобождает слот. Если оплата прошла, а записать заказ не удалось,
оформление остаётся в pending по payment_ref, и retry() дописывает заказ
без повторного списания денег.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unifood.crud.menu import get_menu_items_by_ids
from unifood.crud.order import create_order, get_order_by_payment_ref, get_tokens_for_day
from unifood.errors import (
    EmptyCart, ItemUnavailable, PaymentFailed, PendingCheckoutNotFound,
    PersistenceFailure, SlotUnavailable, TokenCollision,
)
from unifood.models import NotificationTypeEnum, Order
from unifood.schemas.order import OrderCreate, OrderItemCreate
from unifood.services.cart import Cart, CartStore, money, with_tax
from unifood.services.clock import Clock
from unifood.services.notifications import Notifier
from unifood.services.payment import PaymentGateway, PaymentResult
from unifood.services.slots import SLOT_NOT_FOUND, SlotBook

logger = logging.getLogger(__name__)


def format_token(business_day: date, sequence: int) -> str:
    """YYMMDD-NNN; после 999 заказов за день номер просто становится длиннее."""
    return f"{business_day:%y%m%d}-{sequence:03d}"


def _token_sequence(token: str) -> int:
    try:
        return int(token.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


class TokenIssuer:
    """Последовательность токенов выдачи, сбрасывается каждый день."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._day: date | None = None
        self._last = 0

    async def issue(self, db: AsyncSession, business_day: date) -> str:
        async with self._lock:
            if self._day != business_day:
                issued = await get_tokens_for_day(db, business_day)
                self._last = max((_token_sequence(t) for t in issued), default=0)
                self._day = business_day
            self._last += 1
            return format_token(business_day, self._last)


def freeze_cart(cart: Cart, catalog: Mapping[int, object]) -> List[OrderItemCreate]:
    """Снимок корзины по текущим ценам и аллергенам."""
    lines = []
    for line in cart.lines:
        item = catalog.get(line.menu_item_id)
        if item is None or not item.is_available:
            raise ItemUnavailable(line.menu_item_id)
        lines.append(
            OrderItemCreate(
                menu_item_id=item.id,
                name=item.name,
                quantity=line.quantity,
                price=money(item.price),
                is_veg=item.is_veg,
                allergens=list(item.allergens or []),
                preparation_time=item.preparation_time,
            )
        )
    return lines


class OrderPipeline:
    def __init__(
        self,
        carts: CartStore,
        slot_book: SlotBook,
        payments: PaymentGateway,
        notifier: Notifier,
        clock: Clock,
        tax_rate: Decimal = Decimal("0.05"),
        currency: str = "INR",
        payment_timeout: float = 10.0,
        tokens: TokenIssuer | None = None,
    ):
        self.carts = carts
        self.slot_book = slot_book
        self.payments = payments
        self.notifier = notifier
        self.clock = clock
        self.tax_rate = tax_rate
        self.currency = currency
        self.payment_timeout = payment_timeout
        self.tokens = tokens or TokenIssuer()

        # user_id -> [lock, сколько задач держат или ждут его]
        self._user_locks: Dict[int, list] = {}
        self._persist_lock = asyncio.Lock()
        self._pending: Dict[str, OrderCreate] = {}

    def pending(self, payment_ref: str) -> OrderCreate | None:
        return self._pending.get(payment_ref)

    @asynccontextmanager
    async def _user_lock(self, user_id: int):
        """Одно оформление на пользователя. Лок удаляется, когда он никому не нужен."""
        entry = self._user_locks.setdefault(user_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._user_locks[user_id]

    async def place_order(
        self,
        db: AsyncSession,
        user,
        slot_label: str | None,
        payment_method: str,
        special_instructions: str | None = None,
    ) -> Order:
        async with self._user_lock(user.id):
            cart = self.carts.get(user.id)
            if cart.is_empty():
                raise EmptyCart()
            if not slot_label:
                raise SlotUnavailable(slot_label, SLOT_NOT_FOUND)

            catalog = await get_menu_items_by_ids(db, cart.item_ids)
            lines = freeze_cart(cart, catalog)
            subtotal = money(sum((line.price * line.quantity for line in lines), Decimal("0")))
            total = with_tax(subtotal, self.tax_rate)

            # Слот держим до конца оплаты
            slots = await self.slot_book.current(db)
            reservation = await slots.reserve(slot_label)
            if not reservation.ok:
                raise SlotUnavailable(slot_label, reservation.reason)

            try:
                payment = await self._authorize(total, user, payment_method)
            except asyncio.CancelledError:
                # запрос оборвали во время оплаты, место в слоте возвращаем
                await slots.release(slot_label)
                logger.warning("Checkout of user %s cancelled during payment, slot %s released", user.id, slot_label)
                raise
            if not payment.ok:
                await slots.release(slot_label)
                logger.warning("Payment for user %s declined (%s), slot %s released", user.id, payment.reason, slot_label)
                raise PaymentFailed(payment.reason or "declined")

            checkout = OrderCreate(
                user_id=user.id,
                items=lines,
                business_day=slots.business_day or self.clock.now().date(),
                scheduled_time=slot_label,
                payment_ref=payment.payment_ref,
                payment_method=payment_method,
                subtotal=subtotal,
                total_amount=total,
                special_instructions=special_instructions or None,
                estimated_preparation_time=max(line.preparation_time for line in lines),
            )
            self._pending[checkout.payment_ref] = checkout
            return await self.persist_checkout(db, checkout)

    async def _authorize(self, amount: Decimal, user, payment_method: str) -> PaymentResult:
        try:
            result = await asyncio.wait_for(
                self.payments.authorize(amount, self.currency, str(user.id), payment_method),
                timeout=self.payment_timeout,
            )
        except asyncio.TimeoutError:
            return PaymentResult.failed("timeout")
        except Exception:
            logger.exception("Payment gateway error for user %s", user.id)
            return PaymentResult.failed("gateway_error")
        if result.ok and not result.payment_ref:
            return PaymentResult.failed("missing_payment_ref")
        return result

    async def persist_checkout(self, db: AsyncSession, checkout: OrderCreate) -> Order:
        """
        Записывает заказ. Идемпотентно по payment_ref: повторный вызов
        возвращает уже созданный заказ и ничего не дублирует.
        """
        ref = checkout.payment_ref
        async with self._persist_lock:
            try:
                existing = await get_order_by_payment_ref(db, ref)
                if existing is not None:
                    self._pending.pop(ref, None)
                    return existing

                token = await self.tokens.issue(db, checkout.business_day)
                try:
                    order = await create_order(db, checkout, token)
                except IntegrityError as exc:
                    await db.rollback()
                    existing = await get_order_by_payment_ref(db, ref)
                    if existing is not None:
                        self._pending.pop(ref, None)
                        return existing
                    if token in await get_tokens_for_day(db, checkout.business_day):
                        logger.critical("Pickup token %s issued twice on %s", token, checkout.business_day)
                        raise TokenCollision(token, ref) from exc
                    raise
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.exception("Order for payment %s was not saved, kept for retry", ref)
                raise PersistenceFailure(ref) from exc

            self._pending.pop(ref, None)

        logger.info("Order %s placed: token=%s slot=%s total=%s", order.id, order.token, order.scheduled_time, order.total_amount)
        self.carts.get(checkout.user_id).clear()
        await self.notifier.notify(
            db,
            checkout.user_id,
            title="Order Placed Successfully",
            message=f"Your order #{order.token} has been placed and will be ready by {order.scheduled_time}",
            type_=NotificationTypeEnum.success,
        )
        return order

    async def retry(self, db: AsyncSession, payment_ref: str) -> Order:
        """Повтор записи заказа для уже оплаченного оформления."""
        checkout = self._pending.get(payment_ref)
        if checkout is None:
            existing = await get_order_by_payment_ref(db, payment_ref)
            if existing is not None:
                return existing
            raise PendingCheckoutNotFound(payment_ref)
        return await self.persist_checkout(db, checkout)
