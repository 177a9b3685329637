from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping

from unifood.errors import InvalidQuantity, ItemUnavailable

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def with_tax(subtotal: Decimal, rate: Decimal) -> Decimal:
    """Итог с налогом, округлённый до копейки (paise)."""
    return money(Decimal(subtotal) * (1 + Decimal(rate)))


@dataclass(frozen=True)
class CartLine:
    menu_item_id: int
    quantity: int


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    count_items: int


def _validate(quantity) -> int:
    # bool тоже int, но количеством не является
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(quantity)
    return quantity


class Cart:
    """
    Корзина одного пользователя: menu_item_id -> количество.
    Хранит только положительные количества.
    """

    def __init__(self, user_id: int):
        self.user_id = user_id
        self._lines: Dict[int, int] = {}

    def add_or_increment(self, menu_item_id: int, delta: int = 1) -> CartLine:
        delta = _validate(delta)
        if delta <= 0:
            raise InvalidQuantity(delta)
        self._lines[menu_item_id] = self._lines.get(menu_item_id, 0) + delta
        return CartLine(menu_item_id, self._lines[menu_item_id])

    def set_quantity(self, menu_item_id: int, quantity: int) -> CartLine | None:
        quantity = _validate(quantity)
        if quantity <= 0:
            self.remove(menu_item_id)
            return None
        self._lines[menu_item_id] = quantity
        return CartLine(menu_item_id, quantity)

    def remove(self, menu_item_id: int) -> None:
        self._lines.pop(menu_item_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def contains(self, menu_item_id: int) -> bool:
        return menu_item_id in self._lines

    def quantity_of(self, menu_item_id: int) -> int:
        return self._lines.get(menu_item_id, 0)

    @property
    def lines(self) -> List[CartLine]:
        return [CartLine(item_id, qty) for item_id, qty in self._lines.items()]

    @property
    def item_ids(self) -> List[int]:
        return list(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def subtotal(self, catalog: Mapping[int, object]) -> Decimal:
        """
        Сумма по текущим ценам каталога. Ничего не кэшируем:
        цена берётся в момент вызова.
        """
        total = Decimal("0")
        for item_id, qty in self._lines.items():
            item = catalog.get(item_id)
            if item is None:
                raise ItemUnavailable(item_id)
            total += Decimal(item.price) * qty
        return money(total)

    def totals(self, catalog: Mapping[int, object], tax_rate: Decimal) -> CartTotals:
        subtotal = self.subtotal(catalog)
        total = with_tax(subtotal, tax_rate)
        return CartTotals(
            subtotal=subtotal,
            tax=total - subtotal,
            total=total,
            count_items=sum(self._lines.values()),
        )


class CartStore:
    """Реестр корзин по user_id. Передаётся в сервисы явно, глобальных корзин нет."""

    def __init__(self):
        self._carts: Dict[int, Cart] = {}

    def get(self, user_id: int) -> Cart:
        cart = self._carts.get(user_id)
        if cart is None:
            cart = self._carts[user_id] = Cart(user_id)
        return cart

    def drop(self, user_id: int) -> None:
        self._carts.pop(user_id, None)
