"""
Проверка аллергенов и диетических ограничений.

evaluate() ничего не запрещает, а только сообщает о конфликте.
Если конфликт есть, CartGate откладывает добавление в корзину до явного
подтверждения пользователем (confirm_override), и повторяет его ровно один раз.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from unifood.errors import InvalidQuantity, OverrideNotFound
from unifood.services.cart import Cart, CartLine, CartStore

logger = logging.getLogger(__name__)

VEG_DIETS = {"vegetarian", "vegan"}
VEGAN_FORBIDDEN = {"dairy", "egg"}


def _normalize(values: Iterable[str] | None) -> set:
    return {v.strip().lower() for v in (values or []) if v and v.strip()}


@dataclass(frozen=True)
class GateDecision:
    blocked: bool
    reason: str | None = None
    conflicts: Tuple[str, ...] = ()
    confirmation_id: str | None = None


def evaluate(item, user_allergens: Iterable[str] | None, dietary_restrictions: Iterable[str] | None) -> GateDecision:
    item_allergens = _normalize(item.allergens)
    diets = _normalize(dietary_restrictions)
    conflicts = []

    for allergen in sorted(item_allergens & _normalize(user_allergens)):
        conflicts.append(f"allergen:{allergen}")

    if diets & VEG_DIETS and not item.is_veg:
        conflicts.append("diet:" + ("vegan" if "vegan" in diets else "vegetarian"))
    if "vegan" in diets:
        for allergen in sorted(item_allergens & VEGAN_FORBIDDEN):
            conflicts.append(f"diet:vegan:{allergen}")
    if "gluten-free" in diets and "gluten" in item_allergens:
        conflicts.append("diet:gluten-free")

    if not conflicts:
        return GateDecision(blocked=False)
    return GateDecision(
        blocked=True,
        reason=f"{item.name} conflicts with your profile: " + ", ".join(conflicts),
        conflicts=tuple(conflicts),
    )


def is_compliant(item, user_allergens, dietary_restrictions) -> bool:
    return not evaluate(item, user_allergens, dietary_restrictions).blocked


@dataclass
class PendingAdd:
    user_id: int
    menu_item_id: int
    quantity: int
    decision: GateDecision = field(repr=False)


class CartGate:
    """
    Двухфазное добавление в корзину.
    request_add() либо добавляет сразу, либо возвращает решение с confirmation_id;
    confirm_override() выполняет отложенное действие один раз.
    """

    def __init__(self, carts: CartStore):
        self._carts = carts
        self._pending: Dict[str, PendingAdd] = {}
        # (user_id, menu_item_id) -> confirmation_id, не больше одного ожидания на позицию
        self._by_item: Dict[Tuple[int, int], str] = {}

    def request_add(self, user, item, quantity: int = 1) -> Tuple[GateDecision, CartLine | None]:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(quantity)
        cart: Cart = self._carts.get(user.id)
        # Проверяем только первое добавление позиции
        if cart.contains(item.id):
            return GateDecision(blocked=False), cart.add_or_increment(item.id, quantity)

        decision = evaluate(item, user.allergens, user.dietary_restrictions)
        if not decision.blocked:
            return decision, cart.add_or_increment(item.id, quantity)

        # повторная попытка заменяет прежнее ожидание
        stale = self._by_item.pop((user.id, item.id), None)
        if stale is not None:
            self._pending.pop(stale, None)

        confirmation_id = uuid.uuid4().hex
        decision = GateDecision(
            blocked=True,
            reason=decision.reason,
            conflicts=decision.conflicts,
            confirmation_id=confirmation_id,
        )
        self._pending[confirmation_id] = PendingAdd(user.id, item.id, quantity, decision)
        self._by_item[(user.id, item.id)] = confirmation_id
        logger.info("Cart add for user=%s item=%s waits for confirmation: %s", user.id, item.id, decision.reason)
        return decision, None

    def confirm_override(self, user_id: int, confirmation_id: str) -> CartLine:
        pending = self._pending.get(confirmation_id)
        if pending is None or pending.user_id != user_id:
            raise OverrideNotFound(confirmation_id)
        self._forget(confirmation_id, pending)
        logger.info("User %s confirmed override for item %s", user_id, pending.menu_item_id)
        return self._carts.get(user_id).add_or_increment(pending.menu_item_id, pending.quantity)

    def discard(self, user_id: int, confirmation_id: str) -> None:
        pending = self._pending.get(confirmation_id)
        if pending is None or pending.user_id != user_id:
            raise OverrideNotFound(confirmation_id)
        self._forget(confirmation_id, pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _forget(self, confirmation_id: str, pending: PendingAdd) -> None:
        del self._pending[confirmation_id]
        key = (pending.user_id, pending.menu_item_id)
        if self._by_item.get(key) == confirmation_id:
            del self._by_item[key]
