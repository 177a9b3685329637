"""
Рекомендации блюд. Только чтение: каталог и заказы не меняются.

Всё сопоставляется с текущим каталогом, недоступные позиции не предлагаются.
"""
from typing import Dict, Iterable, List, Sequence

from unifood.services.allergen_gate import VEG_DIETS, is_compliant


def _diets(user) -> set:
    return {d.lower() for d in (getattr(user, "dietary_restrictions", None) or [])}


def score_item(item, dietary_restrictions: Iterable[str] = ()) -> float:
    """
    2 * рейтинг + min(отзывы, 50) / 10 + бонус за veg + предпочтение умеренной остроты.
    """
    diets = {d.lower() for d in dietary_restrictions}
    score = 2 * float(item.average_rating or 0)
    score += min(item.review_count or 0, 50) / 10
    if item.is_veg and diets & VEG_DIETS:
        score += 2
    score += 2 - abs((item.spice_level or 0) - 2)
    return score


def _rank(items: Iterable, dietary_restrictions: Iterable[str]) -> List:
    # sorted стабильна: при равном счёте сохраняется порядок каталога
    return sorted(items, key=lambda item: score_item(item, dietary_restrictions), reverse=True)


def profile_recommendations(user, catalog: Sequence, order_history: Sequence, limit: int = 5) -> List:
    """
    1. Есть диетические ограничения - только подходящие доступные блюда.
    2. Есть история заказов - ранее заказанное, затем лучшие по score_item.
    3. Иначе - первые limit позиций каталога.
    """
    available = [item for item in catalog if item.is_available]
    diets = _diets(user)

    if diets:
        allergens = getattr(user, "allergens", None) or []
        return [item for item in available if is_compliant(item, allergens, diets)][:limit]

    if order_history:
        by_id: Dict[int, object] = {item.id: item for item in available}
        picked: Dict[int, object] = {}
        for order in order_history:
            for line in order.items:
                item = by_id.get(line.menu_item_id)
                if item is not None:
                    picked.setdefault(item.id, item)
        for item in _rank(available, diets):
            picked.setdefault(item.id, item)
        return list(picked.values())[:limit]

    return available[:limit]


def ranked_recommendations(user, catalog: Sequence, limit: int = 8) -> List:
    """Подходящие пользователю доступные блюда, отсортированные по score_item."""
    diets = _diets(user)
    allergens = getattr(user, "allergens", None) or []
    candidates = [item for item in catalog if item.is_available and is_compliant(item, allergens, diets)]
    return _rank(candidates, diets)[:limit]


def cart_recommendations(cart_item_ids: Iterable[int], all_orders: Sequence, catalog: Sequence, limit: int = 3) -> List:
    """
    Блюда, которые заказывали вместе с позициями корзины.
    Первые найденные, без ранжирования по частоте.
    """
    in_cart = set(cart_item_ids)
    if not in_cart:
        return []

    by_id = {item.id: item for item in catalog if item.is_available}
    found: Dict[int, object] = {}
    for order in all_orders:
        ids = [line.menu_item_id for line in order.items]
        if not in_cart.intersection(ids):
            continue
        for item_id in ids:
            if item_id in in_cart or item_id not in by_id:
                continue
            found.setdefault(item_id, by_id[item_id])
            if len(found) >= limit:
                return list(found.values())
    return list(found.values())
