from types import SimpleNamespace

import pytest

from unifood.errors import InvalidQuantity, OverrideNotFound
from unifood.services.allergen_gate import CartGate, evaluate
from unifood.services.cart import CartStore

from factories import menu_item


def user(id=1, allergens=(), diets=()):
    return SimpleNamespace(id=id, allergens=list(allergens), dietary_restrictions=list(diets))


def test_blocks_when_allergens_intersect():
    decision = evaluate(menu_item(allergens=["dairy"]), {"dairy", "nuts"}, [])
    assert decision.blocked
    assert decision.conflicts == ("allergen:dairy",)
    assert "dairy" in decision.reason


def test_passes_for_disjoint_allergens():
    assert not evaluate(menu_item(allergens=["gluten"]), {"dairy", "nuts"}, []).blocked


def test_allergen_comparison_ignores_case():
    assert evaluate(menu_item(allergens=["Dairy"]), ["DAIRY "], None).blocked


def test_vegetarian_requires_veg_item():
    assert evaluate(menu_item(is_veg=False), [], ["Vegetarian"]).blocked
    assert not evaluate(menu_item(is_veg=True), [], ["vegetarian"]).blocked


def test_vegan_rejects_dairy_and_egg_even_when_veg():
    assert evaluate(menu_item(is_veg=True, allergens=["dairy"]), [], ["vegan"]).blocked
    assert evaluate(menu_item(is_veg=True, allergens=["egg"]), [], ["vegan"]).blocked
    assert not evaluate(menu_item(is_veg=True, allergens=["nuts"]), [], ["vegan"]).blocked


def test_gluten_free_rejects_gluten():
    assert evaluate(menu_item(allergens=["gluten"]), [], ["gluten-free"]).blocked
    assert not evaluate(menu_item(allergens=[]), [], ["gluten-free"]).blocked


def test_unblocked_add_goes_straight_to_cart():
    carts = CartStore()
    gate = CartGate(carts)
    decision, line = gate.request_add(user(), menu_item(id=3), 2)
    assert not decision.blocked
    assert line.quantity == 2
    assert carts.get(1).quantity_of(3) == 2


def test_blocked_add_waits_for_single_confirmation():
    carts = CartStore()
    gate = CartGate(carts)
    item = menu_item(id=3, allergens=["dairy"])

    decision, line = gate.request_add(user(allergens=["dairy"]), item, 2)

    assert decision.blocked and line is None
    assert decision.confirmation_id
    assert carts.get(1).is_empty()

    confirmed = gate.confirm_override(1, decision.confirmation_id)
    assert confirmed.quantity == 2
    with pytest.raises(OverrideNotFound):
        gate.confirm_override(1, decision.confirmation_id)
    assert carts.get(1).quantity_of(3) == 2


def test_each_blocked_attempt_gets_its_own_confirmation():
    gate = CartGate(CartStore())
    u = user(allergens=["dairy"])
    item = menu_item(id=3, allergens=["dairy"])
    first, _ = gate.request_add(u, item)
    second, _ = gate.request_add(u, item)
    assert first.confirmation_id != second.confirmation_id


def test_repeated_blocked_attempts_keep_one_confirmation_per_item():
    carts = CartStore()
    gate = CartGate(carts)
    u = user(allergens=["dairy"])
    item = menu_item(id=3, allergens=["dairy"])
    decisions = [gate.request_add(u, item)[0] for _ in range(1000)]
    gate.request_add(u, menu_item(id=4, allergens=["dairy"]))

    assert gate.pending_count == 2
    # старое подтверждение больше не действует
    with pytest.raises(OverrideNotFound):
        gate.confirm_override(1, decisions[0].confirmation_id)

    gate.confirm_override(1, decisions[-1].confirmation_id)
    assert carts.get(1).quantity_of(3) == 1
    assert gate.pending_count == 1


def test_confirmation_belongs_to_its_user():
    gate = CartGate(CartStore())
    decision, _ = gate.request_add(user(id=1, allergens=["dairy"]), menu_item(allergens=["dairy"]))
    with pytest.raises(OverrideNotFound):
        gate.confirm_override(2, decision.confirmation_id)


def test_discarded_confirmation_cannot_be_replayed():
    carts = CartStore()
    gate = CartGate(carts)
    decision, _ = gate.request_add(user(allergens=["dairy"]), menu_item(id=4, allergens=["dairy"]))
    gate.discard(1, decision.confirmation_id)
    with pytest.raises(OverrideNotFound):
        gate.confirm_override(1, decision.confirmation_id)
    assert carts.get(1).is_empty()


def test_item_already_in_cart_is_not_checked_again():
    carts = CartStore()
    gate = CartGate(carts)
    item = menu_item(id=3, allergens=["dairy"])
    carts.get(1).add_or_increment(3)

    decision, line = gate.request_add(user(allergens=["dairy"]), item)

    assert not decision.blocked
    assert line.quantity == 2


def test_invalid_quantity_is_rejected_before_evaluation():
    gate = CartGate(CartStore())
    with pytest.raises(InvalidQuantity):
        gate.request_add(user(allergens=["dairy"]), menu_item(allergens=["dairy"]), 0)
