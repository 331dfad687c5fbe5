"""Tests for cart phase transitions and the controller facade."""

from __future__ import annotations

import pytest

from cartwise.config import Settings
from cartwise.errors import NotFoundError, OutcomeError, StateError, ValidationCode
from cartwise.events import CartPhaseChanged
from cartwise.lifecycle import CartLifecycleController
from cartwise.models.cart import CartStatus, CatalogLine


def test_create_cart_validation(controller, cart):
    assert controller.create_cart("", 10).error.code == ValidationCode.EMPTY_NAME
    assert controller.create_cart(" weekly SHOP ", 10).error.code == ValidationCode.DUPLICATE_CART
    assert controller.create_cart("Other", -1).error.code == ValidationCode.INVALID_BUDGET
    assert controller.get_cart(cart.id) is cart
    assert cart.status == CartStatus.PLANNING


def test_create_cart_with_items(controller, milk, bread):
    cart = controller.create_cart("Prefilled", 20, {milk.id: 2, bread.id: 1}).unwrap()

    assert {(line.item_id, line.quantity) for line in cart.cart_items} == {(milk.id, 2), (bread.id, 1)}


def test_create_cart_with_unknown_item_raises(controller):
    with pytest.raises(NotFoundError):
        controller.create_cart("Prefilled", 20, {"missing": 1})
    assert controller.list_carts() == []


def test_get_unknown_cart_raises(controller):
    with pytest.raises(NotFoundError):
        controller.get_cart("nope")


def test_rename_and_budget(controller, cart):
    other = controller.create_cart("Other", 0).unwrap()

    assert controller.rename_cart(cart, "Party").unwrap().name == "Party"
    assert controller.rename_cart(other, "party").error.code == ValidationCode.DUPLICATE_CART
    assert controller.update_budget(cart, 75).unwrap().budget == 75
    assert controller.update_budget(cart, -5).error.code == ValidationCode.INVALID_BUDGET


def test_begin_shopping_snapshots_plan(controller, milk, cart):
    line = controller.add_catalog_item(cart, milk.id, 3).unwrap()
    controller.catalog.get_item(milk.id).set_price("StoreA", 2.9, "L")

    controller.begin_shopping(cart)

    assert cart.status == CartStatus.SHOPPING
    assert cart.started_at is not None
    assert line.original_planning_quantity == 3
    assert line.planned_price == pytest.approx(2.9)


def test_begin_shopping_keeps_plan_when_price_option_is_gone(controller, milk, cart):
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.catalog.rename_store("StoreA", "Market").unwrap()

    controller.begin_shopping(cart)

    assert line.planned_price == pytest.approx(2.5)
    assert line.planned_store == "StoreA"


def test_invalid_transitions_raise(controller, cart):
    with pytest.raises(StateError) as excinfo:
        controller.return_to_planning(cart)
    assert excinfo.value.cart_id == cart.id
    assert excinfo.value.status == CartStatus.PLANNING

    with pytest.raises(StateError):
        controller.complete_shopping(cart)
    with pytest.raises(StateError):
        controller.reopen(cart)

    controller.begin_shopping(cart)
    with pytest.raises(StateError):
        controller.begin_shopping(cart)


def test_try_variants_return_outcomes(controller, cart):
    outcome = controller.try_reopen(cart)
    assert not outcome.ok
    assert isinstance(outcome.error, StateError)
    with pytest.raises(OutcomeError):
        outcome.unwrap()

    assert controller.try_begin_shopping(cart).ok
    assert controller.try_complete_shopping(cart).ok
    assert controller.try_reopen(cart).unwrap().status == CartStatus.SHOPPING
    assert controller.try_return_to_planning(cart).ok


def test_return_to_planning_policy(controller, milk, bread):
    cart = controller.create_cart("Trip", 0).unwrap()
    planned = controller.add_catalog_item(cart, milk.id, 2).unwrap()
    controller.begin_shopping(cart)
    controller.set_quantity(cart, planned.id, 5)
    controller.fulfill(cart, planned.id, 3.0, 5, actual_store="StoreB").unwrap()
    controller.add_catalog_item(cart, bread.id, 1).unwrap()
    controller.add_ad_hoc_item(cart, "Snacks", "StoreA", 20, "bag").unwrap()

    controller.return_to_planning(cart)

    assert cart.status == CartStatus.PLANNING
    assert cart.started_at is None
    assert [line.id for line in cart.cart_items] == [planned.id]
    assert planned.quantity == 2
    assert planned.original_planning_quantity is None
    assert not planned.is_fulfilled
    assert not planned.was_edited_during_shopping
    assert planned.actual_price is None
    assert planned.actual_store is None


def test_return_to_planning_unskips(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 2).unwrap()
    controller.begin_shopping(cart)
    controller.skip(cart, line.id)

    controller.return_to_planning(cart)

    assert not line.is_skipped_during_shopping
    assert line.quantity == 2


def test_complete_shopping_merges_selected_ad_hoc_items(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.begin_shopping(cart)
    snacks = controller.add_ad_hoc_item(cart, "Snacks", "StoreA", 20, "bag", 1, "pantry").unwrap()
    soda = controller.add_ad_hoc_item(cart, "Soda", "StoreA", 1.5, "can").unwrap()

    report = controller.complete_shopping(cart, {snacks.id: True, soda.id: False})

    assert cart.status == CartStatus.COMPLETED
    assert cart.completed_at is not None
    merged = controller.catalog.find_items_by_name("Snacks", exact=True)
    assert len(merged) == 1
    option = merged[0].price_options[0]
    assert (option.store, option.price_per_unit.value, option.price_per_unit.unit) == ("StoreA", 20, "bag")
    assert controller.catalog.category_for_item(merged[0].id).name == "Pantry"
    assert report.merged_item_ids == [merged[0].id]
    assert isinstance(snacks.line, CatalogLine)
    assert soda.is_shopping_only
    assert controller.catalog.find_items_by_name("Soda") == []


def test_merge_without_category_uses_default(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    controller.begin_shopping(cart)
    chips = controller.add_ad_hoc_item(cart, "Chips", "StoreA", 2.0, "bag").unwrap()
    controller.fulfill(cart, chips.id, 2.2, 1).unwrap()

    controller.complete_shopping(cart, {chips.id: True})

    item = controller.catalog.find_items_by_name("Chips", exact=True)[0]
    assert controller.catalog.category_for_item(item.id).name == "Pantry"
    assert item.price_options[0].price_per_unit.value == pytest.approx(2.2)


def test_merge_failure_is_reported_and_line_kept(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    controller.begin_shopping(cart)
    dup = controller.add_ad_hoc_item(cart, "milk", "storea", 2.0, "L").unwrap()

    report = controller.complete_shopping(cart, {dup.id: True})

    assert report.merged_item_ids == []
    assert [failure.code for failure in report.merge_failures] == ["duplicate_item"]
    assert dup.is_shopping_only
    assert cart.status == CartStatus.COMPLETED


def test_complete_shopping_syncs_paid_prices(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.begin_shopping(cart)
    controller.fulfill(cart, line.id, 2.8, 1, actual_store="Corner Shop").unwrap()

    report = controller.complete_shopping(cart)

    assert report.updated_price_item_ids == [milk.id]
    assert milk.price_option_for("Corner Shop").price_per_unit.value == pytest.approx(2.8)
    assert milk.price_option_for("StoreA").price_per_unit.value == pytest.approx(2.5)
    assert "Corner Shop" in controller.catalog.all_stores()


def test_price_sync_skips_store_owned_by_same_named_item(controller, milk):
    other = controller.add_item("milk", "Dairy & Eggs", "StoreB", 2.2, "L").unwrap()
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.begin_shopping(cart)
    controller.fulfill(cart, line.id, 2.0, 1, actual_store="storeb").unwrap()

    report = controller.complete_shopping(cart)

    assert report.price_sync_conflicts == [milk.id]
    assert report.updated_price_item_ids == []
    assert milk.price_option_for("StoreB") is None
    assert other.price_option_for("StoreB").price_per_unit.value == pytest.approx(2.2)
    assert cart.status == CartStatus.COMPLETED


def test_price_sync_can_be_disabled(catalog, events, clock):
    controller = CartLifecycleController(
        catalog,
        events=events,
        settings=Settings(sync_catalog_prices=False),
        clock=clock,
    )
    milk = controller.add_item("Milk", "Dairy & Eggs", "StoreA", 2.5, "L").unwrap()
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.begin_shopping(cart)
    controller.fulfill(cart, line.id, 3.1, 1).unwrap()

    report = controller.complete_shopping(cart)

    assert report.updated_price_item_ids == []
    assert milk.price_options[0].price_per_unit.value == pytest.approx(2.5)


def test_complete_shopping_captures_snapshots(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.update_item(milk.id, name="Whole Milk")
    controller.begin_shopping(cart)

    controller.complete_shopping(cart)

    assert line.line.name_snapshot == "Whole Milk"
    assert line.line.category_snapshot == "Dairy & Eggs"


def test_reopen_requires_lines_to_be_confirmed_again(controller, milk):
    cart = controller.create_cart("Trip", 0).unwrap()
    line = controller.add_catalog_item(cart, milk.id, 1).unwrap()
    controller.begin_shopping(cart)
    controller.fulfill(cart, line.id, 2.5, 1).unwrap()
    controller.complete_shopping(cart)

    controller.reopen(cart)

    assert cart.status == CartStatus.SHOPPING
    assert cart.completed_at is None
    assert not line.is_fulfilled
    assert line.actual_price is None
    assert controller.ledger.spent_so_far(cart) == 0


def test_delete_cart(controller, cart, recorded):
    controller.delete_cart(cart.id)

    assert controller.list_carts() == []
    with pytest.raises(NotFoundError):
        controller.get_cart(cart.id)
    last = recorded[-1]
    assert isinstance(last, CartPhaseChanged)
    assert last.cart_id == cart.id
    assert last.current is None


def test_transitions_emit_phase_events(controller, cart, recorded):
    recorded.clear()

    controller.begin_shopping(cart)
    controller.complete_shopping(cart)
    controller.reopen(cart)
    controller.return_to_planning(cart)

    phases = [(event.previous, event.current) for event in recorded if isinstance(event, CartPhaseChanged)]
    assert phases == [
        (CartStatus.PLANNING, CartStatus.SHOPPING),
        (CartStatus.SHOPPING, CartStatus.COMPLETED),
        (CartStatus.COMPLETED, CartStatus.SHOPPING),
        (CartStatus.SHOPPING, CartStatus.PLANNING),
    ]


def test_failing_subscriber_does_not_break_transition(controller, cart, events):
    def explode(event):
        raise RuntimeError("boom")

    events.subscribe(CartPhaseChanged, explode)

    controller.begin_shopping(cart)

    assert cart.status == CartStatus.SHOPPING


def test_list_carts_newest_first(controller):
    first = controller.create_cart("First", 0).unwrap()
    second = controller.create_cart("Second", 0).unwrap()

    assert [cart.id for cart in controller.list_carts()] == [second.id, first.id]
