"""Tests for the load-mutate-save workspace used by the API."""

from __future__ import annotations

import pytest

from cartwise.config import get_settings
from cartwise.db import InMemoryRepository
from cartwise.errors import NotFoundError, OutcomeError
from cartwise.server.workspace import LockRegistry, Workspace


@pytest.fixture()
def workspace() -> Workspace:
    return Workspace(InMemoryRepository(), settings=get_settings())


def test_catalog_unit_of_work_saves_vault_and_carts(workspace):
    with workspace.catalog() as controller:
        milk = controller.add_item("Milk", "Dairy & Eggs", "StoreA", 2.5, "L").unwrap()
        cart = controller.create_cart("Trip", 10, {milk.id: 1}).unwrap()

    loaded = workspace.controller()
    assert loaded.catalog.get_item(milk.id).name == "Milk"
    assert [line.item_id for line in loaded.get_cart(cart.id).cart_items] == [milk.id]


def test_cart_unit_of_work_saves_only_on_success(workspace):
    with workspace.catalog() as controller:
        cart_id = controller.create_cart("Trip", 10).unwrap().id

    with pytest.raises(OutcomeError):
        with workspace.cart(cart_id) as controller:
            controller.rename_cart(cart_id, "Renamed")
            controller.update_budget(cart_id, -1).unwrap()

    assert workspace.controller().get_cart(cart_id).name == "Trip"


def test_cart_unit_of_work_deletes_removed_carts(workspace):
    with workspace.catalog() as controller:
        cart_id = controller.create_cart("Trip", 10).unwrap().id

    with workspace.cart(cart_id) as controller:
        controller.delete_cart(cart_id)

    assert workspace.repository.load_cart(cart_id) is None
    with pytest.raises(NotFoundError):
        with workspace.cart(cart_id):
            pass


def test_lock_registry_reuses_locks_in_sorted_order():
    locks = LockRegistry()

    first = locks.for_cart("b")
    assert locks.for_cart("b") is first
    assert locks.for_carts(["b", "a", "b"]) == [locks.for_cart("a"), first]

    locks.discard("b")
    assert locks.for_cart("b") is not first
