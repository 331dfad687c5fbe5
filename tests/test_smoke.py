"""Basic smoke tests for scaffolding."""

from cartwise.lifecycle import CartLifecycleController
from cartwise.models.cart import CartStatus


def test_controller_runs_a_trip() -> None:
    controller = CartLifecycleController()
    item = controller.add_item("Eggs", "Dairy & Eggs", "StoreA", 4.0, "dozen").unwrap()
    cart = controller.create_cart("Smoke", 10, {item.id: 1}).unwrap()

    controller.begin_shopping(cart)
    controller.complete_shopping(cart)

    assert cart.status == CartStatus.COMPLETED
    assert controller.ledger.cart_value(cart) == 4.0
