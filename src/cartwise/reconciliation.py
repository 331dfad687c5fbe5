"""Cart line mutations: adding, quantities, fulfillment, and skipping."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, Optional

from cartwise.catalog import Catalog
from cartwise.errors import NotFoundError, Outcome, StateError, ValidationCode, invalid
from cartwise.events import CartItemChange, CartItemChanged, EventEmitter
from cartwise.models.cart import MAX_QUANTITY, AdHocLine, Cart, CartItem, CatalogLine
from cartwise.models.catalog import Item
from cartwise.models.common import is_positive, normalize_key, utc_now
from cartwise.models.reports import QuantityChange, QuantityResult

logger = logging.getLogger(__name__)

EDIT_TOLERANCE = 0.005


def clamp_quantity(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(MAX_QUANTITY, float(value)))


def next_quantity_up(quantity: float) -> float:
    """Fractional quantities round up to the next whole number; whole ones gain one."""

    if quantity != math.floor(quantity):
        return float(math.ceil(quantity))
    return quantity + 1


def next_quantity_down(quantity: float) -> float:
    if quantity != math.floor(quantity):
        return float(math.floor(quantity))
    return quantity - 1


class CartReconciler:
    """Applies line-level mutations to a cart, keeping planned and actual values consistent."""

    def __init__(
        self,
        catalog: Catalog,
        *,
        events: Optional[EventEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.catalog = catalog
        self._events = events or EventEmitter()
        self._clock = clock

    # Helpers -----------------------------------------------------------------

    def _changed(self, cart: Cart, cart_item: CartItem, change: CartItemChange) -> None:
        cart.updated_at = self._clock()
        logger.debug("Cart %s item %s %s", cart.id, cart_item.id, change.value)
        self._events.emit(CartItemChanged(cart_id=cart.id, cart_item_id=cart_item.id, change=change))

    @staticmethod
    def _require_open(cart: Cart, operation: str) -> None:
        if cart.is_completed:
            raise StateError(cart.id, cart.status, operation)

    @staticmethod
    def _require_shopping(cart: Cart, operation: str) -> None:
        if not cart.is_shopping:
            raise StateError(cart.id, cart.status, operation)

    def resolve_planned_values(self, cart_item: CartItem, keep_existing: bool = True) -> bool:
        """
        Copy price, unit, and store from the catalog's option for the line's planned store.

        Falls back to the item's first option when no store is planned. When the option is
        gone the existing planned values are kept (``keep_existing``) or cleared. Returns
        True if anything changed.
        """

        if not isinstance(cart_item.line, CatalogLine):
            return False
        item = self.catalog.find_item_by_id(cart_item.line.item_id)
        option = None
        if item is not None:
            if cart_item.planned_store:
                option = item.price_option_for(cart_item.planned_store)
            elif item.price_options:
                option = item.price_options[0]

        before = (cart_item.planned_price, cart_item.planned_unit, cart_item.planned_store)
        if option is not None:
            cart_item.planned_price = option.price_per_unit.value
            cart_item.planned_unit = option.price_per_unit.unit
            cart_item.planned_store = option.store
        elif not keep_existing:
            cart_item.planned_price = None
            cart_item.planned_unit = None
        return before != (cart_item.planned_price, cart_item.planned_unit, cart_item.planned_store)

    # Adding ------------------------------------------------------------------

    def add_catalog_item(
        self,
        item: Item,
        cart: Cart,
        quantity: float = 1.0,
        store: Optional[str] = None,
    ) -> Outcome[CartItem]:
        """Add a catalog item to ``cart`` or increase the quantity of its existing line."""

        self._require_open(cart, "add items to")
        if item.is_deleted:
            raise NotFoundError("Item", item.id)
        if not is_positive(quantity):
            return invalid(ValidationCode.INVALID_QUANTITY, "Quantity must be greater than 0", "quantity")

        now = self._clock()
        existing = next(iter(cart.lines_for_item(item.id)), None)
        if existing is not None:
            existing.quantity = clamp_quantity(existing.quantity + quantity)
            existing.is_skipped_during_shopping = False
            existing.added_at = now
            self._changed(cart, existing, CartItemChange.QUANTITY)
            return Outcome.success(existing)

        option = item.price_option_for(store) if store else None
        if option is None and not store and item.price_options:
            option = item.price_options[0]

        cart_item = CartItem(
            line=CatalogLine(
                item_id=item.id,
                name_snapshot=item.name,
                category_snapshot=self.catalog.category_name_for_item(item.id),
            ),
            quantity=clamp_quantity(quantity),
            planned_store=option.store if option else store.strip() if store else None,
            planned_price=option.price_per_unit.value if option else None,
            planned_unit=option.price_per_unit.unit if option else None,
            added_during_shopping=cart.is_shopping,
            added_at=now,
        )
        cart.cart_items.append(cart_item)
        self._changed(cart, cart_item, CartItemChange.ADDED)
        return Outcome.success(cart_item)

    def add_ad_hoc_item(
        self,
        name: str,
        store: str,
        price: float,
        unit: str,
        cart: Cart,
        quantity: float = 1.0,
        category: Optional[str] = None,
    ) -> Outcome[CartItem]:
        """Add a shopping-only line; an existing line with the same name and store is reused."""

        self._require_shopping(cart, "add shopping-only items to")
        trimmed_name = (name or "").strip()
        trimmed_store = (store or "").strip()
        if not trimmed_name:
            return invalid(ValidationCode.EMPTY_NAME, "Item name cannot be empty", "name")
        if not trimmed_store:
            return invalid(ValidationCode.EMPTY_STORE, "Store name cannot be empty", "store")
        if not is_positive(price):
            return invalid(ValidationCode.INVALID_PRICE, "Price must be greater than 0", "price")
        if not is_positive(quantity):
            return invalid(ValidationCode.INVALID_QUANTITY, "Quantity must be greater than 0", "quantity")

        category_name = (category or "").strip() or None
        match = self._find_ad_hoc_line(cart, trimmed_name, trimmed_store)
        now = self._clock()

        if match is not None and (match.is_skipped_during_shopping or match.quantity == 0):
            previous = match.line
            match.line = AdHocLine(
                name=previous.name,
                store=previous.store,
                price=float(price),
                unit=(unit or "").strip(),
                category=category_name or previous.category,
            )
            match.quantity = clamp_quantity(quantity)
            match.planned_price = float(price)
            match.planned_unit = (unit or "").strip()
            match.is_skipped_during_shopping = False
            match.is_fulfilled = False
            match.clear_actuals()
            match.added_at = now
            self._changed(cart, match, CartItemChange.UNSKIPPED)
            return Outcome.success(match)

        if match is not None:
            match.quantity = clamp_quantity(match.quantity + quantity)
            match.added_at = now
            self._changed(cart, match, CartItemChange.QUANTITY)
            return Outcome.success(match)

        cart_item = CartItem(
            line=AdHocLine(
                name=trimmed_name,
                store=trimmed_store,
                price=float(price),
                unit=(unit or "").strip(),
                category=category_name,
            ),
            quantity=clamp_quantity(quantity),
            planned_price=float(price),
            planned_unit=(unit or "").strip(),
            planned_store=trimmed_store,
            added_during_shopping=True,
            added_at=now,
        )
        cart.cart_items.append(cart_item)
        logger.info("Shopping-only item added cart=%s name=%s store=%s", cart.id, trimmed_name, trimmed_store)
        self._changed(cart, cart_item, CartItemChange.ADDED)
        return Outcome.success(cart_item)

    @staticmethod
    def _find_ad_hoc_line(cart: Cart, name: str, store: str) -> Optional[CartItem]:
        name_key = normalize_key(name)
        store_key = normalize_key(store)
        for cart_item in cart.cart_items:
            line = cart_item.line
            if isinstance(line, AdHocLine) and normalize_key(line.name) == name_key and normalize_key(line.store) == store_key:
                return cart_item
        return None

    # Quantities --------------------------------------------------------------

    def set_quantity(
        self,
        cart_item: CartItem,
        new_quantity: float,
        cart: Cart,
        confirm_removal: bool = False,
    ) -> QuantityChange:
        """
        Set a line's quantity, clamped to [0, 100].

        Reaching zero removes a line with no planning history, skips a line that was planned
        before the trip started, and removes a shopping-only line only when
        ``confirm_removal`` is set.
        NaN and infinite values leave the line untouched.
        """

        self._require_open(cart, "change quantities on")
        previous = cart_item.quantity
        if new_quantity is None or not math.isfinite(new_quantity):
            logger.warning("Ignored non-finite quantity %r for line %s", new_quantity, cart_item.id)
            return QuantityChange(
                cart_item_id=cart_item.id,
                result=QuantityResult.UNCHANGED,
                previous=previous,
                quantity=previous,
            )
        target = clamp_quantity(new_quantity)

        def result(kind: QuantityResult, quantity: float) -> QuantityChange:
            return QuantityChange(cart_item_id=cart_item.id, result=kind, previous=previous, quantity=quantity)

        if target > 0:
            if target == previous and not cart_item.is_skipped_during_shopping:
                return result(QuantityResult.UNCHANGED, previous)
            was_skipped = cart_item.is_skipped_during_shopping
            cart_item.quantity = target
            cart_item.is_skipped_during_shopping = False
            self._changed(cart, cart_item, CartItemChange.UNSKIPPED if was_skipped else CartItemChange.QUANTITY)
            return result(QuantityResult.UPDATED, target)

        if cart_item.is_shopping_only:
            if not confirm_removal:
                return result(QuantityResult.CONFIRMATION_REQUIRED, previous)
            cart.remove_cart_item(cart_item.id)
            self._changed(cart, cart_item, CartItemChange.REMOVED)
            return result(QuantityResult.REMOVED, 0.0)

        if cart.is_shopping and cart_item.original_planning_quantity is not None:
            if cart_item.is_skipped_during_shopping and previous == 0 and not cart_item.is_fulfilled:
                return result(QuantityResult.UNCHANGED, 0.0)
            self._mark_skipped(cart_item)
            self._changed(cart, cart_item, CartItemChange.SKIPPED)
            return result(QuantityResult.SKIPPED, 0.0)

        cart.remove_cart_item(cart_item.id)
        self._changed(cart, cart_item, CartItemChange.REMOVED)
        return result(QuantityResult.REMOVED, 0.0)

    def increment(self, cart_item: CartItem, cart: Cart) -> QuantityChange:
        return self.set_quantity(cart_item, min(MAX_QUANTITY, next_quantity_up(cart_item.quantity)), cart)

    def decrement(self, cart_item: CartItem, cart: Cart, confirm_removal: bool = False) -> QuantityChange:
        return self.set_quantity(
            cart_item,
            max(0.0, next_quantity_down(cart_item.quantity)),
            cart,
            confirm_removal=confirm_removal,
        )

    def remove_cart_item(self, cart_item: CartItem, cart: Cart, confirm: bool = False) -> QuantityChange:
        """Remove a line in planning; during shopping planned lines are skipped instead."""

        self._require_open(cart, "remove items from")
        if cart.is_planning:
            cart.remove_cart_item(cart_item.id)
            self._changed(cart, cart_item, CartItemChange.REMOVED)
            return QuantityChange(
                cart_item_id=cart_item.id,
                result=QuantityResult.REMOVED,
                previous=cart_item.quantity,
                quantity=0.0,
            )
        return self.set_quantity(cart_item, 0.0, cart, confirm_removal=confirm)

    # Shopping ----------------------------------------------------------------

    def fulfill(
        self,
        cart_item: CartItem,
        cart: Cart,
        actual_price: float,
        actual_quantity: float,
        actual_unit: Optional[str] = None,
        actual_store: Optional[str] = None,
    ) -> Outcome[CartItem]:
        """Record what was actually paid for a line and mark it purchased."""

        self._require_shopping(cart, "fulfill items on")
        if not is_positive(actual_price):
            return invalid(ValidationCode.INVALID_PRICE, "Price must be greater than 0", "actual_price")
        if not is_positive(actual_quantity) or actual_quantity > MAX_QUANTITY:
            return invalid(
                ValidationCode.INVALID_QUANTITY,
                f"Quantity must be greater than 0 and at most {MAX_QUANTITY:g}",
                "actual_quantity",
            )

        unit = actual_unit.strip() if actual_unit and actual_unit.strip() else None
        store = actual_store.strip() if actual_store and actual_store.strip() else None
        if (
            cart_item.is_fulfilled
            and cart_item.actual_price == actual_price
            and cart_item.actual_quantity == actual_quantity
            and cart_item.actual_unit == unit
            and cart_item.actual_store == store
        ):
            return Outcome.success(cart_item)

        reference_quantity = (
            cart_item.original_planning_quantity
            if cart_item.original_planning_quantity is not None
            else cart_item.quantity
        )
        price_changed = (
            cart_item.planned_price is not None
            and abs(actual_price - cart_item.planned_price) > EDIT_TOLERANCE
        )
        quantity_changed = abs(actual_quantity - reference_quantity) > EDIT_TOLERANCE

        cart_item.actual_price = float(actual_price)
        cart_item.actual_quantity = float(actual_quantity)
        cart_item.actual_unit = unit
        cart_item.actual_store = store
        if cart_item.quantity == 0:
            cart_item.quantity = float(actual_quantity)
        cart_item.is_fulfilled = True
        cart_item.is_skipped_during_shopping = False
        cart_item.was_edited_during_shopping = price_changed or quantity_changed
        self._changed(cart, cart_item, CartItemChange.FULFILLED)
        return Outcome.success(cart_item)

    def unfulfill(self, cart_item: CartItem, cart: Cart) -> CartItem:
        self._require_shopping(cart, "unfulfill items on")
        has_actuals = any(
            value is not None
            for value in (
                cart_item.actual_price,
                cart_item.actual_quantity,
                cart_item.actual_unit,
                cart_item.actual_store,
            )
        )
        if not cart_item.is_fulfilled and not has_actuals:
            return cart_item
        cart_item.is_fulfilled = False
        cart_item.was_edited_during_shopping = False
        cart_item.clear_actuals()
        self._changed(cart, cart_item, CartItemChange.UNFULFILLED)
        return cart_item

    def skip(self, cart_item: CartItem, cart: Cart) -> CartItem:
        self._require_shopping(cart, "skip items on")
        if cart_item.is_skipped_during_shopping and cart_item.quantity == 0 and not cart_item.is_fulfilled:
            return cart_item
        self._mark_skipped(cart_item)
        self._changed(cart, cart_item, CartItemChange.SKIPPED)
        return cart_item

    def unskip(self, cart_item: CartItem, cart: Cart) -> CartItem:
        self._require_shopping(cart, "unskip items on")
        if not cart_item.is_skipped_during_shopping:
            return cart_item
        cart_item.quantity = max(1.0, cart_item.original_planning_quantity or 1.0)
        cart_item.is_skipped_during_shopping = False
        self._changed(cart, cart_item, CartItemChange.UNSKIPPED)
        return cart_item

    @staticmethod
    def _mark_skipped(cart_item: CartItem) -> None:
        cart_item.is_fulfilled = False
        cart_item.was_edited_during_shopping = False
        cart_item.clear_actuals()
        cart_item.quantity = 0.0
        cart_item.is_skipped_during_shopping = True

    # Planning ----------------------------------------------------------------

    def change_store(self, cart_item: CartItem, cart: Cart, store: str) -> Outcome[CartItem]:
        """Plan a catalog line at a different store, re-reading its price from that store."""

        if not cart.is_planning:
            raise StateError(cart.id, cart.status, "change stores on")
        if not isinstance(cart_item.line, CatalogLine):
            raise ValueError(f"Cart item {cart_item.id} is not backed by the catalog")
        trimmed = (store or "").strip()
        if not trimmed:
            return invalid(ValidationCode.EMPTY_STORE, "Store name cannot be empty", "store")

        item = self.catalog.get_item(cart_item.line.item_id)
        option = item.price_option_for(trimmed)
        if option is None:
            return invalid(
                ValidationCode.UNKNOWN_STORE,
                f"{item.name} has no price at {trimmed}",
                "store",
            )
        if normalize_key(cart_item.planned_store) == normalize_key(option.store) and (
            cart_item.planned_price == option.price_per_unit.value
        ):
            return Outcome.success(cart_item)

        cart_item.planned_store = option.store
        cart_item.planned_price = option.price_per_unit.value
        cart_item.planned_unit = option.price_per_unit.unit
        self._changed(cart, cart_item, CartItemChange.STORE)
        return Outcome.success(cart_item)


__all__ = [
    "EDIT_TOLERANCE",
    "CartReconciler",
    "clamp_quantity",
    "next_quantity_down",
    "next_quantity_up",
]
