"""Cart lifecycle controller: the single facade over catalog, carts, and totals."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, TypeVar, Union

from cartwise.catalog import Catalog
from cartwise.config import Settings, get_settings
from cartwise.errors import NotFoundError, Outcome, StateError, ValidationCode, invalid
from cartwise.events import CartPhaseChanged, EventEmitter
from cartwise.ledger import PriceLedger
from cartwise.metrics import CART_TRANSITIONS, CATALOG_MERGES
from cartwise.models.cart import AdHocLine, Cart, CartItem, CartStatus, CatalogLine
from cartwise.models.catalog import Item, Vault
from cartwise.models.common import is_positive, normalize_key, utc_now
from cartwise.models.reports import (
    CartSummary,
    CompletionReport,
    MergeFailure,
    PriceHistoryPoint,
    QuantityChange,
)
from cartwise.reconciliation import CartReconciler

logger = logging.getLogger(__name__)

T = TypeVar("T")
CartRef = Union[Cart, str]


class CartLifecycleController:
    """
    Moves carts through planning, shopping, and completion.

    Owns the catalog, the cart registry, the reconciler and ledger, and the event emitter
    presentation layers subscribe to. The controller never persists anything itself; callers
    save the aggregates it returns.
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        carts: Iterable[Cart] = (),
        *,
        events: Optional[EventEmitter] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock
        self.catalog = catalog or Catalog(
            events=events, clock=clock, default_category=self.settings.default_category
        )
        self.events = events or self.catalog.events
        self.catalog.events = self.events
        self.carts: Dict[str, Cart] = {cart.id: cart for cart in carts}
        self.reconciler = CartReconciler(self.catalog, events=self.events, clock=clock)
        self.ledger = PriceLedger(self.catalog, unknown_store=self.settings.default_store)

    @property
    def vault(self) -> Vault:
        return self.catalog.vault

    # Registry ----------------------------------------------------------------

    def list_carts(self) -> List[Cart]:
        return sorted(self.carts.values(), key=lambda cart: cart.created_at, reverse=True)

    def get_cart(self, cart_id: str) -> Cart:
        cart = self.carts.get(cart_id)
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        return cart

    def _resolve(self, cart: CartRef) -> Cart:
        return self.get_cart(cart) if isinstance(cart, str) else cart

    def _line(self, cart: Cart, cart_item: Union[CartItem, str]) -> CartItem:
        if isinstance(cart_item, CartItem):
            return cart_item
        return cart.get_cart_item(cart_item)

    def attach_cart(self, cart: Cart) -> Cart:
        """Register a cart loaded from storage."""

        self.carts[cart.id] = cart
        return cart

    def _validate_cart_name(self, name: str, excluding: Optional[str] = None) -> Optional[Outcome]:
        trimmed = (name or "").strip()
        if not trimmed:
            return invalid(ValidationCode.EMPTY_NAME, "Cart name cannot be empty", "name")
        key = normalize_key(trimmed)
        for cart in self.carts.values():
            if cart.id != excluding and normalize_key(cart.name) == key:
                return invalid(ValidationCode.DUPLICATE_CART, f"A cart named '{trimmed}' already exists", "name")
        return None

    @staticmethod
    def _validate_budget(budget: float) -> Optional[Outcome]:
        if budget is None or not math.isfinite(budget) or budget < 0:
            return invalid(ValidationCode.INVALID_BUDGET, "Budget cannot be negative", "budget")
        return None

    def create_cart(
        self,
        name: str,
        budget: float = 0.0,
        items: Optional[Mapping[str, float]] = None,
    ) -> Outcome[Cart]:
        """Create a planning cart, optionally pre-populated with ``item id -> quantity``."""

        failure = self._validate_cart_name(name) or self._validate_budget(budget)
        if failure is not None:
            logger.warning("Rejected cart name=%s budget=%s: %s", name, budget, failure.error.message)
            return failure

        wanted = dict(items or {})
        resolved: List[tuple[Item, float]] = []
        for item_id, quantity in wanted.items():
            item = self.catalog.get_item(item_id)
            if item.is_deleted:
                raise NotFoundError("Item", item_id)
            if not is_positive(quantity):
                return invalid(ValidationCode.INVALID_QUANTITY, "Quantity must be greater than 0", "items")
            resolved.append((item, quantity))

        now = self._clock()
        cart = Cart(name=name.strip(), budget=float(budget), created_at=now, updated_at=now)
        self.carts[cart.id] = cart
        for item, quantity in resolved:
            self.reconciler.add_catalog_item(item, cart, quantity).unwrap()
        logger.info("Created cart id=%s name=%s budget=%.2f", cart.id, cart.name, cart.budget, extra={"cart_id": cart.id})
        self.events.emit(CartPhaseChanged(cart_id=cart.id, previous=None, current=cart.status))
        return Outcome.success(cart)

    def rename_cart(self, cart: CartRef, name: str) -> Outcome[Cart]:
        target = self._resolve(cart)
        failure = self._validate_cart_name(name, excluding=target.id)
        if failure is not None:
            return failure
        if target.name != name.strip():
            target.name = name.strip()
            target.updated_at = self._clock()
        return Outcome.success(target)

    def update_budget(self, cart: CartRef, budget: float) -> Outcome[Cart]:
        target = self._resolve(cart)
        failure = self._validate_budget(budget)
        if failure is not None:
            return failure
        if target.budget != budget:
            target.budget = float(budget)
            target.updated_at = self._clock()
        return Outcome.success(target)

    # Transitions -------------------------------------------------------------

    def _transition(self, cart: Cart, current: CartStatus) -> None:
        previous = cart.status
        cart.status = current
        cart.updated_at = self._clock()
        CART_TRANSITIONS.labels(previous=previous.value, current=current.value).inc()
        logger.info(
            "Cart %s moved from %s to %s",
            cart.id,
            previous.value,
            current.value,
            extra={"cart_id": cart.id},
        )
        self.events.emit(CartPhaseChanged(cart_id=cart.id, previous=previous, current=current))

    @staticmethod
    def _require(cart: Cart, status: CartStatus, operation: str) -> None:
        if cart.status != status:
            raise StateError(cart.id, cart.status, operation)

    def begin_shopping(self, cart: CartRef) -> Cart:
        """Start a trip: snapshot planned quantities and lock in catalog prices."""

        target = self._resolve(cart)
        self._require(target, CartStatus.PLANNING, "begin shopping on")
        for cart_item in target.cart_items:
            cart_item.original_planning_quantity = cart_item.quantity
            self.reconciler.resolve_planned_values(cart_item, keep_existing=True)
        target.started_at = self._clock()
        self._transition(target, CartStatus.SHOPPING)
        return target

    def return_to_planning(self, cart: CartRef) -> Cart:
        """
        Abandon the trip in progress.

        Lines added while shopping (including shopping-only lines) are dropped. Every other line
        loses its fulfillment, skip state, and actuals, gets its planned quantity back, and has
        its planned price refreshed from the catalog.
        """

        target = self._resolve(cart)
        self._require(target, CartStatus.SHOPPING, "return to planning")
        kept: List[CartItem] = []
        for cart_item in target.cart_items:
            if cart_item.added_during_shopping or cart_item.is_shopping_only:
                continue
            cart_item.is_fulfilled = False
            cart_item.is_skipped_during_shopping = False
            cart_item.was_edited_during_shopping = False
            cart_item.clear_actuals()
            if cart_item.original_planning_quantity is not None:
                cart_item.quantity = cart_item.original_planning_quantity
            cart_item.original_planning_quantity = None
            self.reconciler.resolve_planned_values(cart_item, keep_existing=True)
            kept.append(cart_item)
        dropped = len(target.cart_items) - len(kept)
        target.cart_items = kept
        target.started_at = None
        if dropped:
            logger.info("Dropped %s lines added during shopping from cart %s", dropped, target.id)
        self._transition(target, CartStatus.PLANNING)
        return target

    def complete_shopping(
        self,
        cart: CartRef,
        merge_selections: Optional[Mapping[str, bool]] = None,
    ) -> CompletionReport:
        """
        Finish the trip.

        Shopping-only lines selected in ``merge_selections`` are promoted into the catalog.
        Fulfilled catalog lines write what was paid back into the item's price for that
        store when ``sync_catalog_prices`` is enabled.
        """

        target = self._resolve(cart)
        self._require(target, CartStatus.SHOPPING, "complete shopping on")
        selections = merge_selections or {}
        report = CompletionReport(cart_id=target.id)

        for cart_item in target.cart_items:
            line = cart_item.line
            if isinstance(line, AdHocLine):
                if selections.get(cart_item.id):
                    self._merge_line(cart_item, line, report)
                continue
            self._sync_catalog_line(cart_item, line, report)

        target.completed_at = self._clock()
        self._transition(target, CartStatus.COMPLETED)
        return report

    def _merge_line(self, cart_item: CartItem, line: AdHocLine, report: CompletionReport) -> None:
        outcome = self.catalog.merge_ad_hoc_into_catalog(cart_item, self.settings.default_category)
        if not outcome.ok:
            CATALOG_MERGES.labels(result="failed").inc()
            logger.warning("Could not merge %s into catalog: %s", line.name, outcome.error.message)
            report.merge_failures.append(MergeFailure.from_error(cart_item.id, line.name, outcome.error))
            return
        item = outcome.value
        CATALOG_MERGES.labels(result="merged").inc()
        cart_item.line = CatalogLine(
            item_id=item.id,
            name_snapshot=item.name,
            category_snapshot=self.catalog.category_name_for_item(item.id),
        )
        report.merged_item_ids.append(item.id)

    def _sync_catalog_line(self, cart_item: CartItem, line: CatalogLine, report: CompletionReport) -> None:
        item = self.catalog.find_item_by_id(line.item_id)
        if item is None:
            return
        cart_item.line = CatalogLine(
            item_id=item.id,
            name_snapshot=item.name,
            category_snapshot=self.catalog.category_name_for_item(item.id) or line.category_snapshot,
        )
        if not self.settings.sync_catalog_prices or item.is_deleted:
            return
        if not cart_item.is_fulfilled or cart_item.actual_price is None:
            return
        store = cart_item.actual_store or cart_item.planned_store
        if not store:
            return
        current = item.price_option_for(store)
        unit = cart_item.actual_unit or cart_item.planned_unit or (current.price_per_unit.unit if current else "")
        if current is not None and current.price_per_unit.value == cart_item.actual_price and current.price_per_unit.unit == unit:
            return
        if current is None and self.catalog.is_duplicate(item.name, store, excluding=item.id):
            logger.warning("Skipped price sync for %s: another item is already sold at %s", item.name, store)
            if item.id not in report.price_sync_conflicts:
                report.price_sync_conflicts.append(item.id)
            return
        item.set_price(store, cart_item.actual_price, unit)
        self.catalog.add_store(store)
        if item.id not in report.updated_price_item_ids:
            report.updated_price_item_ids.append(item.id)

    def reopen(self, cart: CartRef) -> Cart:
        """Resume a completed trip; every line must be confirmed again."""

        target = self._resolve(cart)
        self._require(target, CartStatus.COMPLETED, "reopen")
        for cart_item in target.cart_items:
            cart_item.is_fulfilled = False
            cart_item.was_edited_during_shopping = False
            cart_item.clear_actuals()
        target.completed_at = None
        self._transition(target, CartStatus.SHOPPING)
        return target

    def delete_cart(self, cart: CartRef) -> Cart:
        target = self._resolve(cart)
        self.carts.pop(target.id, None)
        logger.info("Deleted cart id=%s", target.id, extra={"cart_id": target.id})
        self.events.emit(CartPhaseChanged(cart_id=target.id, previous=target.status, current=None))
        return target

    @staticmethod
    def _attempt(operation: Callable[[], T]) -> Outcome[T]:
        try:
            return Outcome.success(operation())
        except StateError as exc:
            return Outcome.failure(exc)

    def try_begin_shopping(self, cart: CartRef) -> Outcome[Cart]:
        return self._attempt(lambda: self.begin_shopping(cart))

    def try_return_to_planning(self, cart: CartRef) -> Outcome[Cart]:
        return self._attempt(lambda: self.return_to_planning(cart))

    def try_complete_shopping(
        self,
        cart: CartRef,
        merge_selections: Optional[Mapping[str, bool]] = None,
    ) -> Outcome[CompletionReport]:
        return self._attempt(lambda: self.complete_shopping(cart, merge_selections))

    def try_reopen(self, cart: CartRef) -> Outcome[Cart]:
        return self._attempt(lambda: self.reopen(cart))

    # Cart lines --------------------------------------------------------------

    def add_catalog_item(
        self,
        cart: CartRef,
        item_id: str,
        quantity: float = 1.0,
        store: Optional[str] = None,
    ) -> Outcome[CartItem]:
        target = self._resolve(cart)
        return self.reconciler.add_catalog_item(self.catalog.get_item(item_id), target, quantity, store)

    def add_ad_hoc_item(
        self,
        cart: CartRef,
        name: str,
        store: str,
        price: float,
        unit: str,
        quantity: float = 1.0,
        category: Optional[str] = None,
    ) -> Outcome[CartItem]:
        target = self._resolve(cart)
        return self.reconciler.add_ad_hoc_item(name, store, price, unit, target, quantity, category)

    def set_quantity(
        self,
        cart: CartRef,
        cart_item: Union[CartItem, str],
        quantity: float,
        confirm_removal: bool = False,
    ) -> QuantityChange:
        target = self._resolve(cart)
        return self.reconciler.set_quantity(self._line(target, cart_item), quantity, target, confirm_removal)

    def increment(self, cart: CartRef, cart_item: Union[CartItem, str]) -> QuantityChange:
        target = self._resolve(cart)
        return self.reconciler.increment(self._line(target, cart_item), target)

    def decrement(
        self,
        cart: CartRef,
        cart_item: Union[CartItem, str],
        confirm_removal: bool = False,
    ) -> QuantityChange:
        target = self._resolve(cart)
        return self.reconciler.decrement(self._line(target, cart_item), target, confirm_removal)

    def remove_cart_item(
        self,
        cart: CartRef,
        cart_item: Union[CartItem, str],
        confirm: bool = False,
    ) -> QuantityChange:
        target = self._resolve(cart)
        return self.reconciler.remove_cart_item(self._line(target, cart_item), target, confirm)

    def fulfill(
        self,
        cart: CartRef,
        cart_item: Union[CartItem, str],
        actual_price: float,
        actual_quantity: float,
        actual_unit: Optional[str] = None,
        actual_store: Optional[str] = None,
    ) -> Outcome[CartItem]:
        target = self._resolve(cart)
        return self.reconciler.fulfill(
            self._line(target, cart_item),
            target,
            actual_price,
            actual_quantity,
            actual_unit,
            actual_store,
        )

    def unfulfill(self, cart: CartRef, cart_item: Union[CartItem, str]) -> CartItem:
        target = self._resolve(cart)
        return self.reconciler.unfulfill(self._line(target, cart_item), target)

    def skip(self, cart: CartRef, cart_item: Union[CartItem, str]) -> CartItem:
        target = self._resolve(cart)
        return self.reconciler.skip(self._line(target, cart_item), target)

    def unskip(self, cart: CartRef, cart_item: Union[CartItem, str]) -> CartItem:
        target = self._resolve(cart)
        return self.reconciler.unskip(self._line(target, cart_item), target)

    def change_store(self, cart: CartRef, cart_item: Union[CartItem, str], store: str) -> Outcome[CartItem]:
        target = self._resolve(cart)
        return self.reconciler.change_store(self._line(target, cart_item), target, store)

    # Catalog -----------------------------------------------------------------

    def add_item(
        self, name: str, category: Optional[str], store: str, price: float, unit: str
    ) -> Outcome[Item]:
        return self.catalog.add_item(name, category, store, price, unit)

    def update_item(self, item_id: str, **changes: object) -> Outcome[Item]:
        return self.catalog.update_item(item_id, carts=self.carts.values(), **changes)  # type: ignore[arg-type]

    def delete_item(self, item_id: str) -> List[str]:
        return self.catalog.delete_item(item_id, list(self.carts.values()))

    def restore_item(self, item_id: str, restore_to_carts: bool = False) -> Outcome[Item]:
        return self.catalog.restore_item(item_id, list(self.carts.values()), restore_to_carts)

    # Totals ------------------------------------------------------------------

    def summary(self, cart: CartRef) -> CartSummary:
        return self.ledger.summary(self._resolve(cart))

    def price_history(self, item_id: str) -> List[PriceHistoryPoint]:
        return self.ledger.price_history(item_id, self.carts.values())


__all__ = ["CartLifecycleController", "CartRef"]
