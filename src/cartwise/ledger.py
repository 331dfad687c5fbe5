"""Pull-based totals over carts: value, spend, budget, and plan-versus-actual insights."""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from cartwise.catalog import Catalog
from cartwise.models.cart import AdHocLine, Cart, CartItem, CatalogLine
from cartwise.models.common import normalize_key
from cartwise.models.reports import (
    BudgetStatus,
    BudgetSummary,
    CartInsights,
    CartSummary,
    CategoryGroup,
    PriceChange,
    PriceHistoryPoint,
    StoreGroup,
    StoreOrder,
)

BUDGET_TOLERANCE = 0.01
CHANGE_TOLERANCE = 0.005
UNCATEGORIZED = "Uncategorized"


class PriceLedger:
    """Derives money figures from carts without mutating them."""

    def __init__(self, catalog: Catalog, *, unknown_store: str = "Unknown Store") -> None:
        self.catalog = catalog
        self.unknown_store = unknown_store

    # Per-line helpers --------------------------------------------------------

    def display_name(self, cart_item: CartItem) -> str:
        line = cart_item.line
        if isinstance(line, AdHocLine):
            return line.name
        item = self.catalog.find_item_by_id(line.item_id)
        if item is not None:
            return item.name
        return line.name_snapshot or "Unknown item"

    def store_of(self, cart_item: CartItem) -> str:
        if cart_item.actual_store:
            return cart_item.actual_store
        if cart_item.planned_store:
            return cart_item.planned_store
        if isinstance(cart_item.line, AdHocLine):
            return cart_item.line.store
        return self.unknown_store

    def category_of(self, cart_item: CartItem) -> str:
        line = cart_item.line
        if isinstance(line, CatalogLine):
            category = self.catalog.category_for_item(line.item_id)
            if category is not None:
                return category.name
            return line.category_snapshot or UNCATEGORIZED
        category = self.catalog.find_category(line.category)
        if category is not None:
            return category.name
        return (line.category or "").strip() or UNCATEGORIZED

    def unit_price(self, cart_item: CartItem) -> float:
        """Actual price, else planned price, else the catalog's current price, else 0."""

        if cart_item.actual_price is not None:
            return cart_item.actual_price
        if cart_item.planned_price is not None:
            return cart_item.planned_price
        line = cart_item.line
        if isinstance(line, AdHocLine):
            return line.price
        item = self.catalog.find_item_by_id(line.item_id)
        if item is None:
            return 0.0
        option = item.price_option_for(cart_item.planned_store) if cart_item.planned_store else None
        if option is None and not cart_item.planned_store and item.price_options:
            option = item.price_options[0]
        return option.price_per_unit.value if option else 0.0

    # Cart totals -------------------------------------------------------------

    def cart_value(self, cart: Cart) -> float:
        return sum(
            self.unit_price(cart_item) * cart_item.quantity
            for cart_item in cart.cart_items
            if cart_item.quantity > 0
        )

    def spent_so_far(self, cart: Cart) -> float:
        return sum(cart_item.spent_amount for cart_item in cart.cart_items)

    def budget_delta(self, cart: Cart) -> BudgetSummary:
        spent = self.spent_so_far(cart)
        delta = spent - cart.budget
        if delta > BUDGET_TOLERANCE:
            status = BudgetStatus.OVER
        elif delta < -BUDGET_TOLERANCE:
            status = BudgetStatus.UNDER
        else:
            status = BudgetStatus.ON_BUDGET
        return BudgetSummary(budget=cart.budget, spent=spent, delta=delta, status=status)

    def fulfillment_progress(self, cart: Cart) -> float:
        if cart.is_completed:
            return 1.0
        active = [
            cart_item
            for cart_item in cart.cart_items
            if cart_item.is_fulfilled or (cart_item.quantity > 0 and not cart_item.is_skipped_during_shopping)
        ]
        if not active:
            return 0.0
        fulfilled = sum(1 for cart_item in active if cart_item.is_fulfilled)
        return fulfilled / len(active)

    def insights(self, cart: Cart) -> CartInsights:
        fulfilled = skipped = added = changed = 0
        planned_total = 0.0
        price_changes: List[PriceChange] = []

        for cart_item in cart.cart_items:
            planned_quantity = (
                cart_item.original_planning_quantity
                if cart_item.original_planning_quantity is not None
                else cart_item.quantity
            )
            if cart_item.is_fulfilled:
                fulfilled += 1
            if cart_item.is_skipped_during_shopping:
                skipped += 1
            if cart_item.added_during_shopping:
                added += 1
            else:
                planned_total += (cart_item.planned_price or 0.0) * planned_quantity

            price_changed = (
                cart_item.actual_price is not None
                and cart_item.planned_price is not None
                and abs(cart_item.actual_price - cart_item.planned_price) > CHANGE_TOLERANCE
            )
            quantity_changed = (
                cart_item.actual_quantity is not None
                and abs(cart_item.actual_quantity - planned_quantity) > CHANGE_TOLERANCE
            )
            if not (price_changed or quantity_changed):
                continue
            changed += 1
            planned_price = cart_item.planned_price or 0.0
            actual_price = cart_item.actual_price if cart_item.actual_price is not None else planned_price
            actual_quantity = (
                cart_item.actual_quantity if cart_item.actual_quantity is not None else cart_item.quantity
            )
            price_changes.append(
                PriceChange(
                    cart_item_id=cart_item.id,
                    name=self.display_name(cart_item),
                    planned_price=planned_price,
                    actual_price=actual_price,
                    planned_quantity=planned_quantity,
                    actual_quantity=actual_quantity,
                    difference=actual_price * actual_quantity - planned_price * planned_quantity,
                )
            )

        actual_total = self.spent_so_far(cart)
        return CartInsights(
            fulfilled=fulfilled,
            skipped=skipped,
            added_during_shopping=added,
            changed_from_plan=changed,
            planned_total=planned_total,
            actual_total=actual_total,
            total_difference=actual_total - planned_total,
            price_changes=price_changes,
        )

    def summary(self, cart: Cart) -> CartSummary:
        return CartSummary(
            cart_id=cart.id,
            status=cart.status,
            cart_value=self.cart_value(cart),
            budget=self.budget_delta(cart),
            progress=self.fulfillment_progress(cart),
            insights=self.insights(cart),
            completed_at=cart.completed_at,
        )

    # Grouping ----------------------------------------------------------------

    def group_by_store(
        self,
        items: Sequence[CartItem],
        order: StoreOrder = StoreOrder.ALPHABETICAL,
    ) -> List[StoreGroup]:
        """
        Partition lines by the store they are (or were) bought at.

        ``alphabetical`` sorts groups by store name and keeps input order inside each group.
        ``recent_first`` orders lines by ``added_at`` descending and groups by their newest line.
        """

        ordered = list(items)
        if order == StoreOrder.RECENT_FIRST:
            ordered.sort(key=lambda cart_item: cart_item.added_at, reverse=True)

        groups: "OrderedDict[str, List[CartItem]]" = OrderedDict()
        names: Dict[str, str] = {}
        for cart_item in ordered:
            store = self.store_of(cart_item)
            key = normalize_key(store)
            names.setdefault(key, store)
            groups.setdefault(key, []).append(cart_item)

        keys = list(groups)
        if order == StoreOrder.ALPHABETICAL:
            keys.sort()
        return [StoreGroup(store=names[key], items=groups[key]) for key in keys]

    def group_by_category(self, items: Iterable[CartItem]) -> List[CategoryGroup]:
        """Group lines by category, following the catalog's category order; unknown names last."""

        groups: "OrderedDict[str, List[CartItem]]" = OrderedDict()
        for cart_item in items:
            groups.setdefault(self.category_of(cart_item), []).append(cart_item)

        rank = {category.name: category.sort_order for category in self.catalog.sorted_categories()}
        known = sorted((name for name in groups if name in rank), key=lambda name: rank[name])
        unknown = sorted((name for name in groups if name not in rank), key=str.casefold)
        return [CategoryGroup(category=name, items=groups[name]) for name in known + unknown]

    # History -----------------------------------------------------------------

    def price_history(self, item_id: str, carts: Iterable[Cart]) -> List[PriceHistoryPoint]:
        """Prices paid for ``item_id`` on completed trips, oldest first."""

        points: List[PriceHistoryPoint] = []
        for cart in carts:
            if not cart.is_completed:
                continue
            when = cart.completed_at or cart.updated_at
            for cart_item in cart.lines_for_item(item_id):
                if not cart_item.is_fulfilled:
                    continue
                price: Optional[float] = (
                    cart_item.actual_price if cart_item.actual_price is not None else cart_item.planned_price
                )
                if price is None:
                    continue
                points.append(
                    PriceHistoryPoint(
                        cart_id=cart.id,
                        date=when,
                        price=price,
                        store=cart_item.actual_store or cart_item.planned_store or self.unknown_store,
                        unit=cart_item.actual_unit or cart_item.planned_unit or "",
                    )
                )
        points.sort(key=lambda point: point.date)
        return points


__all__ = ["BUDGET_TOLERANCE", "CHANGE_TOLERANCE", "PriceLedger"]
