"""Item catalog ("vault") operations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from cartwise.config import get_settings
from cartwise.errors import NotFoundError, Outcome, ValidationCode, ValidationError, invalid
from cartwise.events import EventEmitter, ItemAddedToCatalog, ItemRemovedFromCatalog
from cartwise.models.cart import AdHocLine, Cart, CartItem, RemovedLineSnapshot
from cartwise.models.catalog import (
    DEFAULT_CATEGORIES,
    Category,
    Item,
    PriceOption,
    PricePerUnit,
    Store,
    Vault,
)
from cartwise.models.common import is_positive, normalize_key, utc_now

logger = logging.getLogger(__name__)


class Catalog:
    """
    Categorized collection of purchasable items with store-specific prices.

    Wraps a ``Vault`` aggregate. Item names are unique per store: the (name, store) pair is
    compared trimmed and case-insensitively across every non-deleted item, regardless of
    category.
    """

    def __init__(
        self,
        vault: Optional[Vault] = None,
        *,
        events: Optional[EventEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
        default_category: Optional[str] = None,
    ) -> None:
        self.vault = vault if vault is not None else Vault()
        self.default_category = default_category or get_settings().default_category
        self.events = events or EventEmitter()
        self._clock = clock
        self.ensure_default_categories()

    # Categories -------------------------------------------------------------

    def ensure_default_categories(self) -> bool:
        """Make sure the default categories exist in order; returns True when the vault changed."""

        changed = False
        by_key = {normalize_key(category.name): category for category in self.vault.categories}
        for category in self.vault.categories:
            if category.key:
                by_key.setdefault(normalize_key(category.key), category)

        ordered: List[Category] = []
        claimed: set[str] = set()
        for index, (key, title, emoji) in enumerate(DEFAULT_CATEGORIES):
            existing = by_key.get(normalize_key(title)) or by_key.get(normalize_key(key))
            if existing is None:
                existing = Category(name=title, key=key, sort_order=index, emoji=emoji)
                changed = True
            else:
                if existing.name != title or existing.key != key:
                    existing.name = title
                    existing.key = key
                    changed = True
                if existing.sort_order != index:
                    existing.sort_order = index
                    changed = True
            ordered.append(existing)
            claimed.add(existing.id)

        extras = sorted(
            (category for category in self.vault.categories if category.id not in claimed),
            key=lambda category: (category.sort_order, category.name.casefold()),
        )
        next_sort_order = len(DEFAULT_CATEGORIES)
        for category in extras:
            if category.sort_order < next_sort_order:
                category.sort_order = next_sort_order
                changed = True
            next_sort_order = category.sort_order + 1

        if changed or len(ordered) + len(extras) != len(self.vault.categories):
            self.vault.categories = ordered + extras
        return changed

    def sorted_categories(self) -> List[Category]:
        return sorted(self.vault.categories, key=lambda category: category.sort_order)

    def find_category(self, name_or_key: Optional[str]) -> Optional[Category]:
        if not normalize_key(name_or_key):
            return None
        for category in self.vault.categories:
            if category.matches(name_or_key or ""):
                return category
        return None

    def get_category(self, category_id: str) -> Category:
        for category in self.vault.categories:
            if category.id == category_id:
                return category
        raise NotFoundError("Category", category_id)

    def create_category(
        self,
        name: str,
        *,
        color_hex: Optional[str] = None,
        emoji: Optional[str] = None,
    ) -> Outcome[Category]:
        trimmed = (name or "").strip()
        if not trimmed:
            return invalid(ValidationCode.EMPTY_NAME, "Category name cannot be empty", "name")
        if self.find_category(trimmed) is not None:
            return invalid(
                ValidationCode.DUPLICATE_CATEGORY,
                f"A category named '{trimmed}' already exists",
                "name",
            )
        sort_order = max((category.sort_order for category in self.vault.categories), default=-1) + 1
        category = Category(name=trimmed, sort_order=sort_order, color_hex=color_hex, emoji=emoji)
        self.vault.categories.append(category)
        logger.info("Created category name=%s sort_order=%s", trimmed, sort_order)
        return Outcome.success(category)

    def resolve_category(self, name_or_key: Optional[str]) -> Outcome[Category]:
        """Find a category by name or key, creating it if needed; blank names use the default."""

        wanted = (name_or_key or "").strip() or self.default_category
        category = self.find_category(wanted)
        if category is not None:
            return Outcome.success(category)
        return self.create_category(wanted)

    def category_for_item(self, item_id: str) -> Optional[Category]:
        for category in self.vault.categories:
            if any(item.id == item_id for item in category.items):
                return category
        return None

    def category_name_for_item(self, item_id: str) -> Optional[str]:
        category = self.category_for_item(item_id)
        return category.name if category else None

    # Items -------------------------------------------------------------------

    def all_items(self, include_deleted: bool = False) -> List[Item]:
        return list(self.vault.iter_items(include_deleted=include_deleted))

    def find_item_by_id(self, item_id: str) -> Optional[Item]:
        """Return the item with ``item_id``, including soft-deleted items."""

        for item in self.vault.iter_items(include_deleted=True):
            if item.id == item_id:
                return item
        return None

    def get_item(self, item_id: str) -> Item:
        item = self.find_item_by_id(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def find_items_by_name(self, name: str, exact: bool = False) -> List[Item]:
        """Case-insensitive lookup over non-deleted items (substring unless ``exact``)."""

        term = normalize_key(name)
        if not term:
            return [] if exact else self.all_items()
        if exact:
            return [item for item in self.vault.iter_items() if normalize_key(item.name) == term]
        return [item for item in self.vault.iter_items() if term in normalize_key(item.name)]

    def current_price(self, item_id: str, store: Optional[str]) -> Optional[PriceOption]:
        item = self.find_item_by_id(item_id)
        if item is None:
            return None
        return item.price_option_for(store)

    def is_duplicate(self, name: str, store: str, excluding: Optional[str] = None) -> bool:
        name_key = normalize_key(name)
        store_key = normalize_key(store)
        for item in self.vault.iter_items():
            if excluding is not None and item.id == excluding:
                continue
            if normalize_key(item.name) == name_key and item.has_store(store_key):
                return True
        return False

    def validate_item(
        self,
        name: str,
        store: str,
        price: float,
        excluding: Optional[str] = None,
    ) -> Optional[ValidationError]:
        trimmed_name = (name or "").strip()
        trimmed_store = (store or "").strip()
        if not trimmed_name:
            return ValidationError(ValidationCode.EMPTY_NAME, "Item name cannot be empty", "name")
        if not trimmed_store:
            return ValidationError(ValidationCode.EMPTY_STORE, "Store name cannot be empty", "store")
        if not is_positive(price):
            return ValidationError(ValidationCode.INVALID_PRICE, "Price must be greater than 0", "price")
        if self.is_duplicate(trimmed_name, trimmed_store, excluding=excluding):
            return ValidationError(
                ValidationCode.DUPLICATE_ITEM,
                f"An item with name '{trimmed_name}' already exists at {trimmed_store}",
                "name",
            )
        return None

    def add_item(
        self,
        name: str,
        category: Optional[str],
        store: str,
        price: float,
        unit: str,
        *,
        source: str = "catalog",
    ) -> Outcome[Item]:
        """Create an item with a single price option, or return a validation failure."""

        error = self.validate_item(name, store, price)
        if error is not None:
            logger.warning("Rejected catalog item name=%s store=%s: %s", name, store, error.message)
            return Outcome.failure(error)

        resolved = self.resolve_category(category)
        if not resolved.ok:
            return Outcome.failure(resolved.error)
        target = resolved.unwrap()
        item = Item(
            name=name.strip(),
            category_id=target.id,
            price_options=[
                PriceOption(
                    store=store.strip(),
                    price_per_unit=PricePerUnit(value=float(price), unit=(unit or "").strip()),
                )
            ],
            created_at=self._clock(),
        )
        target.items.append(item)
        self.add_store(store)
        logger.info(
            "Catalog item added id=%s name=%s category=%s store=%s price=%.2f",
            item.id,
            item.name,
            target.name,
            store.strip(),
            price,
        )
        self.events.emit(
            ItemAddedToCatalog(item_id=item.id, name=item.name, category_id=target.id, source=source)
        )
        return Outcome.success(item)

    def update_item(
        self,
        item_id: str,
        *,
        name: Optional[str] = None,
        category: Optional[str] = None,
        store: Optional[str] = None,
        price: Optional[float] = None,
        unit: Optional[str] = None,
        carts: Iterable[Cart] = (),
    ) -> Outcome[Item]:
        """
        Update an item's name/category and its primary price option.

        Planning carts holding the item get their planned price, unit, and store refreshed.
        """

        item = self.get_item(item_id)
        primary = item.price_options[0] if item.price_options else None
        new_name = name if name is not None else item.name
        new_store = store if store is not None else (primary.store if primary else "")
        new_price = price if price is not None else (primary.price_per_unit.value if primary else 0.0)
        new_unit = unit if unit is not None else (primary.price_per_unit.unit if primary else "")

        error = self.validate_item(new_name, new_store, new_price, excluding=item.id)
        if error is not None:
            logger.warning("Rejected update for item %s: %s", item_id, error.message)
            return Outcome.failure(error)

        target: Optional[Category] = None
        if category is not None:
            resolved = self.resolve_category(category)
            if not resolved.ok:
                return Outcome.failure(resolved.error)
            target = resolved.unwrap()

        item.name = new_name.strip()
        option = PriceOption(
            store=new_store.strip(),
            price_per_unit=PricePerUnit(value=float(new_price), unit=new_unit.strip()),
        )
        if item.price_options:
            item.price_options[0] = option
        else:
            item.price_options.append(option)
        self.add_store(new_store)

        if target is not None:
            current = self.category_for_item(item.id)
            if current is not None and current.id != target.id:
                current.items = [entry for entry in current.items if entry.id != item.id]
                target.items.append(item)
            item.category_id = target.id

        for cart in carts:
            if not cart.is_planning:
                continue
            for cart_item in cart.lines_for_item(item.id):
                cart_item.planned_store = option.store
                cart_item.planned_price = option.price_per_unit.value
                cart_item.planned_unit = option.price_per_unit.unit
                cart.updated_at = self._clock()

        logger.info("Catalog item updated id=%s name=%s store=%s", item.id, item.name, option.store)
        return Outcome.success(item)

    def delete_item(self, item_id: str, carts: Iterable[Cart]) -> List[str]:
        """
        Soft-delete an item and remove every cart line referencing it.

        Each removed line is kept as a snapshot on the item so a later restore can put it
        back. Returns the ids of the carts that lost a line.
        """

        item = self.get_item(item_id)
        if item.is_deleted:
            return []

        now = self._clock()
        item.is_deleted = True
        item.deleted_at = now

        affected: List[str] = []
        for cart in carts:
            lines = cart.lines_for_item(item_id)
            if not lines:
                continue
            for cart_item in lines:
                item.removed_lines.append(
                    RemovedLineSnapshot(
                        cart_id=cart.id,
                        cart_item=cart_item.model_copy(deep=True),
                        removed_at=now,
                    )
                )
                cart.remove_cart_item(cart_item.id)
            cart.updated_at = now
            affected.append(cart.id)

        logger.info(
            "Catalog item soft-deleted id=%s name=%s carts_affected=%s",
            item.id,
            item.name,
            len(affected),
        )
        self.events.emit(
            ItemRemovedFromCatalog(item_id=item.id, name=item.name, affected_cart_ids=affected)
        )
        return affected

    def restore_item(
        self,
        item_id: str,
        carts: Iterable[Cart] = (),
        restore_to_carts: bool = False,
    ) -> Outcome[Item]:
        """Undo a soft delete; optionally put removed lines back into carts still in progress."""

        item = self.get_item(item_id)
        if not item.is_deleted:
            return Outcome.success(item)

        primary = item.price_options[0] if item.price_options else None
        if primary is not None and self.is_duplicate(item.name, primary.store, excluding=item.id):
            return invalid(
                ValidationCode.DUPLICATE_ITEM,
                f"An item with name '{item.name}' already exists at {primary.store}",
                "name",
            )

        item.is_deleted = False
        item.deleted_at = None

        if restore_to_carts:
            carts_by_id = {cart.id: cart for cart in carts}
            for snapshot in item.removed_lines:
                cart = carts_by_id.get(snapshot.cart_id)
                if cart is None or not cart.is_active or cart.lines_for_item(item.id):
                    continue
                line = snapshot.cart_item.model_copy(deep=True)
                if cart.is_shopping and line.original_planning_quantity is None:
                    line.added_during_shopping = True
                cart.cart_items.append(line)
                cart.updated_at = self._clock()
        item.removed_lines = []

        self.events.emit(
            ItemAddedToCatalog(item_id=item.id, name=item.name, category_id=item.category_id, source="restore")
        )
        return Outcome.success(item)

    def merge_ad_hoc_into_catalog(self, cart_item: CartItem, category_fallback: str) -> Outcome[Item]:
        """Promote a shopping-only line into a catalog item with a single price option."""

        line = cart_item.line
        if not isinstance(line, AdHocLine):
            raise ValueError(f"Cart item {cart_item.id} is already backed by the catalog")

        price = cart_item.actual_price if cart_item.actual_price is not None else line.price
        unit = cart_item.actual_unit or line.unit
        store = cart_item.actual_store or line.store
        category = line.category if normalize_key(line.category) else category_fallback
        return self.add_item(line.name, category, store, price, unit, source="merge")

    # Stores ------------------------------------------------------------------

    def add_store(self, name: str) -> bool:
        """Record a store name (deduplicated case-insensitively); returns True when added."""

        trimmed = (name or "").strip()
        if not trimmed:
            return False
        key = normalize_key(trimmed)
        if any(normalize_key(store.name) == key for store in self.vault.stores):
            return False
        self.vault.stores.insert(0, Store(name=trimmed, created_at=self._clock()))
        return True

    def all_stores(self) -> List[str]:
        """Store names by recency, then stores only referenced by items, alphabetically."""

        ordered: List[str] = []
        seen: set[str] = set()
        for store in sorted(self.vault.stores, key=lambda entry: entry.created_at, reverse=True):
            key = normalize_key(store.name)
            if key not in seen:
                ordered.append(store.name)
                seen.add(key)

        legacy = {
            option.store
            for item in self.vault.iter_items()
            for option in item.price_options
            if normalize_key(option.store) not in seen
        }
        ordered.extend(sorted(legacy, key=str.casefold))
        return ordered

    def most_recent_store(self) -> Optional[str]:
        if not self.vault.stores:
            return None
        return max(self.vault.stores, key=lambda entry: entry.created_at).name

    def rename_store(self, old_name: str, new_name: str) -> Outcome[int]:
        """
        Rename a store everywhere in the catalog; the value is the number of price options touched.

        Fails with ``duplicate_item`` and changes nothing when an item sold at the old store would
        collide with a live (name, store) pair at the new one.
        """

        trimmed = (new_name or "").strip()
        if not trimmed:
            return invalid(ValidationCode.EMPTY_STORE, "Store name cannot be empty", "name")
        old_key = normalize_key(old_name)
        if normalize_key(trimmed) != old_key:
            for item in self.vault.iter_items():
                if not item.has_store(old_key):
                    continue
                if item.has_store(trimmed) or self.is_duplicate(item.name, trimmed, excluding=item.id):
                    logger.warning("Store rename %s -> %s blocked by item %s", old_name, trimmed, item.name)
                    return invalid(
                        ValidationCode.DUPLICATE_ITEM,
                        f"An item with name '{item.name}' already exists at {trimmed}",
                        "name",
                    )

        for store in self.vault.stores:
            if normalize_key(store.name) == old_key:
                store.name = trimmed

        touched = 0
        for item in self.vault.iter_items(include_deleted=True):
            for index, option in enumerate(item.price_options):
                if normalize_key(option.store) == old_key:
                    item.price_options[index] = PriceOption(
                        store=trimmed, price_per_unit=option.price_per_unit
                    )
                    touched += 1
        logger.info("Store renamed from %s to %s (price options=%s)", old_name, trimmed, touched)
        return Outcome.success(touched)

    def delete_store(self, name: str) -> bool:
        """Drop a store from the store list; items keep their raw store strings."""

        key = normalize_key(name)
        remaining = [store for store in self.vault.stores if normalize_key(store.name) != key]
        if len(remaining) == len(self.vault.stores):
            return False
        self.vault.stores = remaining
        return True


__all__ = ["Catalog"]
