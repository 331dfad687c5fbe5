"""Catalog ("vault") aggregate models."""

from __future__ import annotations

from datetime import datetime
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cartwise.models.cart import RemovedLineSnapshot
from cartwise.models.common import new_id, normalize_key, utc_now

# (key, title, emoji) in display order; custom categories sort after these.
DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("freshProduce", "Fresh Produce", "🍎"),
    ("meatsSeafood", "Meats & Seafood", "🥩"),
    ("dairyEggs", "Dairy & Eggs", "🧀"),
    ("frozen", "Frozen", "🧊"),
    ("condimentsIngredients", "Condiments & Ingredients", "🧂"),
    ("pantry", "Pantry", "🥫"),
    ("bakeryBread", "Bakery & Bread", "🍞"),
    ("beverages", "Beverages", "🥤"),
    ("readyMeals", "Ready Meals", "🍱"),
    ("personalCare", "Personal Care", "🧴"),
    ("health", "Health", "💊"),
    ("cleaningHousehold", "Cleaning & Household", "🧽"),
    ("pets", "Pets", "🐾"),
    ("baby", "Baby", "🍼"),
    ("homeGarden", "Home & Garden", "🪴"),
    ("electronicsHobbies", "Electronics & Hobbies", "🎮"),
    ("stationery", "Stationery", "✏️"),
)


class PricePerUnit(BaseModel):
    value: float = Field(ge=0)
    unit: str = Field(default="", max_length=64)

    model_config = ConfigDict(frozen=True)


class PriceOption(BaseModel):
    """Price of an item at a particular store."""

    store: str = Field(min_length=1, max_length=255)
    price_per_unit: PricePerUnit

    model_config = ConfigDict(frozen=True)


class Item(BaseModel):
    """Purchasable catalog item with per-store prices."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=255)
    category_id: str
    price_options: List[PriceOption] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    removed_lines: List[RemovedLineSnapshot] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)

    def price_option_for(self, store: Optional[str]) -> Optional[PriceOption]:
        key = normalize_key(store)
        for option in self.price_options:
            if normalize_key(option.store) == key:
                return option
        return None

    def has_store(self, store: str) -> bool:
        return self.price_option_for(store) is not None

    def set_price(self, store: str, value: float, unit: str) -> PriceOption:
        """Replace the option for ``store`` (or append one) and return it."""

        option = PriceOption(store=store.strip(), price_per_unit=PricePerUnit(value=value, unit=unit))
        key = normalize_key(store)
        for index, existing in enumerate(self.price_options):
            if normalize_key(existing.store) == key:
                self.price_options[index] = option
                return option
        self.price_options.append(option)
        return option


class Category(BaseModel):
    """Named grouping of catalog items."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=255)
    key: Optional[str] = None
    sort_order: int = 0
    color_hex: Optional[str] = Field(default=None, max_length=16)
    emoji: Optional[str] = None
    items: List[Item] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)

    def matches(self, name_or_key: str) -> bool:
        wanted = normalize_key(name_or_key)
        return wanted in {normalize_key(self.name), normalize_key(self.key)}


class Store(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    created_at: datetime = Field(default_factory=utc_now)


class Vault(BaseModel):
    """Root aggregate of the item catalog."""

    id: str = Field(default_factory=new_id)
    categories: List[Category] = Field(default_factory=list)
    stores: List[Store] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)

    def iter_items(self, include_deleted: bool = False) -> Iterator[Item]:
        for category in sorted(self.categories, key=lambda c: c.sort_order):
            for item in category.items:
                if item.is_deleted and not include_deleted:
                    continue
                yield item


__all__ = [
    "DEFAULT_CATEGORIES",
    "PricePerUnit",
    "PriceOption",
    "Item",
    "Category",
    "Store",
    "Vault",
]
