"""Cart aggregate models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from cartwise.errors import NotFoundError
from cartwise.models.common import new_id, utc_now

MAX_QUANTITY = 100.0


class CartStatus(str, Enum):
    """Phase of a shopping trip."""

    PLANNING = "planning"
    SHOPPING = "shopping"
    COMPLETED = "completed"


class CatalogLine(BaseModel):
    """Cart line backed by a catalog item."""

    kind: Literal["catalog"] = "catalog"
    item_id: str
    name_snapshot: Optional[str] = None
    category_snapshot: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AdHocLine(BaseModel):
    """Shopping-only cart line with no catalog backing."""

    kind: Literal["ad_hoc"] = "ad_hoc"
    name: str = Field(min_length=1, max_length=255)
    store: str = Field(min_length=1, max_length=255)
    price: float = Field(ge=0)
    unit: str = Field(default="", max_length=64)
    category: Optional[str] = Field(default=None, max_length=255)

    model_config = ConfigDict(frozen=True)


CartLine = Annotated[Union[CatalogLine, AdHocLine], Field(discriminator="kind")]


class CartItem(BaseModel):
    """Single line on a cart, with planned and actual purchase data."""

    id: str = Field(default_factory=new_id)
    line: CartLine
    quantity: float = Field(default=1.0, ge=0, le=MAX_QUANTITY)

    planned_price: Optional[float] = Field(default=None, ge=0)
    planned_unit: Optional[str] = None
    planned_store: Optional[str] = None
    original_planning_quantity: Optional[float] = Field(default=None, ge=0)

    actual_price: Optional[float] = Field(default=None, ge=0)
    actual_unit: Optional[str] = None
    actual_quantity: Optional[float] = Field(default=None, ge=0)
    actual_store: Optional[str] = None

    is_fulfilled: bool = False
    is_skipped_during_shopping: bool = False
    added_during_shopping: bool = False
    was_edited_during_shopping: bool = False
    added_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def is_shopping_only(self) -> bool:
        return isinstance(self.line, AdHocLine)

    @property
    def item_id(self) -> Optional[str]:
        """Catalog item id for catalog-backed lines, ``None`` for shopping-only lines."""

        if isinstance(self.line, CatalogLine):
            return self.line.item_id
        return None

    @property
    def spent_amount(self) -> float:
        if not self.is_fulfilled or self.is_skipped_during_shopping:
            return 0.0
        price = self.actual_price if self.actual_price is not None else self.planned_price
        quantity = self.actual_quantity if self.actual_quantity is not None else self.quantity
        return (price or 0.0) * quantity

    def clear_actuals(self) -> None:
        self.actual_price = None
        self.actual_unit = None
        self.actual_quantity = None
        self.actual_store = None


class Cart(BaseModel):
    """One shopping trip."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=255)
    budget: float = Field(default=0.0, ge=0)
    status: CartStatus = CartStatus.PLANNING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cart_items: List[CartItem] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def is_planning(self) -> bool:
        return self.status == CartStatus.PLANNING

    @property
    def is_shopping(self) -> bool:
        return self.status == CartStatus.SHOPPING

    @property
    def is_completed(self) -> bool:
        return self.status == CartStatus.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.status != CartStatus.COMPLETED

    @property
    def total_spent(self) -> float:
        return sum(cart_item.spent_amount for cart_item in self.cart_items)

    def find_cart_item(self, cart_item_id: str) -> Optional[CartItem]:
        for cart_item in self.cart_items:
            if cart_item.id == cart_item_id:
                return cart_item
        return None

    def get_cart_item(self, cart_item_id: str) -> CartItem:
        cart_item = self.find_cart_item(cart_item_id)
        if cart_item is None:
            raise NotFoundError("Cart item", cart_item_id)
        return cart_item

    def lines_for_item(self, item_id: str) -> List[CartItem]:
        return [cart_item for cart_item in self.cart_items if cart_item.item_id == item_id]

    def remove_cart_item(self, cart_item_id: str) -> Optional[CartItem]:
        for index, cart_item in enumerate(self.cart_items):
            if cart_item.id == cart_item_id:
                return self.cart_items.pop(index)
        return None


class RemovedLineSnapshot(BaseModel):
    """Copy of a cart line removed because its catalog item was deleted."""

    cart_id: str
    cart_item: CartItem
    removed_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "MAX_QUANTITY",
    "CartStatus",
    "CatalogLine",
    "AdHocLine",
    "CartLine",
    "CartItem",
    "Cart",
    "RemovedLineSnapshot",
]
