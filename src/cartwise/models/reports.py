"""Read models produced by the price ledger and lifecycle operations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cartwise.errors import ValidationError
from cartwise.models.cart import CartItem, CartStatus


class BudgetStatus(str, Enum):
    OVER = "over"
    UNDER = "under"
    ON_BUDGET = "on_budget"


class StoreOrder(str, Enum):
    """Ordering for store groupings."""

    ALPHABETICAL = "alphabetical"
    RECENT_FIRST = "recent_first"


class BudgetSummary(BaseModel):
    budget: float
    spent: float
    delta: float
    status: BudgetStatus

    model_config = ConfigDict(frozen=True)


class PriceChange(BaseModel):
    """Difference between planned and actual spend for one line."""

    cart_item_id: str
    name: str
    planned_price: float
    actual_price: float
    planned_quantity: float
    actual_quantity: float
    difference: float

    model_config = ConfigDict(frozen=True)


class CartInsights(BaseModel):
    """Plan-versus-actual summary for a trip."""

    fulfilled: int = 0
    skipped: int = 0
    added_during_shopping: int = 0
    changed_from_plan: int = 0
    planned_total: float = 0.0
    actual_total: float = 0.0
    total_difference: float = 0.0
    price_changes: List[PriceChange] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class StoreGroup(BaseModel):
    store: str
    items: List[CartItem]


class CategoryGroup(BaseModel):
    category: str
    items: List[CartItem]


class PriceHistoryPoint(BaseModel):
    """Price paid for an item on one completed trip."""

    cart_id: str
    date: datetime
    price: float
    store: str
    unit: str

    model_config = ConfigDict(frozen=True)


class QuantityResult(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    SKIPPED = "skipped"
    REMOVED = "removed"
    CONFIRMATION_REQUIRED = "confirmation_required"


class QuantityChange(BaseModel):
    """Effect of a quantity mutation on a cart line."""

    cart_item_id: str
    result: QuantityResult
    previous: float
    quantity: float

    model_config = ConfigDict(frozen=True)

    @property
    def needs_confirmation(self) -> bool:
        return self.result == QuantityResult.CONFIRMATION_REQUIRED


class MergeFailure(BaseModel):
    cart_item_id: str
    name: str
    code: str
    message: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_error(cls, cart_item_id: str, name: str, error: ValidationError) -> "MergeFailure":
        return cls(
            cart_item_id=cart_item_id,
            name=name,
            code=error.code.value,
            message=error.message,
        )


class CompletionReport(BaseModel):
    """What happened to the catalog when a trip was completed."""

    cart_id: str
    merged_item_ids: List[str] = Field(default_factory=list)
    merge_failures: List[MergeFailure] = Field(default_factory=list)
    updated_price_item_ids: List[str] = Field(default_factory=list)
    # Items whose actual store already belongs to another item of the same name.
    price_sync_conflicts: List[str] = Field(default_factory=list)


class CartSummary(BaseModel):
    """Everything a cart screen needs to render totals."""

    cart_id: str
    status: CartStatus
    cart_value: float
    budget: BudgetSummary
    progress: float
    insights: CartInsights
    completed_at: Optional[datetime] = None


__all__ = [
    "BudgetStatus",
    "StoreOrder",
    "BudgetSummary",
    "PriceChange",
    "CartInsights",
    "StoreGroup",
    "CategoryGroup",
    "PriceHistoryPoint",
    "QuantityResult",
    "QuantityChange",
    "MergeFailure",
    "CompletionReport",
    "CartSummary",
]
