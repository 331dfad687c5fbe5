"""Pydantic models defining the catalog and cart aggregates."""

from cartwise.models.cart import (
    MAX_QUANTITY,
    AdHocLine,
    Cart,
    CartItem,
    CartStatus,
    CatalogLine,
    RemovedLineSnapshot,
)
from cartwise.models.catalog import (
    DEFAULT_CATEGORIES,
    Category,
    Item,
    PriceOption,
    PricePerUnit,
    Store,
    Vault,
)
from cartwise.models.reports import (
    BudgetStatus,
    BudgetSummary,
    CartInsights,
    CartSummary,
    CategoryGroup,
    CompletionReport,
    MergeFailure,
    PriceChange,
    PriceHistoryPoint,
    QuantityChange,
    QuantityResult,
    StoreGroup,
    StoreOrder,
)

__all__ = [
    "MAX_QUANTITY",
    "AdHocLine",
    "Cart",
    "CartItem",
    "CartStatus",
    "CatalogLine",
    "RemovedLineSnapshot",
    "DEFAULT_CATEGORIES",
    "Category",
    "Item",
    "PriceOption",
    "PricePerUnit",
    "Store",
    "Vault",
    "BudgetStatus",
    "BudgetSummary",
    "CartInsights",
    "CartSummary",
    "CategoryGroup",
    "CompletionReport",
    "MergeFailure",
    "PriceChange",
    "PriceHistoryPoint",
    "QuantityChange",
    "QuantityResult",
    "StoreGroup",
    "StoreOrder",
]
