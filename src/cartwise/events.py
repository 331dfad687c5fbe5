"""Domain events and the emitter presentation layers subscribe to."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Callable, DefaultDict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from cartwise.models.cart import CartStatus
from cartwise.models.common import utc_now

logger = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    occurred_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


class CartPhaseChanged(DomainEvent):
    """A cart moved between phases; ``current`` is ``None`` when the cart was deleted."""

    cart_id: str
    previous: Optional[CartStatus] = None
    current: Optional[CartStatus] = None


class CartItemChange(str, Enum):
    ADDED = "added"
    QUANTITY = "quantity"
    FULFILLED = "fulfilled"
    UNFULFILLED = "unfulfilled"
    SKIPPED = "skipped"
    UNSKIPPED = "unskipped"
    REMOVED = "removed"
    STORE = "store"


class CartItemChanged(DomainEvent):
    cart_id: str
    cart_item_id: str
    change: CartItemChange


class ItemAddedToCatalog(DomainEvent):
    item_id: str
    name: str
    category_id: str
    source: Literal["catalog", "merge", "restore"] = "catalog"


class ItemRemovedFromCatalog(DomainEvent):
    item_id: str
    name: str
    affected_cart_ids: List[str] = Field(default_factory=list)


E = TypeVar("E", bound=DomainEvent)
Handler = Callable[[E], None]


class EventEmitter:
    """
    Synchronous publish/subscribe seam for domain events.

    Handlers registered for a base class (for example ``DomainEvent``) receive every
    subclass. A failing handler is logged and never interrupts the emitting operation.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[DomainEvent], List[Callable[[DomainEvent], None]]] = (
            defaultdict(list)
        )

    def subscribe(self, event_type: Type[E], handler: Handler[E]) -> Callable[[], None]:
        """Register ``handler`` and return a callable that removes it again."""

        self._handlers[event_type].append(handler)  # type: ignore[arg-type]

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)  # type: ignore[arg-type]

        return _unsubscribe

    def emit(self, event: DomainEvent) -> None:
        for event_type in type(event).__mro__:
            for handler in list(self._handlers.get(event_type, ())):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler failed for %s", type(event).__name__)

    def clear(self) -> None:
        self._handlers.clear()


__all__ = [
    "DomainEvent",
    "CartPhaseChanged",
    "CartItemChange",
    "CartItemChanged",
    "ItemAddedToCatalog",
    "ItemRemovedFromCatalog",
    "EventEmitter",
]
