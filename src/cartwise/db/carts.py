"""Cart persistence helpers."""
# mypy: ignore-errors

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, select

from cartwise.models.cart import AdHocLine, Cart, CartItem, CatalogLine
from cartwise.models.common import ensure_utc

from .models import CartItemORM, CartORM
from .repository import session_scope
from .vault import to_storage_time


def _line_to_model(row: CartItemORM):
    if row.kind == "ad_hoc":
        return AdHocLine(
            name=row.ad_hoc_name,
            store=row.ad_hoc_store,
            price=row.ad_hoc_price,
            unit=row.ad_hoc_unit or "",
            category=row.ad_hoc_category,
        )
    return CatalogLine(
        item_id=row.item_id,
        name_snapshot=row.name_snapshot,
        category_snapshot=row.category_snapshot,
    )


def _cart_item_to_model(row: CartItemORM) -> CartItem:
    return CartItem.model_validate(
        {
            "id": row.id,
            "line": _line_to_model(row),
            "quantity": row.quantity,
            "planned_price": row.planned_price,
            "planned_unit": row.planned_unit,
            "planned_store": row.planned_store,
            "original_planning_quantity": row.original_planning_quantity,
            "actual_price": row.actual_price,
            "actual_unit": row.actual_unit,
            "actual_quantity": row.actual_quantity,
            "actual_store": row.actual_store,
            "is_fulfilled": row.is_fulfilled,
            "is_skipped_during_shopping": row.is_skipped_during_shopping,
            "added_during_shopping": row.added_during_shopping,
            "was_edited_during_shopping": row.was_edited_during_shopping,
            "added_at": ensure_utc(row.added_at),
        }
    )


def _to_model(row: CartORM, items: List[CartItemORM]) -> Cart:
    return Cart.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "budget": row.budget,
            "status": row.status,
            "created_at": ensure_utc(row.created_at),
            "updated_at": ensure_utc(row.updated_at),
            "started_at": ensure_utc(row.started_at),
            "completed_at": ensure_utc(row.completed_at),
            "cart_items": [_cart_item_to_model(item) for item in items],
        }
    )


def _cart_item_row(cart_id: str, position: int, cart_item: CartItem) -> CartItemORM:
    line = cart_item.line
    row = CartItemORM(
        id=cart_item.id,
        cart_id=cart_id,
        position=position,
        kind=line.kind,
        quantity=cart_item.quantity,
        planned_price=cart_item.planned_price,
        planned_unit=cart_item.planned_unit,
        planned_store=cart_item.planned_store,
        original_planning_quantity=cart_item.original_planning_quantity,
        actual_price=cart_item.actual_price,
        actual_unit=cart_item.actual_unit,
        actual_quantity=cart_item.actual_quantity,
        actual_store=cart_item.actual_store,
        is_fulfilled=cart_item.is_fulfilled,
        is_skipped_during_shopping=cart_item.is_skipped_during_shopping,
        added_during_shopping=cart_item.added_during_shopping,
        was_edited_during_shopping=cart_item.was_edited_during_shopping,
        added_at=to_storage_time(cart_item.added_at),
    )
    if isinstance(line, AdHocLine):
        row.ad_hoc_name = line.name
        row.ad_hoc_store = line.store
        row.ad_hoc_price = line.price
        row.ad_hoc_unit = line.unit
        row.ad_hoc_category = line.category
    else:
        row.item_id = line.item_id
        row.name_snapshot = line.name_snapshot
        row.category_snapshot = line.category_snapshot
    return row


def _items_for(session, cart_id: str) -> List[CartItemORM]:
    return list(
        session.execute(
            select(CartItemORM)
            .where(CartItemORM.cart_id == cart_id)
            .order_by(CartItemORM.position.asc())
        )
        .scalars()
        .all()
    )


def list_carts() -> List[Cart]:
    """Return all carts, newest first."""

    with session_scope() as session:
        rows = session.execute(select(CartORM).order_by(CartORM.created_at.desc())).scalars().all()
        return [_to_model(row, _items_for(session, row.id)) for row in rows]


def load_cart(cart_id: str) -> Optional[Cart]:
    with session_scope() as session:
        row = session.get(CartORM, cart_id)
        if row is None:
            return None
        return _to_model(row, _items_for(session, cart_id))


def save_cart(cart: Cart) -> None:
    """Insert or replace ``cart`` and all of its lines."""

    with session_scope() as session:
        row = session.get(CartORM, cart.id)
        if row is None:
            row = CartORM(id=cart.id)
            session.add(row)
        row.name = cart.name
        row.budget = cart.budget
        row.status = cart.status.value
        row.created_at = to_storage_time(cart.created_at)
        row.updated_at = to_storage_time(cart.updated_at)
        row.started_at = to_storage_time(cart.started_at)
        row.completed_at = to_storage_time(cart.completed_at)

        session.execute(delete(CartItemORM).where(CartItemORM.cart_id == cart.id))
        session.flush()
        for position, cart_item in enumerate(cart.cart_items):
            session.add(_cart_item_row(cart.id, position, cart_item))


def delete_cart(cart_id: str) -> bool:
    with session_scope() as session:
        row = session.get(CartORM, cart_id)
        if row is None:
            return False
        session.execute(delete(CartItemORM).where(CartItemORM.cart_id == cart_id))
        session.delete(row)
        return True


__all__ = ["list_carts", "load_cart", "save_cart", "delete_cart"]
