"""Catalog persistence helpers."""
# mypy: ignore-errors

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import TypeAdapter
from sqlalchemy import delete, select

from cartwise.models.cart import RemovedLineSnapshot
from cartwise.models.catalog import Category, Item, PriceOption, PricePerUnit, Store, Vault
from cartwise.models.common import ensure_utc

from .models import CategoryORM, ItemORM, PriceOptionORM, StoreORM, VaultORM
from .repository import session_scope

_SNAPSHOTS = TypeAdapter(List[RemovedLineSnapshot])


def to_storage_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(value).astimezone(timezone.utc)


def _item_to_model(row: ItemORM, options: List[PriceOptionORM]) -> Item:
    return Item.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "category_id": row.category_id,
            "price_options": [
                PriceOption(
                    store=option.store,
                    price_per_unit=PricePerUnit(value=option.value, unit=option.unit),
                )
                for option in sorted(options, key=lambda option: option.position)
            ],
            "created_at": ensure_utc(row.created_at),
            "is_deleted": row.is_deleted,
            "deleted_at": ensure_utc(row.deleted_at),
            "removed_lines": _SNAPSHOTS.validate_json(row.removed_lines) if row.removed_lines else [],
        }
    )


def load_vault() -> Optional[Vault]:
    """Return the persisted catalog, or ``None`` when nothing has been saved yet."""

    with session_scope() as session:
        vault_row = session.execute(select(VaultORM)).scalars().first()
        if vault_row is None:
            return None

        options_by_item: dict[str, List[PriceOptionORM]] = {}
        for option in session.execute(select(PriceOptionORM)).scalars():
            options_by_item.setdefault(option.item_id, []).append(option)

        items_by_category: dict[str, List[Item]] = {}
        item_rows = session.execute(select(ItemORM).order_by(ItemORM.position.asc())).scalars()
        for row in item_rows:
            items_by_category.setdefault(row.category_id, []).append(
                _item_to_model(row, options_by_item.get(row.id, []))
            )

        categories = [
            Category(
                id=row.id,
                name=row.name,
                key=row.key,
                sort_order=row.sort_order,
                color_hex=row.color_hex,
                emoji=row.emoji,
                items=items_by_category.get(row.id, []),
            )
            for row in session.execute(
                select(CategoryORM).order_by(CategoryORM.sort_order.asc())
            ).scalars()
        ]
        stores = [
            Store(name=row.name, created_at=ensure_utc(row.created_at))
            for row in session.execute(select(StoreORM).order_by(StoreORM.position.asc())).scalars()
        ]
        return Vault(id=vault_row.id, categories=categories, stores=stores)


def save_vault(vault: Vault) -> None:
    """Replace the persisted catalog with ``vault``."""

    with session_scope() as session:
        session.execute(delete(PriceOptionORM))
        session.execute(delete(ItemORM))
        session.execute(delete(CategoryORM))
        session.execute(delete(StoreORM))
        session.execute(delete(VaultORM))
        session.flush()

        session.add(VaultORM(id=vault.id))
        for category in vault.categories:
            session.add(
                CategoryORM(
                    id=category.id,
                    name=category.name,
                    key=category.key,
                    sort_order=category.sort_order,
                    color_hex=category.color_hex,
                    emoji=category.emoji,
                )
            )
        session.flush()

        for category in vault.categories:
            for position, item in enumerate(category.items):
                session.add(
                    ItemORM(
                        id=item.id,
                        category_id=category.id,
                        position=position,
                        name=item.name,
                        created_at=to_storage_time(item.created_at),
                        is_deleted=item.is_deleted,
                        deleted_at=to_storage_time(item.deleted_at),
                        removed_lines=(
                            _SNAPSHOTS.dump_json(item.removed_lines).decode("utf-8")
                            if item.removed_lines
                            else None
                        ),
                    )
                )
        session.flush()

        for item in vault.iter_items(include_deleted=True):
            for position, option in enumerate(item.price_options):
                session.add(
                    PriceOptionORM(
                        item_id=item.id,
                        position=position,
                        store=option.store,
                        value=option.price_per_unit.value,
                        unit=option.price_per_unit.unit,
                    )
                )
        for position, store in enumerate(vault.stores):
            session.add(
                StoreORM(name=store.name, position=position, created_at=to_storage_time(store.created_at))
            )


__all__ = ["load_vault", "save_vault", "to_storage_time"]
