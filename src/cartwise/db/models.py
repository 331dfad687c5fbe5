"""SQLAlchemy models representing Cartwise persistence tables."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base class for Cartwise ORM models."""


class VaultORM(Base):
    """Single-row table recording the catalog's identity."""

    __tablename__ = "vaults"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)


class CategoryORM(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color_hex: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    emoji: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)


class ItemORM(Base):
    """Catalog item; soft-deleted rows are kept for history and restore."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    category_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    removed_lines: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class PriceOptionORM(Base):
    __tablename__ = "price_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    store: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(64), nullable=False, default="")


class StoreORM(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CartORM(Base):
    """Shopping trip header row."""

    __tablename__ = "carts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    budget: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="planning")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CartItemORM(Base):
    """Cart line; ``kind`` selects which of the catalog or ad-hoc columns are populated."""

    __tablename__ = "cart_items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    cart_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    item_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    name_snapshot: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category_snapshot: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    ad_hoc_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ad_hoc_store: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ad_hoc_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ad_hoc_unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ad_hoc_category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    planned_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    planned_unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    planned_store: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    original_planning_quantity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    actual_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actual_quantity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_store: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    is_fulfilled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_skipped_during_shopping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    added_during_shopping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    was_edited_during_shopping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


__all__ = [
    "Base",
    "VaultORM",
    "CategoryORM",
    "ItemORM",
    "PriceOptionORM",
    "StoreORM",
    "CartORM",
    "CartItemORM",
]
