"""Repository implementations the controller's callers persist aggregates through."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from cartwise.models.cart import Cart
from cartwise.models.catalog import Vault

from . import carts as cart_store
from . import vault as vault_store

logger = logging.getLogger(__name__)


class Repository(Protocol):
    def load_vault(self) -> Optional[Vault]: ...

    def save_vault(self, vault: Vault) -> None: ...

    def load_cart(self, cart_id: str) -> Optional[Cart]: ...

    def save_cart(self, cart: Cart) -> None: ...

    def list_carts(self) -> List[Cart]: ...

    def delete_cart(self, cart_id: str) -> bool: ...


class InMemoryRepository:
    """Keeps deep copies so callers never share state with what was saved."""

    def __init__(self) -> None:
        self._vault: Optional[Vault] = None
        self._carts: Dict[str, Cart] = {}

    def load_vault(self) -> Optional[Vault]:
        return self._vault.model_copy(deep=True) if self._vault is not None else None

    def save_vault(self, vault: Vault) -> None:
        self._vault = vault.model_copy(deep=True)

    def load_cart(self, cart_id: str) -> Optional[Cart]:
        cart = self._carts.get(cart_id)
        return cart.model_copy(deep=True) if cart is not None else None

    def save_cart(self, cart: Cart) -> None:
        self._carts[cart.id] = cart.model_copy(deep=True)

    def list_carts(self) -> List[Cart]:
        ordered = sorted(self._carts.values(), key=lambda cart: cart.created_at, reverse=True)
        return [cart.model_copy(deep=True) for cart in ordered]

    def delete_cart(self, cart_id: str) -> bool:
        return self._carts.pop(cart_id, None) is not None


class SqlRepository:
    """SQLite-backed repository using the shared engine from ``cartwise.db.repository``."""

    def load_vault(self) -> Optional[Vault]:
        return vault_store.load_vault()

    def save_vault(self, vault: Vault) -> None:
        vault_store.save_vault(vault)
        logger.debug("Saved vault %s", vault.id)

    def load_cart(self, cart_id: str) -> Optional[Cart]:
        return cart_store.load_cart(cart_id)

    def save_cart(self, cart: Cart) -> None:
        cart_store.save_cart(cart)
        logger.debug("Saved cart %s", cart.id, extra={"cart_id": cart.id})

    def list_carts(self) -> List[Cart]:
        return cart_store.list_carts()

    def delete_cart(self, cart_id: str) -> bool:
        return cart_store.delete_cart(cart_id)


__all__ = ["Repository", "InMemoryRepository", "SqlRepository"]
