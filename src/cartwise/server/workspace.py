"""Load-mutate-save unit of work used by the HTTP layer."""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Generator, Iterable, List, Optional

from cartwise.catalog import Catalog
from cartwise.config import Settings, get_settings
from cartwise.db.backends import Repository
from cartwise.events import EventEmitter
from cartwise.lifecycle import CartLifecycleController
from cartwise.logging_utils import log_context

logger = logging.getLogger(__name__)


class LockRegistry:
    """
    One lock per cart id plus a vault lock.

    Acquisition order is always vault first, then cart locks sorted by id.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._carts: Dict[str, threading.RLock] = {}
        self.vault = threading.RLock()

    def for_cart(self, cart_id: str) -> threading.RLock:
        with self._guard:
            lock = self._carts.get(cart_id)
            if lock is None:
                lock = self._carts[cart_id] = threading.RLock()
            return lock

    def for_carts(self, cart_ids: Iterable[str]) -> List[threading.RLock]:
        return [self.for_cart(cart_id) for cart_id in sorted(set(cart_ids))]

    def discard(self, cart_id: str) -> None:
        with self._guard:
            self._carts.pop(cart_id, None)


class Workspace:
    """Builds a controller from the repository for each unit of work and saves what changed."""

    def __init__(
        self,
        repository: Repository,
        *,
        settings: Optional[Settings] = None,
        locks: Optional[LockRegistry] = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or get_settings()
        self.locks = locks or LockRegistry()

    def controller(self) -> CartLifecycleController:
        events = EventEmitter()
        catalog = Catalog(
            self.repository.load_vault(), events=events, default_category=self.settings.default_category
        )
        return CartLifecycleController(
            catalog,
            self.repository.list_carts(),
            events=events,
            settings=self.settings,
        )

    def _save(self, controller: CartLifecycleController, cart_ids: Iterable[str], vault: bool) -> None:
        cart_ids = list(cart_ids)
        if vault:
            self.repository.save_vault(controller.vault)
        for cart_id in cart_ids:
            cart = controller.carts.get(cart_id)
            if cart is None:
                self.repository.delete_cart(cart_id)
                self.locks.discard(cart_id)
            else:
                self.repository.save_cart(cart)
        logger.debug("Saved %s carts (vault=%s)", len(cart_ids), vault)

    @contextmanager
    def cart(self, cart_id: str, *, vault: bool = False) -> Generator[CartLifecycleController, None, None]:
        """Serialize work on one cart; ``vault`` also locks and saves the catalog."""

        with ExitStack() as stack:
            if vault:
                stack.enter_context(self.locks.vault)
            stack.enter_context(self.locks.for_cart(cart_id))
            stack.enter_context(log_context(cart_id=cart_id))
            controller = self.controller()
            controller.get_cart(cart_id)
            yield controller
            self._save(controller, [cart_id], vault)

    @contextmanager
    def catalog(self) -> Generator[CartLifecycleController, None, None]:
        """Lock the catalog and every cart; saves all of them afterwards."""

        with ExitStack() as stack:
            stack.enter_context(self.locks.vault)
            known = [cart.id for cart in self.repository.list_carts()]
            for lock in self.locks.for_carts(known):
                stack.enter_context(lock)
            controller = self.controller()
            yield controller
            touched = set(known) | set(controller.carts)
            self._save(controller, sorted(touched), vault=True)


__all__ = ["LockRegistry", "Workspace"]
