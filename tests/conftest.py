"""Shared pytest fixtures for the Cartwise test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generator, List

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cartwise.catalog import Catalog
from cartwise.config import get_settings
from cartwise.db.repository import reset_repository_state
from cartwise.events import DomainEvent, EventEmitter
from cartwise.lifecycle import CartLifecycleController
from cartwise.server.app import create_app


class TickingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses an isolated SQLite database location."""

    db_path = tmp_path / "test_cartwise.db"
    monkeypatch.setenv("CARTWISE_DATABASE_PATH", str(db_path))
    monkeypatch.delenv("CARTWISE_API_TOKEN", raising=False)
    get_settings.cache_clear()
    reset_repository_state()
    yield
    reset_repository_state()
    monkeypatch.delenv("CARTWISE_DATABASE_PATH", raising=False)
    get_settings.cache_clear()


@pytest.fixture()
def app() -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture()
def events() -> EventEmitter:
    return EventEmitter()


@pytest.fixture()
def recorded(events) -> List[DomainEvent]:
    """Every event emitted through the ``events`` fixture, in order."""

    seen: List[DomainEvent] = []
    events.subscribe(DomainEvent, seen.append)
    return seen


@pytest.fixture()
def catalog(events, clock) -> Catalog:
    return Catalog(events=events, clock=clock)


@pytest.fixture()
def controller(catalog, events, clock) -> CartLifecycleController:
    return CartLifecycleController(catalog, events=events, settings=get_settings(), clock=clock)


@pytest.fixture()
def milk(controller):
    """Catalog item "Milk" at StoreA for 2.50 per litre."""

    return controller.add_item("Milk", "Dairy & Eggs", "StoreA", 2.5, "L").unwrap()


@pytest.fixture()
def bread(controller):
    return controller.add_item("Bread", "Bakery & Bread", "StoreB", 3.0, "loaf").unwrap()


@pytest.fixture()
def cart(controller):
    return controller.create_cart("Weekly shop", 200.0).unwrap()
