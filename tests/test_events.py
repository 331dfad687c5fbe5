"""Tests for the domain event emitter."""

from __future__ import annotations

from cartwise.events import (
    CartItemChange,
    CartItemChanged,
    CartPhaseChanged,
    DomainEvent,
    EventEmitter,
)
from cartwise.models.cart import CartStatus


def test_handlers_receive_subclass_events():
    emitter = EventEmitter()
    everything, phases = [], []
    emitter.subscribe(DomainEvent, everything.append)
    emitter.subscribe(CartPhaseChanged, phases.append)

    emitter.emit(CartPhaseChanged(cart_id="c1", previous=CartStatus.PLANNING, current=CartStatus.SHOPPING))
    emitter.emit(CartItemChanged(cart_id="c1", cart_item_id="i1", change=CartItemChange.ADDED))

    assert len(everything) == 2
    assert len(phases) == 1
    assert phases[0].current == CartStatus.SHOPPING


def test_unsubscribe_stops_delivery():
    emitter = EventEmitter()
    seen = []
    unsubscribe = emitter.subscribe(CartItemChanged, seen.append)

    unsubscribe()
    unsubscribe()
    emitter.emit(CartItemChanged(cart_id="c1", cart_item_id="i1", change=CartItemChange.REMOVED))

    assert seen == []


def test_failing_handler_is_logged_and_others_still_run(caplog):
    emitter = EventEmitter()
    seen = []

    def explode(event):
        raise RuntimeError("boom")

    emitter.subscribe(DomainEvent, explode)
    emitter.subscribe(DomainEvent, seen.append)

    with caplog.at_level("ERROR", logger="cartwise.events"):
        emitter.emit(CartPhaseChanged(cart_id="c1", previous=None, current=CartStatus.PLANNING))

    assert len(seen) == 1
    assert "Event handler failed" in caplog.text


def test_clear_removes_all_handlers():
    emitter = EventEmitter()
    seen = []
    emitter.subscribe(DomainEvent, seen.append)

    emitter.clear()
    emitter.emit(CartPhaseChanged(cart_id="c1"))

    assert seen == []
