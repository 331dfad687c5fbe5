"""Shared helpers for integration tests."""

from __future__ import annotations

from typing import Any

from cartwise.config import get_settings


def auth_headers() -> dict[str, str]:
    token = get_settings().api_token
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def create_item(client, name: str, store: str, price: float, unit: str = "each", category: str = "Pantry") -> dict[str, Any]:
    response = client.post(
        "/items",
        json={"name": name, "category": category, "store": store, "price": price, "unit": unit},
        headers=auth_headers(),
    )
    assert response.status_code == 201, response.text
    return response.json()


def create_cart(client, name: str, budget: float = 0.0, items: dict[str, float] | None = None) -> dict[str, Any]:
    response = client.post(
        "/carts",
        json={"name": name, "budget": budget, "items": items or {}},
        headers=auth_headers(),
    )
    assert response.status_code == 201, response.text
    return response.json()
