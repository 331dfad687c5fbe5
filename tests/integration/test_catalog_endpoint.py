"""Integration tests for items, categories, and stores."""

from __future__ import annotations

from fastapi import status

from tests.integration.utils import auth_headers, create_cart, create_item


def test_item_crud(client):
    headers = auth_headers()
    assert client.get("/items").json() == []

    milk = create_item(client, "Milk", "StoreA", 2.5, "L", "Dairy & Eggs")
    assert milk["price_options"] == [{"store": "StoreA", "price_per_unit": {"value": 2.5, "unit": "L"}}]

    response = client.patch(f"/items/{milk['id']}", json={"name": "Whole Milk", "price": 2.75}, headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["name"] == "Whole Milk"

    assert client.patch(f"/items/{milk['id']}", json={}, headers=headers).status_code == status.HTTP_400_BAD_REQUEST
    assert [item["name"] for item in client.get("/items", params={"q": "milk"}).json()] == ["Whole Milk"]


def test_duplicate_item_rejected(client):
    create_item(client, "Milk", "StoreA", 2.5, "L")

    response = client.post(
        "/items",
        json={"name": " milk ", "category": "Beverages", "store": "storea", "price": 3.0, "unit": "L"},
        headers=auth_headers(),
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert (body["code"], body["field"]) == ("duplicate_item", "name")
    assert "already exists" in body["message"]


def test_delete_and_restore_item(client):
    headers = auth_headers()
    milk = create_item(client, "Milk", "StoreA", 2.5, "L")
    cart = create_cart(client, "Trip", 0, {milk["id"]: 2})

    response = client.delete(f"/items/{milk['id']}", headers=headers)
    assert response.json() == {"affected_cart_ids": [cart["id"]]}
    assert client.get(f"/carts/{cart['id']}").json()["cart_items"] == []
    assert client.get("/items").json() == []
    deleted = client.get("/items", params={"include_deleted": True}).json()
    assert deleted[0]["is_deleted"] is True

    response = client.post(f"/items/{milk['id']}/restore", params={"restore_to_carts": True}, headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_deleted"] is False
    lines = client.get(f"/carts/{cart['id']}").json()["cart_items"]
    assert [line["quantity"] for line in lines] == [2.0]


def test_categories(client):
    headers = auth_headers()
    names = [category["name"] for category in client.get("/categories").json()]
    assert names[0] == "Fresh Produce"
    assert "Pantry" in names

    response = client.post("/categories", json={"name": "Snacks", "emoji": "🍿"}, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED
    assert client.get("/categories").json()[-1]["name"] == "Snacks"

    response = client.post("/categories", json={"name": "snacks"}, headers=headers)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["code"] == "duplicate_category"


def test_stores(client):
    headers = auth_headers()
    milk = create_item(client, "Milk", "StoreA", 2.5, "L")

    response = client.post("/stores", json={"name": "Corner Shop"}, headers=headers)
    assert response.json() == {"name": "Corner Shop", "created": True}
    assert client.post("/stores", json={"name": "corner shop"}, headers=headers).json()["created"] is False
    assert client.get("/stores").json() == ["Corner Shop", "StoreA"]

    response = client.put("/stores/StoreA", json={"name": "Market"}, headers=headers)
    assert response.json() == {"name": "Market", "price_options_updated": 1}
    assert client.get(f"/items/{milk['id']}").json()["price_options"][0]["store"] == "Market"

    assert client.delete("/stores/Market", headers=headers).status_code == status.HTTP_204_NO_CONTENT
    assert client.delete("/stores/Market", headers=headers).status_code == status.HTTP_404_NOT_FOUND


def test_item_without_category_lands_in_default(client):
    response = client.post(
        "/items",
        json={"name": "Rice", "store": "StoreA", "price": 1.8, "unit": "kg"},
        headers=auth_headers(),
    )

    assert response.status_code == status.HTTP_201_CREATED
    pantry = next(category for category in client.get("/categories").json() if category["name"] == "Pantry")
    assert response.json()["category_id"] == pantry["id"]
