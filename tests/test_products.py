from datetime import date, timedelta

import pytest

NEW_PRODUCT = {
    "name": "Organic Kale",
    "description": "Picked this morning",
    "price": 49.999,
    "unit": "kg",
    "category": "Vegetables",
    "subCategory": "Leafy",
    "images": ["https://img.example.com/kale.jpg"],
    "stock": 25,
    "organic": True,
}


def test_farmer_creates_product_with_farm_location(client, farmer):
    resp = client.post("/api/products", json=NEW_PRODUCT, headers=farmer["headers"])

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["price"] == 50.0
    assert body["location"] == "Nakuru"
    assert body["farmer"]["_id"] == farmer["id"]
    assert body["organic"] is True


def test_buyer_cannot_create_product(client, buyer):
    resp = client.post("/api/products", json=NEW_PRODUCT, headers=buyer["headers"])

    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Farmer access only"


@pytest.mark.parametrize(
    "override",
    [
        {"name": ""},
        {"name": "x" * 101},
        {"price": -1},
        {"stock": -3},
        {"unit": "tonne"},
        {"category": "Tools"},
        {"subCategory": ""},
        {"images": []},
        {"harvestDate": (date.today() + timedelta(days=2)).isoformat()},
    ],
)
def test_product_validation(client, farmer, override):
    resp = client.post("/api/products", json={**NEW_PRODUCT, **override}, headers=farmer["headers"])

    assert resp.status_code == 400


def test_only_owner_or_admin_can_edit(client, make_user, farmer, admin, make_product):
    other = make_user("farmer")
    pid = make_product(farmer["id"], stock=5)

    assert client.put(f"/api/products/{pid}", json={"stock": 1}, headers=other["headers"]).status_code == 403

    resp = client.put(f"/api/products/{pid}", json={"stock": 7}, headers=farmer["headers"])
    assert resp.status_code == 200
    assert resp.get_json()["stock"] == 7

    resp = client.put(f"/api/products/{pid}", json={"price": 10}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.get_json()["price"] == 10.0


def test_delete_product(client, farmer, make_product):
    pid = make_product(farmer["id"])

    assert client.delete(f"/api/products/{pid}", headers=farmer["headers"]).status_code == 200
    assert client.get(f"/api/products/{pid}").status_code == 404


def test_search_filters_sort_and_paginate(client, make_user, make_product):
    f1 = make_user("farmer")
    f2 = make_user("farmer")
    make_product(f1["id"], name="Kale", price=50, stock=10)
    make_product(f1["id"], name="Spinach", price=30, stock=0)
    make_product(f2["id"], name="Maize", price=40, stock=5, category="Grains", organic=True)
    make_product(f2["id"], name="Milk", price=60, stock=5, category="Dairy", sub_category="Fresh")

    body = client.get("/api/products?sort=price_asc").get_json()
    assert [p["name"] for p in body["products"]] == ["Spinach", "Maize", "Kale", "Milk"]
    assert body["total"] == 4

    body = client.get("/api/products?category=Vegetables&inStock=true").get_json()
    assert [p["name"] for p in body["products"]] == ["Kale"]

    body = client.get("/api/products?minPrice=35&maxPrice=55&sort=name").get_json()
    assert [p["name"] for p in body["products"]] == ["Kale", "Maize"]

    body = client.get(f"/api/products?farmer={f2['id']}&organic=true").get_json()
    assert [p["name"] for p in body["products"]] == ["Maize"]

    body = client.get("/api/products?keyword=SPIN").get_json()
    assert [p["name"] for p in body["products"]] == ["Spinach"]

    body = client.get("/api/products?sort=name&perPage=3&page=2").get_json()
    assert [p["name"] for p in body["products"]] == ["Spinach"]
    assert body["pages"] == 2


def test_unknown_sort_is_rejected(client):
    assert client.get("/api/products?sort=random").status_code == 400


def test_list_by_category_and_farmer(client, farmer, make_user, make_product):
    buyer = make_user("buyer")
    make_product(farmer["id"], name="Kale")
    make_product(farmer["id"], name="Rice", category="Grains")

    by_cat = client.get("/api/products/category/Grains").get_json()
    assert [p["name"] for p in by_cat] == ["Rice"]

    by_farmer = client.get(f"/api/products/farmer/{farmer['id']}").get_json()
    assert sorted(p["name"] for p in by_farmer) == ["Kale", "Rice"]

    assert client.get(f"/api/products/farmer/{buyer['id']}").status_code == 404
    assert client.get("/api/products/category/Tools").status_code == 400
