def _pay(client, headers, order_id):
    return client.put(f"/api/orders/{order_id}/pay", headers=headers)


def test_platform_stats(client, gateway, buyer, farmer, admin, make_product, place_order):
    p1 = make_product(farmer["id"], stock=10, price=100.0, name="Kale")
    p2 = make_product(farmer["id"], stock=10, price=50.0, name="Beans")

    paid = place_order(buyer["headers"], [(p1, 2)]).get_json()["_id"]
    _pay(client, buyer["headers"], paid)

    cancelled = place_order(buyer["headers"], [(p2, 1)]).get_json()["_id"]
    _pay(client, buyer["headers"], cancelled)
    client.put(f"/api/orders/{cancelled}/cancel", headers=buyer["headers"])

    pending = place_order(buyer["headers"], [(p1, 1)], method="M-Pesa").get_json()["_id"]
    client.post(
        "/api/payments/mpesa-stk-push",
        json={"orderId": pending, "phoneNumber": "254708374149"},
        headers=buyer["headers"],
    )

    resp = client.get("/api/admin/stats", headers=admin["headers"])

    assert resp.status_code == 200
    stats = resp.get_json()
    assert stats["users"] == 3
    assert stats["farmers"] == 1
    assert stats["buyers"] == 1
    assert stats["products"] == 2
    assert stats["orders"] == 3
    assert stats["totalSales"] == 200.0
    assert stats["ordersByStatus"] == {"Processing": 2, "Shipped": 0, "Delivered": 0, "Cancelled": 1}
    assert stats["pendingPayments"] == 1


def test_stats_are_admin_only(client, buyer, farmer):
    resp = client.get("/api/admin/stats", headers=buyer["headers"])
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Admin access only"

    assert client.get("/api/admin/users", headers=farmer["headers"]).status_code == 403
    assert client.get("/api/admin/stats").status_code == 401


def test_farmer_stats(client, buyer, farmer, make_user, make_product, place_order):
    other = make_user("farmer")
    kale = make_product(farmer["id"], stock=10, price=100.0, name="Kale")
    make_product(farmer["id"], stock=3, name="Honey")
    beans = make_product(other["id"], stock=10, price=40.0, name="Beans")

    order_id = place_order(buyer["headers"], [(kale, 2), (beans, 1)]).get_json()["_id"]
    _pay(client, buyer["headers"], order_id)
    place_order(buyer["headers"], [(kale, 1)])

    resp = client.get("/api/farmer/stats", headers=farmer["headers"])

    assert resp.status_code == 200
    stats = resp.get_json()
    assert stats["products"] == 2
    assert [p["name"] for p in stats["lowStock"]] == ["Honey"]
    assert stats["orders"] == 2
    assert stats["revenue"] == 200.0

    denied = client.get("/api/farmer/stats", headers=buyer["headers"])
    assert denied.status_code == 403
    assert denied.get_json()["message"] == "Farmer access only"


# =========================================================
# User management
# =========================================================
def test_list_users_with_filters(client, admin, buyer, make_user):
    make_user("farmer", name="Mama Mboga")
    make_user("buyer", is_active=False)

    farmers = client.get("/api/users?role=farmer", headers=admin["headers"]).get_json()
    assert [u["name"] for u in farmers] == ["Mama Mboga"]

    inactive = client.get("/api/admin/users?status=inactive", headers=admin["headers"]).get_json()
    assert len(inactive) == 1
    assert inactive[0]["isActive"] is False

    found = client.get("/api/users?q=mboga", headers=admin["headers"]).get_json()
    assert len(found) == 1


def test_change_role(client, admin, buyer):
    resp = client.put(f"/api/admin/users/{buyer['id']}", json={"role": "admin"}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.get_json()["role"] == "admin"

    bad = client.put(f"/api/admin/users/{buyer['id']}", json={"role": "superuser"}, headers=admin["headers"])
    assert bad.status_code == 400


def test_promoting_to_farmer_needs_farm_details(client, admin, buyer):
    resp = client.put(f"/api/admin/users/{buyer['id']}", json={"role": "farmer"}, headers=admin["headers"])

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Farm name is required for farmers"

    me = client.get(f"/api/users/{buyer['id']}", headers=admin["headers"]).get_json()
    assert me["role"] == "buyer"


def test_admin_cannot_change_own_role(client, admin):
    resp = client.put(f"/api/admin/users/{admin['id']}", json={"role": "buyer"}, headers=admin["headers"])

    assert resp.status_code == 400


def test_admin_edits_user_profile(client, admin, buyer):
    resp = client.put(
        f"/api/users/{buyer['id']}",
        json={"name": "Renamed", "isActive": False},
        headers=admin["headers"],
    )

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["name"] == "Renamed"
    assert body["isActive"] is False


def test_toggle_active(client, admin, buyer):
    off = client.put(f"/api/users/{buyer['id']}/active", headers=admin["headers"])
    assert off.get_json()["isActive"] is False
    assert client.get("/api/auth/me", headers=buyer["headers"]).status_code == 403

    on = client.put(f"/api/users/{buyer['id']}/active", headers=admin["headers"])
    assert on.get_json()["isActive"] is True
    assert client.get("/api/auth/me", headers=buyer["headers"]).status_code == 200

    assert client.put(f"/api/users/{admin['id']}/active", headers=admin["headers"]).status_code == 400


def test_delete_user_without_history(client, admin, make_user):
    user = make_user("buyer")

    resp = client.delete(f"/api/admin/users/{user['id']}", headers=admin["headers"])

    assert resp.status_code == 200
    assert resp.get_json()["deleted"] is True
    assert client.get(f"/api/users/{user['id']}", headers=admin["headers"]).status_code == 404


def test_delete_user_with_orders_deactivates(client, admin, buyer, farmer, make_product, place_order):
    pid = make_product(farmer["id"])
    place_order(buyer["headers"], [(pid, 1)])

    resp = client.delete(f"/api/users/{buyer['id']}", headers=admin["headers"])

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["deleted"] is False
    assert body["user"]["isActive"] is False

    farmer_resp = client.delete(f"/api/admin/users/{farmer['id']}", headers=admin["headers"])
    assert farmer_resp.get_json()["deleted"] is False


def test_admin_cannot_delete_self(client, admin):
    assert client.delete(f"/api/admin/users/{admin['id']}", headers=admin["headers"]).status_code == 400
