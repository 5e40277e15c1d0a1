import pytest

from agricart.extensions import db
from agricart.models import User
from agricart.utils.tokens import bearer_token, issue_token, verify_token

from conftest import PASSWORD


def test_register_buyer_returns_token(client):
    resp = client.post(
        "/api/auth/register",
        json={"name": "Wanjiku", "email": "Wanjiku@Example.com", "password": "secret123"},
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["email"] == "wanjiku@example.com"
    assert body["role"] == "buyer"
    assert "password_hash" not in body

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()["_id"] == body["_id"]


def test_register_farmer_requires_farm_details(client):
    base = {"name": "Otieno", "email": "otieno@example.com", "password": "secret123", "role": "farmer"}

    assert client.post("/api/auth/register", json=base).status_code == 400

    resp = client.post("/api/auth/register", json={**base, "farmName": "Lakeside", "location": "Kisumu"})
    assert resp.status_code == 201
    assert resp.get_json()["farmName"] == "Lakeside"


@pytest.mark.parametrize(
    "body",
    [
        {"name": "A", "email": "a@example.com", "password": "123"},
        {"name": "A", "email": "not-an-email", "password": "secret123"},
        {"name": "A", "email": "a@example.com", "password": "secret123", "role": "admin"},
        {"email": "a@example.com", "password": "secret123"},
    ],
)
def test_register_validation(client, body):
    assert client.post("/api/auth/register", json=body).status_code == 400


def test_register_duplicate_email(client, buyer):
    resp = client.post(
        "/api/auth/register",
        json={"name": "Dup", "email": buyer["email"].upper(), "password": "secret123"},
    )

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "User already exists"


def test_login(app, client, buyer):
    resp = client.post("/api/auth/login", json={"email": buyer["email"], "password": PASSWORD})

    assert resp.status_code == 200
    assert resp.get_json()["token"]
    with app.app_context():
        assert db.session.get(User, buyer["id"]).last_login_at is not None


def test_login_wrong_password(client, buyer):
    resp = client.post("/api/auth/login", json={"email": buyer["email"], "password": "nope-nope"})

    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Invalid email or password"


def test_deactivated_account_is_locked_out(app, client, make_user):
    user = make_user("buyer", is_active=False)

    login = client.post("/api/auth/login", json={"email": user["email"], "password": PASSWORD})
    assert login.status_code == 403

    me = client.get("/api/auth/me", headers=user["headers"])
    assert me.status_code == 403
    assert me.get_json()["message"] == "Account deactivated, please contact admin"


def test_bad_token_is_rejected(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Not authorized, token failed"


def test_token_round_trip(app, buyer):
    with app.app_context():
        user = db.session.get(User, buyer["id"])
        assert verify_token(issue_token(user)) == buyer["id"]
        assert verify_token("garbage") is None
        assert verify_token(None) is None


def test_token_expiry(app, buyer):
    app.config["TOKEN_MAX_AGE_DAYS"] = -1
    with app.app_context():
        assert verify_token(buyer["token"]) is None


@pytest.mark.parametrize(
    "header, expected",
    [("Bearer abc", "abc"), ("bearer  abc ", "abc"), ("Basic abc", None), ("", None), (None, None)],
)
def test_bearer_token_parsing(header, expected):
    assert bearer_token(header) == expected


def test_profile_update_cannot_change_role(client, buyer):
    resp = client.put(
        "/api/users/profile",
        json={"name": "New Name", "role": "admin", "phone": "0711111111"},
        headers=buyer["headers"],
    )

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["name"] == "New Name"
    assert body["role"] == "buyer"
    assert body["phone"] == "0711111111"


def test_profile_rejects_bad_phone(client, buyer):
    resp = client.put("/api/users/profile", json={"phone": "12ab"}, headers=buyer["headers"])

    assert resp.status_code == 400
