import itertools

import pytest

from agricart import create_app
from agricart.constants.roles import ROLE_ADMIN, ROLE_BUYER, ROLE_FARMER
from agricart.errors import UpstreamFailure
from agricart.extensions import db, socketio
from agricart.models import Product, User
from agricart.services.mpesa import MpesaConfig
from agricart.settings import TestConfig
from agricart.utils.passwords import hash_password
from agricart.utils.tokens import issue_token

PASSWORD = "secret123"


class FakeGateway:
    """Stands in for MpesaClient; records STK pushes instead of calling Daraja."""

    def __init__(self, config: MpesaConfig):
        self.config = config
        self.calls = []
        self.error = None
        self._ids = itertools.count(1)

    def stk_push(self, *, amount, phone_number):
        if self.error:
            raise UpstreamFailure(self.error)
        n = next(self._ids)
        self.calls.append({"amount": amount, "phone_number": phone_number})
        return {
            "MerchantRequestID": f"29115-34620561-{n}",
            "CheckoutRequestID": f"ws_CO_191220191020363925{n}",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        }


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    fake = FakeGateway(MpesaConfig.from_mapping(app.config))
    app.extensions["mpesa"] = fake
    return fake


@pytest.fixture
def sent(monkeypatch):
    """Every socket emit as (event, payload, room)."""
    events = []

    def fake_emit(event, payload=None, to=None, **kwargs):
        events.append((event, payload, to))

    monkeypatch.setattr(socketio, "emit", fake_emit)
    return events


# =========================================================
# Factories (return plain ids/headers; objects expire between contexts)
# =========================================================
@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(role=ROLE_BUYER, **overrides):
        n = next(counter)
        fields = {
            "name": f"{role.title()} {n}",
            "email": f"{role}{n}@example.com",
            "phone": f"07000000{n:02d}",
            "role": role,
            "is_active": True,
            "password_hash": hash_password(PASSWORD),
        }
        if role == ROLE_FARMER:
            fields.update(farm_name=f"Green Acres {n}", location="Nakuru")
        fields.update(overrides)
        with app.app_context():
            user = User(**fields)
            db.session.add(user)
            db.session.commit()
            token = issue_token(user)
            return {
                "id": user.id,
                "email": user.email,
                "token": token,
                "headers": {"Authorization": f"Bearer {token}"},
            }

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user(ROLE_BUYER)


@pytest.fixture
def farmer(make_user):
    return make_user(ROLE_FARMER)


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture
def make_product(app):
    def _make(farmer_id, stock=10, price=100.0, name="Sukuma Wiki", **overrides):
        fields = {
            "farmer_id": farmer_id,
            "name": name,
            "description": "Fresh greens",
            "price": price,
            "unit": "kg",
            "category": "Vegetables",
            "sub_category": "Leafy",
            "images": [f"https://img.example.com/{name.lower().replace(' ', '-')}.jpg"],
            "stock": stock,
            "location": "Nakuru",
        }
        fields.update(overrides)
        with app.app_context():
            product = Product(**fields)
            db.session.add(product)
            db.session.commit()
            return product.id

    return _make


# =========================================================
# Helpers
# =========================================================
SHIPPING = {
    "address": "12 Kenyatta Ave",
    "city": "Nairobi",
    "postalCode": "00100",
    "country": "Kenya",
    "phone": "0712345678",
}


@pytest.fixture
def place_order(client):
    def _place(headers, items, method="Cash on Delivery", **extra):
        body = {
            "orderItems": [{"product": pid, "quantity": qty} for pid, qty in items],
            "shippingAddress": dict(SHIPPING),
            "paymentMethod": method,
        }
        body.update(extra)
        return client.post("/api/orders", json=body, headers=headers)

    return _place


@pytest.fixture
def stock_of(app):
    def _stock(product_id):
        with app.app_context():
            return db.session.get(Product, product_id).stock

    return _stock


def callback_payload(checkout_id, result_code=0, receipt="ABC123", amount=200, phone=254708374149):
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully."
        if result_code == 0
        else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "Balance"},
                {"Name": "TransactionDate", "Value": 20191219102115},
                {"Name": "PhoneNumber", "Value": phone},
            ]
        }
    return {"Body": {"stkCallback": callback}}


@pytest.fixture
def callback():
    return callback_payload
