# agricart/models.py
from __future__ import annotations

import enum
from datetime import datetime, timezone

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.mutable import MutableList

from .constants.roles import ROLE_ADMIN, ROLE_BUYER, ROLE_FARMER
from .extensions import db


# Naive UTC everywhere: columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat() + "Z"


def _enum_value(v):
    try:
        return v.value
    except AttributeError:
        return v


# =========================================================
# Enumerations
# =========================================================
class OrderStatus(enum.Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    # Kept for data compatibility; no transition sets it.
    CANCELLED = "cancelled"


PAYMENT_MPESA = "M-Pesa"
PAYMENT_CASH_ON_DELIVERY = "Cash on Delivery"
PAYMENT_METHODS = (
    PAYMENT_MPESA,
    "Credit Card",
    "PayPal",
    "Bank Transfer",
    PAYMENT_CASH_ON_DELIVERY,
)

PRODUCT_UNITS = ("kg", "g", "litre", "ml", "piece", "dozen", "packet")
PRODUCT_CATEGORIES = (
    "Fruits",
    "Vegetables",
    "Dairy",
    "Grains",
    "Meat",
    "Poultry",
    "Seafood",
    "Herbs",
    "Spices",
    "Other",
)
# Categories where a sub-category must be supplied
SUBCATEGORY_REQUIRED = {"Fruits", "Vegetables", "Dairy"}


# =========================================================
# Order lifecycle
# =========================================================
# Shipped and Delivered additionally require the order to be paid
# (enforced in services.orders); Delivered and Cancelled are terminal.
ORDER_TRANSITIONS = {
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


# =========================================================
# User model (Authentication + Roles)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    # Identity
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    avatar = db.Column(db.String(500), nullable=True)

    # Auth
    password_hash = db.Column(db.String(255), nullable=False)

    # Roles (admin/farmer/buyer)
    role = db.Column(db.String(20), nullable=False, default=ROLE_BUYER)

    # Farmer-only profile (required when role == farmer)
    farm_name = db.Column(db.String(160), nullable=True)
    location = db.Column(db.String(160), nullable=True)

    # Account lifecycle; also drives Flask-Login's is_authenticated
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    products = db.relationship("Product", back_populates="farmer", lazy="select")
    orders = db.relationship("Order", back_populates="user", foreign_keys="Order.user_id", lazy="select")

    __table_args__ = (
        db.UniqueConstraint("email", name="user_email_key"),
        db.CheckConstraint("role in ('admin','farmer','buyer')", name="ck_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_farmer(self) -> bool:
        return self.role == ROLE_FARMER

    def to_dict(self) -> dict:
        # password_hash is never serialized
        data = {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "avatar": self.avatar,
            "isActive": bool(self.is_active),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if self.role == ROLE_FARMER:
            data["farmName"] = self.farm_name
            data["location"] = self.location
        return data

    def to_public_dict(self) -> dict:
        return {"_id": self.id, "name": self.name, "email": self.email}

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# =========================================================
# Product (owned by one farmer)
# =========================================================
class Product(db.Model):
    __tablename__ = "product"

    id = db.Column(db.Integer, primary_key=True)

    farmer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    farmer = db.relationship("User", back_populates="products", lazy="joined")

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    price = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(20), nullable=False, default="kg")

    category = db.Column(db.String(30), nullable=False, index=True)
    sub_category = db.Column(db.String(60), nullable=True)

    # Image URLs; MutableList so in-place edits are tracked
    images = db.Column(MutableList.as_mutable(db.JSON), nullable=False, default=list)

    stock = db.Column(db.Integer, nullable=False, default=0)
    location = db.Column(db.String(160), nullable=False)
    harvest_date = db.Column(db.Date, nullable=True)
    organic = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
    )

    @property
    def primary_image(self) -> str | None:
        return self.images[0] if self.images else None

    def to_dict(self) -> dict:
        farmer = self.farmer
        return {
            "_id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "unit": self.unit,
            "category": self.category,
            "subCategory": self.sub_category,
            "images": list(self.images or []),
            "stock": self.stock,
            "location": self.location,
            "harvestDate": self.harvest_date.isoformat() if self.harvest_date else None,
            "organic": bool(self.organic),
            "farmer": (
                {"_id": farmer.id, "name": farmer.name, "farmName": farmer.farm_name}
                if farmer
                else self.farmer_id
            ),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name} stock={self.stock}>"


# =========================================================
# Order (buyer owned) + immutable line-item snapshot
# =========================================================
class Order(db.Model):
    __tablename__ = "order"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    user = db.relationship("User", back_populates="orders", foreign_keys=[user_id], lazy="joined")

    # Shipping address
    shipping_address = db.Column(db.String(255), nullable=False)
    shipping_city = db.Column(db.String(120), nullable=False)
    shipping_postal_code = db.Column(db.String(20), nullable=False)
    shipping_country = db.Column(db.String(80), nullable=False)
    shipping_phone = db.Column(db.String(20), nullable=False)

    payment_method = db.Column(db.String(30), nullable=False)

    # Price breakdown
    items_price = db.Column(db.Float, nullable=False, default=0.0)
    tax_price = db.Column(db.Float, nullable=False, default=0.0)
    shipping_price = db.Column(db.Float, nullable=False, default=0.0)
    total_price = db.Column(db.Float, nullable=False, default=0.0)

    # Payment result (gateway receipt / caller proof)
    payment_result_id = db.Column(db.String(120), nullable=True)
    payment_result_status = db.Column(db.String(40), nullable=True)
    payment_result_update_time = db.Column(db.String(40), nullable=True)
    payment_result_email = db.Column(db.String(120), nullable=True)
    payment_result_phone = db.Column(db.String(20), nullable=True)

    # Single lifecycle state; is_paid / is_delivered derive from the timestamps
    status = db.Column(
        SAEnum(
            OrderStatus,
            name="order_status",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=OrderStatus.PROCESSING,
        index=True,
    )
    paid_at = db.Column(db.DateTime, nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_id], lazy="select")

    # Stock has been deducted for this order's items (exactly once)
    inventory_updated = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="select",
    )
    payments = db.relationship("Payment", back_populates="order", lazy="select")

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None

    def farmer_ids(self) -> set[int]:
        return {it.farmer_id for it in self.items if it.farmer_id is not None}

    def has_farmer(self, farmer_id: int) -> bool:
        return farmer_id in self.farmer_ids()

    def to_dict(self) -> dict:
        user = self.user
        return {
            "_id": self.id,
            "user": user.to_public_dict() if user else self.user_id,
            "orderItems": [it.to_dict() for it in self.items],
            "shippingAddress": {
                "address": self.shipping_address,
                "city": self.shipping_city,
                "postalCode": self.shipping_postal_code,
                "country": self.shipping_country,
                "phone": self.shipping_phone,
            },
            "paymentMethod": self.payment_method,
            "itemsPrice": self.items_price,
            "taxPrice": self.tax_price,
            "shippingPrice": self.shipping_price,
            "totalPrice": self.total_price,
            "paymentResult": {
                "id": self.payment_result_id,
                "status": self.payment_result_status,
                "update_time": self.payment_result_update_time,
                "email_address": self.payment_result_email,
                "phone": self.payment_result_phone,
            },
            "isPaid": self.is_paid,
            "paidAt": _iso(self.paid_at),
            "isDelivered": self.is_delivered,
            "deliveredAt": _iso(self.delivered_at),
            "shippedAt": _iso(self.shipped_at),
            "status": _enum_value(self.status),
            "cancelledAt": _iso(self.cancelled_at),
            "cancelledBy": self.cancelled_by_id,
            "inventoryUpdated": bool(self.inventory_updated),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Order {self.id} {_enum_value(self.status)} paid={self.is_paid}>"


class OrderItem(db.Model):
    """
    Snapshot of a product at checkout time. Never re-derived from the live
    product, so history stays readable after edits or deletion.
    """

    __tablename__ = "order_item"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("order.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="items")

    product_id = db.Column(db.Integer, db.ForeignKey("product.id", ondelete="SET NULL"), nullable=True, index=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)

    name = db.Column(db.String(100), nullable=False)
    image = db.Column(db.String(500), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    farm_name = db.Column(db.String(160), nullable=True)
    farmer_phone = db.Column(db.String(20), nullable=True)

    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
        db.CheckConstraint("price >= 0", name="ck_order_item_price"),
    )

    @property
    def line_total(self) -> float:
        return round((self.price or 0.0) * (self.quantity or 0), 2)

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "product": self.product_id,
            "farmer": self.farmer_id,
            "name": self.name,
            "image": self.image,
            "quantity": self.quantity,
            "price": self.price,
            "farmName": self.farm_name,
            "farmerPhone": self.farmer_phone,
        }


# =========================================================
# Payment (one M-Pesa charge attempt)
# =========================================================
class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="payments", lazy="joined")

    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    user = db.relationship("User", foreign_keys=[user_id], lazy="joined")

    payment_method = db.Column(db.String(30), nullable=False, default=PAYMENT_MPESA)
    amount = db.Column(db.Float, nullable=False)

    status = db.Column(
        SAEnum(
            PaymentStatus,
            name="payment_status",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    # Gateway transaction (Daraja STK push)
    checkout_request_id = db.Column(db.String(100), unique=True, nullable=True)
    merchant_request_id = db.Column(db.String(100), nullable=True)
    mpesa_receipt_number = db.Column(db.String(50), nullable=True)
    transaction_date = db.Column(db.String(40), nullable=True)
    phone_number = db.Column(db.String(20), nullable=True)
    mpesa_amount = db.Column(db.Float, nullable=True)
    mpesa_status = db.Column(db.String(20), nullable=True, default=PaymentStatus.PENDING.value)
    result_code = db.Column(db.Integer, nullable=True)
    result_desc = db.Column(db.String(255), nullable=True)

    payment_date = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False)

    def to_dict(self, *, populate: bool = False) -> dict:
        data = {
            "_id": self.id,
            "order": self.order_id,
            "user": self.user_id,
            "paymentMethod": self.payment_method,
            "amount": self.amount,
            "status": _enum_value(self.status),
            "mpesaTransaction": {
                "checkoutRequestID": self.checkout_request_id,
                "merchantRequestID": self.merchant_request_id,
                "mpesaReceiptNumber": self.mpesa_receipt_number,
                "transactionDate": self.transaction_date,
                "phoneNumber": self.phone_number,
                "amount": self.mpesa_amount,
                "status": self.mpesa_status,
                "resultCode": self.result_code,
                "resultDesc": self.result_desc,
            },
            "paymentDate": _iso(self.payment_date),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if populate:
            data["order"] = self.order.to_dict() if self.order else self.order_id
            data["user"] = self.user.to_public_dict() if self.user else self.user_id
        return data

    def __repr__(self) -> str:
        return f"<Payment {self.id} {_enum_value(self.status)} order={self.order_id}>"
