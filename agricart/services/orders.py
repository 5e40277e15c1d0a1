# agricart/services/orders.py
"""
Order workflow: checkout, payment, shipping, delivery, cancellation.

Stock rules
-----------
- create_order only *checks* stock; nothing is reserved at checkout.
- Stock is deducted exactly once, the first time an order becomes paid
  (mark_paid here, or the M-Pesa callback in services.payments). The
  ``inventory_updated`` flag records that it happened.
- Deductions are conditional updates (``stock >= qty``) so two orders racing
  for the same product cannot drive stock negative.
- cancel_order gives back exactly what was deducted.

Every mutating function commits once at the end and rolls back on any error.
"""

from __future__ import annotations

from typing import Any, Iterable

import sqlalchemy as sa
from flask import current_app

from ..constants.roles import ROLE_ADMIN
from ..errors import Forbidden, InvalidState, NotFound, OutOfStock, ValidationError
from ..extensions import db
from ..models import (
    PAYMENT_CASH_ON_DELIVERY,
    PAYMENT_METHODS,
    PAYMENT_MPESA,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    User,
    can_transition,
    utcnow_naive,
)
from ..utils.parsers import clean_str, is_valid_phone, parse_float, parse_int
from . import notifications
from .notifications import Notification

SHIPPING_FIELDS = ("address", "city", "postalCode", "country", "phone")


# =========================================================
# Helpers
# =========================================================
def _is_admin(actor: User) -> bool:
    return getattr(actor, "role", None) == ROLE_ADMIN


def _is_buyer_of(order: Order, actor: User) -> bool:
    return order.user_id == actor.id


def _get_order_or_404(order_id, *, for_update: bool = False) -> Order:
    stmt = sa.select(Order).where(Order.id == order_id)
    if for_update:
        stmt = stmt.with_for_update(of=Order)
    order = db.session.execute(stmt).unique().scalar_one_or_none()
    if not order:
        raise NotFound("Order not found")
    return order


def _lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    ids = sorted({pid for pid in product_ids if pid is not None})
    if not ids:
        return {}
    stmt = (
        sa.select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update(of=Product)
    )
    return {p.id: p for p in db.session.execute(stmt).unique().scalars()}


def _shortage(product_id, name, requested, available) -> dict[str, Any]:
    return {"product": product_id, "name": name, "requested": requested, "available": available}


def _check_stock(items: Iterable[OrderItem], products: dict[int, Product]) -> None:
    shortages = []
    for item in items:
        product = products.get(item.product_id)
        available = product.stock if product else 0
        if item.quantity > available:
            shortages.append(_shortage(item.product_id, item.name, item.quantity, available))
    if shortages:
        raise OutOfStock(shortages)


def decrement_stock(product_id: int, quantity: int) -> bool:
    """Conditional decrement. False when the product is gone or has too little stock."""
    result = db.session.execute(
        sa.update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
    )
    return result.rowcount == 1


def restore_stock(product_id: int, quantity: int) -> bool:
    result = db.session.execute(
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
    )
    return result.rowcount == 1


def deduct_inventory(order: Order) -> None:
    """Deduct every line item or raise OutOfStock; caller owns the transaction."""
    shortages = []
    for item in order.items:
        if item.product_id is None or not decrement_stock(item.product_id, item.quantity):
            product = db.session.get(Product, item.product_id) if item.product_id else None
            shortages.append(
                _shortage(item.product_id, item.name, item.quantity, product.stock if product else 0)
            )
    if shortages:
        raise OutOfStock(shortages)
    order.inventory_updated = True


def _farmer_notifications(order: Order, event: str, extra: dict[str, Any] | None = None) -> list[Notification]:
    out = []
    for farmer_id in sorted(order.farmer_ids()):
        payload = {
            "orderId": order.id,
            "status": order.status.value,
            "items": [it.to_dict() for it in order.items if it.farmer_id == farmer_id],
        }
        payload.update(extra or {})
        out.append(Notification(farmer_id, event, payload))
    return out


def _buyer_notification(order: Order, event: str, message: str) -> Notification:
    return Notification(
        order.user_id,
        event,
        {"orderId": order.id, "status": order.status.value, "isPaid": order.is_paid, "message": message},
    )


# =========================================================
# Input validation (request body -> clean values)
# =========================================================
def parse_order_items(raw_items) -> list[tuple[int, int]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("No order items")

    merged: dict[int, int] = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each order item must be an object")
        product_id = parse_int(raw.get("product"))
        quantity = parse_int(raw.get("quantity"))
        if product_id is None:
            raise ValidationError("Each order item needs a product id")
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def parse_shipping_address(raw) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ValidationError("Shipping address is required")
    address = {k: clean_str(raw.get(k)) for k in SHIPPING_FIELDS}
    missing = [k for k, v in address.items() if not v]
    if missing:
        raise ValidationError(f"Shipping address is missing: {', '.join(missing)}")
    if not is_valid_phone(address["phone"]):
        raise ValidationError(f"{address['phone']} is not a valid phone number!")
    return address


def parse_payment_method(raw) -> str:
    method = clean_str(raw)
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"{method or 'Empty value'} is not a valid payment method")
    return method


# =========================================================
# Create
# =========================================================
def create_order(
    buyer: User,
    items: list[tuple[int, int]],
    shipping_address: dict[str, str],
    payment_method: str,
    prices: dict[str, Any] | None = None,
) -> Order:
    if not items:
        raise ValidationError("No order items")

    product_ids = [pid for pid, _ in items]
    products = {
        p.id: p
        for p in db.session.execute(sa.select(Product).where(Product.id.in_(product_ids))).unique().scalars()
    }

    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise NotFound(
            f"Product not found: {', '.join(str(m) for m in missing)}",
            payload={"missing": missing},
        )

    shortages = [
        _shortage(pid, products[pid].name, qty, products[pid].stock)
        for pid, qty in items
        if qty > products[pid].stock
    ]
    if shortages:
        raise OutOfStock(shortages)

    order = Order(
        user_id=buyer.id,
        shipping_address=shipping_address["address"],
        shipping_city=shipping_address["city"],
        shipping_postal_code=shipping_address["postalCode"],
        shipping_country=shipping_address["country"],
        shipping_phone=shipping_address["phone"],
        payment_method=payment_method,
        status=OrderStatus.PROCESSING,
        inventory_updated=False,
    )

    # Snapshot from live product + farmer data
    for pid, qty in items:
        product = products[pid]
        farmer = product.farmer
        order.items.append(
            OrderItem(
                product_id=product.id,
                farmer_id=product.farmer_id,
                name=product.name,
                image=product.primary_image,
                quantity=qty,
                price=product.price,
                farm_name=getattr(farmer, "farm_name", None),
                farmer_phone=getattr(farmer, "phone", None),
            )
        )

    prices = prices or {}
    computed_items = round(sum(it.line_total for it in order.items), 2)
    items_price = parse_float(prices.get("itemsPrice"))
    tax_price = parse_float(prices.get("taxPrice")) or 0.0
    shipping_price = parse_float(prices.get("shippingPrice")) or 0.0
    order.items_price = items_price if items_price is not None else computed_items
    order.tax_price = tax_price
    order.shipping_price = shipping_price
    total_price = parse_float(prices.get("totalPrice"))
    order.total_price = (
        total_price if total_price is not None else round(order.items_price + tax_price + shipping_price, 2)
    )
    if min(order.items_price, order.tax_price, order.shipping_price, order.total_price) < 0:
        raise ValidationError("Prices cannot be negative")

    db.session.add(order)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s created by user %s (%s items)", order.id, buyer.id, len(order.items))
    notifications.dispatch(
        _farmer_notifications(order, notifications.NEW_ORDER, {"buyer": buyer.name})
    )
    return order


# =========================================================
# Pay
# =========================================================
def _apply_payment_proof(order: Order, buyer: User | None, proof: dict[str, Any]) -> None:
    method = order.payment_method

    if method == PAYMENT_MPESA:
        payment = (
            Payment.query.filter_by(order_id=order.id, status=PaymentStatus.SUCCESSFUL)
            .order_by(Payment.id.desc())
            .first()
        )
        if not payment:
            raise InvalidState("No successful M-Pesa payment found for this order")
        order.payment_result_id = payment.mpesa_receipt_number
        order.payment_result_status = "completed"
        order.payment_result_update_time = payment.transaction_date
        order.payment_result_phone = payment.phone_number
        return

    if method == PAYMENT_CASH_ON_DELIVERY:
        order.payment_result_id = None
        order.payment_result_status = "cash_on_delivery"
        order.payment_result_update_time = utcnow_naive().isoformat() + "Z"
        order.payment_result_phone = getattr(buyer, "phone", None) or order.shipping_phone
        return

    txn_id = clean_str(proof.get("id"))
    txn_status = clean_str(proof.get("status"))
    if not txn_id or not txn_status:
        raise ValidationError("Payment transaction id and status are required")
    payer = proof.get("payer") if isinstance(proof.get("payer"), dict) else {}
    order.payment_result_id = txn_id
    order.payment_result_status = txn_status
    order.payment_result_update_time = clean_str(proof.get("update_time")) or None
    order.payment_result_email = clean_str(payer.get("email_address")) or None
    order.payment_result_phone = clean_str(proof.get("phone")) or None


def mark_paid(order_id, actor: User, proof: dict[str, Any] | None = None) -> Order:
    proof = proof or {}
    events: list[Notification] = []
    try:
        order = _get_order_or_404(order_id, for_update=True)

        if not (_is_buyer_of(order, actor) or _is_admin(actor)):
            raise Forbidden("Not authorized")
        if order.is_paid:
            raise InvalidState("Order is already paid")
        if order.status == OrderStatus.CANCELLED:
            raise InvalidState("Order has been cancelled")

        if not order.inventory_updated:
            products = _lock_products(it.product_id for it in order.items)
            _check_stock(order.items, products)

        _apply_payment_proof(order, order.user, proof)

        if not order.inventory_updated:
            deduct_inventory(order)
            events.extend(_farmer_notifications(order, notifications.ORDER_PAID))

        order.paid_at = utcnow_naive()
        order.status = OrderStatus.PROCESSING
        order.inventory_updated = True

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s marked paid via %s by user %s", order.id, order.payment_method, actor.id)
    events.append(_buyer_notification(order, notifications.ORDER_PAID, "Your payment was received."))
    notifications.dispatch(events)
    return order


# =========================================================
# Ship / Deliver
# =========================================================
def _assert_can_fulfil(order: Order, actor: User) -> None:
    if _is_admin(actor):
        return
    if actor.is_farmer and order.has_farmer(actor.id):
        return
    raise Forbidden("Not authorized - no farmer products in this order")


def _advance(order: Order, target: OrderStatus) -> None:
    if not can_transition(order.status, target):
        raise InvalidState(f"Order is {order.status.value} and cannot be marked {target.value}")
    if not order.is_paid:
        if order.payment_method == PAYMENT_CASH_ON_DELIVERY:
            raise InvalidState(
                f"Cash on Delivery orders must be marked paid (PUT /api/orders/{order.id}/pay) "
                f"before they are marked {target.value}"
            )
        raise InvalidState(f"Order must be paid before it is marked {target.value}")


def mark_shipped(order_id, actor: User) -> Order:
    order = _get_order_or_404(order_id)
    _assert_can_fulfil(order, actor)
    _advance(order, OrderStatus.SHIPPED)

    order.shipped_at = utcnow_naive()
    order.status = OrderStatus.SHIPPED
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s shipped by user %s", order.id, actor.id)
    notifications.dispatch([_buyer_notification(order, notifications.ORDER_SHIPPED, "Your order is on the way.")])
    return order


def mark_delivered(order_id, actor: User) -> Order:
    order = _get_order_or_404(order_id)
    _assert_can_fulfil(order, actor)
    _advance(order, OrderStatus.DELIVERED)

    order.delivered_at = utcnow_naive()
    order.status = OrderStatus.DELIVERED
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s delivered by user %s", order.id, actor.id)
    notifications.dispatch([_buyer_notification(order, notifications.ORDER_DELIVERED, "Your order was delivered.")])
    return order


# =========================================================
# Cancel
# =========================================================
def cancel_order(order_id, actor: User) -> Order:
    events: list[Notification] = []
    try:
        order = _get_order_or_404(order_id, for_update=True)

        if not (_is_buyer_of(order, actor) or _is_admin(actor)):
            raise Forbidden("Not authorized to cancel this order")
        if not can_transition(order.status, OrderStatus.CANCELLED):
            raise InvalidState(f"Cannot cancel an order that is {order.status.value}")

        if order.inventory_updated:
            for item in order.items:
                # Deleted products are skipped
                if item.product_id is None or not restore_stock(item.product_id, item.quantity):
                    current_app.logger.warning(
                        "Order %s: product %s missing, %s units not restocked",
                        order.id,
                        item.product_id,
                        item.quantity,
                    )

        order.status = OrderStatus.CANCELLED
        order.cancelled_at = utcnow_naive()
        order.cancelled_by_id = actor.id

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s cancelled by user %s", order.id, actor.id)
    events.append(_buyer_notification(order, notifications.ORDER_CANCELLED, "Your order was cancelled."))
    events.extend(_farmer_notifications(order, notifications.FARMER_ORDER_CANCELLED))
    notifications.dispatch(events)
    return order


# =========================================================
# Queries
# =========================================================
def get_order(order_id, actor: User) -> Order:
    order = _get_order_or_404(order_id)
    if _is_buyer_of(order, actor) or _is_admin(actor):
        return order
    if actor.is_farmer and order.has_farmer(actor.id):
        return order
    raise Forbidden("Not authorized")


def list_my_orders(buyer: User) -> list[Order]:
    return Order.query.filter_by(user_id=buyer.id).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_all_orders() -> list[Order]:
    return Order.query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_farmer_orders(farmer: User) -> list[Order]:
    order_ids = sa.select(OrderItem.order_id).where(OrderItem.farmer_id == farmer.id)
    return (
        Order.query.filter(Order.id.in_(order_ids))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
