# agricart/services/payments.py
"""
M-Pesa payment reconciliation.

initiate()        -> STK push + pending Payment row
handle_callback() -> gateway webhook; settles the Payment exactly once and,
                     on success, marks the linked order paid and deducts stock
check_status()    -> owner view of a Payment
"""

from __future__ import annotations

import re
from typing import Any

import sqlalchemy as sa
from flask import current_app

from ..errors import Forbidden, InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models import PAYMENT_MPESA, Order, OrderStatus, Payment, PaymentStatus, Product, User, utcnow_naive
from ..utils.parsers import clean_str, parse_float, parse_int
from . import notifications
from .mpesa import MpesaClient
from .notifications import Notification

# Safaricom subscriber numbers: 2547XXXXXXXX
MPESA_PHONE_RE = re.compile(r"^2547\d{8}$")

ACK_OK = {"ResultCode": 0, "ResultDesc": "Callback processed successfully"}
ACK_ERROR = {"ResultCode": 1, "ResultDesc": "Error processing callback"}


def ack(result_code: int, desc: str) -> dict[str, Any]:
    return {"ResultCode": result_code, "ResultDesc": desc}


# =========================================================
# Initiate (STK push)
# =========================================================
def initiate(order_id, phone_number, actor: User, gateway: MpesaClient) -> dict[str, Any]:
    order_id = parse_int(order_id)
    phone_number = clean_str(phone_number)

    if not order_id or not phone_number:
        raise ValidationError("Order ID and phone number are required")
    if not MPESA_PHONE_RE.match(phone_number):
        raise ValidationError("Invalid phone number format. Use format 2547XXXXXXXX")

    try:
        order = db.session.execute(
            sa.select(Order).where(Order.id == order_id).with_for_update(of=Order)
        ).unique().scalar_one_or_none()
        if not order:
            raise NotFound("Order not found")
        if order.user_id != actor.id:
            raise Forbidden("Not authorized to pay for this order")
        if order.is_paid:
            raise InvalidState("Order is already paid")
        if order.status == OrderStatus.CANCELLED:
            raise InvalidState("Order has been cancelled")
        if order.payment_method != PAYMENT_MPESA:
            raise InvalidState("Order payment method is not M-Pesa")

        response = gateway.stk_push(amount=order.total_price, phone_number=phone_number)

        payment = Payment(
            order_id=order.id,
            user_id=actor.id,
            payment_method=PAYMENT_MPESA,
            amount=order.total_price,
            status=PaymentStatus.PENDING,
            checkout_request_id=response.get("CheckoutRequestID"),
            merchant_request_id=response.get("MerchantRequestID"),
            phone_number=phone_number,
            mpesa_amount=order.total_price,
            mpesa_status=PaymentStatus.PENDING.value,
        )
        db.session.add(payment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "M-Pesa STK push for order %s (payment %s, checkout %s)",
        order.id,
        payment.id,
        payment.checkout_request_id,
    )
    return {
        "success": True,
        "message": "M-Pesa payment initiated successfully",
        "checkoutRequestID": payment.checkout_request_id,
        "paymentId": payment.id,
    }


# =========================================================
# Callback (gateway webhook)
# =========================================================
def _extract_callback(payload: Any) -> dict[str, Any]:
    body = payload.get("Body") if isinstance(payload, dict) else None
    callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(callback, dict) or not callback.get("CheckoutRequestID"):
        raise ValidationError("Invalid callback data")
    if parse_int(callback.get("ResultCode")) is None:
        raise ValidationError("Invalid callback data")
    return callback


def flatten_metadata(callback: dict[str, Any]) -> dict[str, Any]:
    meta = callback.get("CallbackMetadata") or {}
    items = meta.get("Item") if isinstance(meta, dict) else None
    if not isinstance(items, list):
        raise ValidationError("Callback metadata missing")
    return {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}


def _deduct_paid_inventory(order: Order) -> None:
    """
    The customer has already been charged, so an item short on stock is
    clamped to zero and logged for follow-up rather than failing the callback.
    """
    for item in order.items:
        if item.product_id is None:
            continue
        result = db.session.execute(
            sa.update(Product)
            .where(Product.id == item.product_id)
            .values(
                stock=sa.case(
                    (Product.stock >= item.quantity, Product.stock - item.quantity),
                    else_=0,
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            current_app.logger.warning("Order %s: product %s missing, stock not deducted", order.id, item.product_id)
            continue
        product = db.session.get(Product, item.product_id)
        if product is not None and product.stock == 0:
            current_app.logger.warning(
                "Order %s: product %s may be oversold (requested %s)", order.id, item.product_id, item.quantity
            )
    order.inventory_updated = True


def handle_callback(payload: Any) -> dict[str, Any]:
    """
    Reconcile one STK callback. Returns the acknowledgement body.
    Raises ValidationError / NotFound for payloads that cannot be matched.
    """
    callback = _extract_callback(payload)
    checkout_id = clean_str(callback.get("CheckoutRequestID"))
    result_code = parse_int(callback.get("ResultCode"))
    result_desc = clean_str(callback.get("ResultDesc")) or None

    events: list[Notification] = []
    try:
        payment = db.session.execute(
            sa.select(Payment).where(Payment.checkout_request_id == checkout_id).with_for_update(of=Payment)
        ).unique().scalar_one_or_none()
        if not payment:
            raise NotFound("Payment record not found")

        if payment.status != PaymentStatus.PENDING:
            # Gateway retry of an already settled payment
            db.session.rollback()
            current_app.logger.info("Callback for settled payment %s ignored", payment.id)
            return ack(0, "Callback already processed")

        payment.result_code = result_code
        payment.result_desc = result_desc

        if result_code == 0:
            metadata = flatten_metadata(callback)
            receipt = clean_str(metadata.get("MpesaReceiptNumber")) or None
            txn_date = clean_str(metadata.get("TransactionDate")) or None
            phone = clean_str(metadata.get("PhoneNumber")) or payment.phone_number

            payment.mpesa_receipt_number = receipt
            payment.transaction_date = txn_date
            payment.mpesa_amount = parse_float(metadata.get("Amount"))
            payment.phone_number = phone
            payment.mpesa_status = PaymentStatus.SUCCESSFUL.value
            payment.status = PaymentStatus.SUCCESSFUL

            order = db.session.execute(
                sa.select(Order)
                .where(Order.id == payment.order_id)
                .with_for_update(of=Order)
                .execution_options(populate_existing=True)
            ).unique().scalar_one_or_none()
            if order and not order.is_paid:
                order.paid_at = utcnow_naive()
                if order.status != OrderStatus.CANCELLED:
                    order.status = OrderStatus.PROCESSING
                order.payment_result_id = receipt
                order.payment_result_status = "completed"
                order.payment_result_update_time = txn_date
                order.payment_result_phone = phone

                if not order.inventory_updated and order.status != OrderStatus.CANCELLED:
                    _deduct_paid_inventory(order)

                events.append(
                    Notification(
                        order.user_id,
                        notifications.ORDER_PAID,
                        {"orderId": order.id, "status": order.status.value, "isPaid": True, "receipt": receipt},
                    )
                )
                for farmer_id in sorted(order.farmer_ids()):
                    events.append(
                        Notification(
                            farmer_id,
                            notifications.ORDER_PAID,
                            {
                                "orderId": order.id,
                                "status": order.status.value,
                                "items": [it.to_dict() for it in order.items if it.farmer_id == farmer_id],
                            },
                        )
                    )
            elif not order:
                current_app.logger.warning("Payment %s settled but order %s is missing", payment.id, payment.order_id)
        else:
            payment.mpesa_status = PaymentStatus.FAILED.value
            payment.status = PaymentStatus.FAILED

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "M-Pesa callback for payment %s: result %s (%s)", payment.id, result_code, result_desc
    )
    notifications.dispatch(events)
    return dict(ACK_OK)


# =========================================================
# Status
# =========================================================
def check_status(payment_id, actor: User) -> Payment:
    payment = db.session.get(Payment, parse_int(payment_id)) if parse_int(payment_id) else None
    if not payment:
        raise NotFound("Payment record not found")
    if payment.user_id != actor.id:
        raise Forbidden("Not authorized to view this payment")
    return payment
