# agricart/orders.py
from __future__ import annotations

from flask import Blueprint, jsonify, make_response, request
from flask_login import current_user, login_required

from .constants.roles import ROLE_ADMIN, ROLE_FARMER
from .errors import Forbidden, InvalidState
from .services import orders as order_service
from .utils.guards import admin_required, role_required
from .utils.receipt_pdf import render_order_receipt_pdf

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _actor():
    return current_user._get_current_object()


# =========================================================
# Checkout
# =========================================================
@orders_bp.route("", methods=["POST"])
@login_required
def create_order():
    data = request.get_json(silent=True) or {}

    items = order_service.parse_order_items(data.get("orderItems"))
    shipping = order_service.parse_shipping_address(data.get("shippingAddress"))
    method = order_service.parse_payment_method(data.get("paymentMethod"))
    prices = {k: data.get(k) for k in ("itemsPrice", "taxPrice", "shippingPrice", "totalPrice")}

    order = order_service.create_order(_actor(), items, shipping, method, prices)
    return jsonify(order.to_dict()), 201


# =========================================================
# Listings
# =========================================================
@orders_bp.route("/myorders", methods=["GET"])
@login_required
def my_orders():
    return jsonify([o.to_dict() for o in order_service.list_my_orders(_actor())]), 200


@orders_bp.route("", methods=["GET"])
@admin_required
def all_orders():
    return jsonify([o.to_dict() for o in order_service.list_all_orders()]), 200


@orders_bp.route("/farmer/myorders", methods=["GET"])
@role_required(ROLE_FARMER)
def farmer_orders():
    return jsonify([o.to_dict() for o in order_service.list_farmer_orders(_actor())]), 200


@orders_bp.route("/<int:order_id>", methods=["GET"])
@login_required
def get_order(order_id: int):
    return jsonify(order_service.get_order(order_id, _actor()).to_dict()), 200


# =========================================================
# Lifecycle
# =========================================================
@orders_bp.route("/<int:order_id>/pay", methods=["PUT"])
@login_required
def pay_order(order_id: int):
    proof = request.get_json(silent=True) or {}
    order = order_service.mark_paid(order_id, _actor(), proof)
    return jsonify(order.to_dict()), 200


@orders_bp.route("/<int:order_id>/ship", methods=["PUT"])
@role_required(ROLE_FARMER, ROLE_ADMIN)
def ship_order(order_id: int):
    order = order_service.mark_shipped(order_id, _actor())
    return jsonify(order.to_dict()), 200


@orders_bp.route("/<int:order_id>/deliver", methods=["PUT"])
@role_required(ROLE_FARMER, ROLE_ADMIN)
def deliver_order(order_id: int):
    order = order_service.mark_delivered(order_id, _actor())
    return jsonify(order.to_dict()), 200


@orders_bp.route("/<int:order_id>/cancel", methods=["PUT"])
@login_required
def cancel_order(order_id: int):
    order = order_service.cancel_order(order_id, _actor())
    return jsonify(order.to_dict()), 200


# =========================================================
# Receipt (PDF)
# =========================================================
@orders_bp.route("/<int:order_id>/receipt.pdf", methods=["GET"])
@login_required
def order_receipt(order_id: int):
    actor = _actor()
    order = order_service.get_order(order_id, actor)
    if not (order.user_id == actor.id or actor.role == ROLE_ADMIN):
        raise Forbidden("Not authorized")
    if not order.is_paid:
        raise InvalidState("Receipt is available once the order is paid")

    pdf = render_order_receipt_pdf(order)
    resp = make_response(pdf)
    resp.headers["Content-Type"] = "application/pdf"
    resp.headers["Content-Disposition"] = f'inline; filename="agricart-receipt-{order.id}.pdf"'
    return resp
