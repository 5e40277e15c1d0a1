# agricart/payments.py
from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from .errors import MarketplaceError
from .services import payments as payment_service

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("/mpesa-stk-push", methods=["POST"])
@login_required
def stk_push():
    data = request.get_json(silent=True) or {}
    result = payment_service.initiate(
        data.get("orderId"),
        data.get("phoneNumber"),
        current_user._get_current_object(),
        current_app.extensions["mpesa"],
    )
    return jsonify(result), 200


def _callback_token_ok() -> bool:
    secret = current_app.extensions["mpesa"].config.callback_secret
    if not secret:
        return True
    supplied = request.args.get("token") or ""
    return hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8"))


# -------------------------------------------------------------------
# Gateway webhook (public)
# Always answers 200 with {ResultCode, ResultDesc}; the gateway retries
# on anything else.
# -------------------------------------------------------------------
@payments_bp.route("/mpesa-callback", methods=["POST"])
def mpesa_callback():
    if not _callback_token_ok():
        current_app.logger.warning("M-Pesa callback rejected: bad token from %s", request.remote_addr)
        return jsonify(payment_service.ack(1, "Unauthorized callback")), 200

    payload = request.get_json(silent=True)
    try:
        body = payment_service.handle_callback(payload)
    except MarketplaceError as exc:
        current_app.logger.warning("M-Pesa callback rejected: %s", exc.message)
        body = payment_service.ack(1, exc.message)
    except Exception:
        current_app.logger.exception("M-Pesa callback processing failed")
        body = dict(payment_service.ACK_ERROR)
    return jsonify(body), 200


@payments_bp.route("/status/<int:payment_id>", methods=["GET"])
@login_required
def payment_status(payment_id: int):
    payment = payment_service.check_status(payment_id, current_user._get_current_object())
    return jsonify({"success": True, "payment": payment.to_dict(populate=True)}), 200
