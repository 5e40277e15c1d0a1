# agricart/auth.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from .errors import Forbidden, Unauthenticated
from .extensions import db, limiter, login_manager
from .models import User
from .services import accounts
from .utils.tokens import bearer_token, issue_token, verify_token

auth = Blueprint("auth", __name__, url_prefix="/api/auth")


# =========================================================
# Flask-Login: bearer token -> User
# =========================================================
@login_manager.request_loader
def load_user_from_request(req):
    user_id = verify_token(bearer_token(req.headers.get("Authorization")))
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None:
        return None
    if not user.is_active:
        raise Forbidden("Account deactivated, please contact admin")
    return user


@login_manager.unauthorized_handler
def unauthorized():
    if bearer_token(request.headers.get("Authorization")):
        raise Unauthenticated("Not authorized, token failed")
    raise Unauthenticated()


def _session_body(user: User) -> dict:
    body = user.to_dict()
    body["token"] = issue_token(user)
    return body


# =========================================================
# Register / Login / Me
# =========================================================
@auth.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    user = accounts.register(data)
    return jsonify(_session_body(user)), 201


@auth.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    data = request.get_json(silent=True) or {}
    user = accounts.authenticate(data.get("email"), data.get("password"))
    return jsonify(_session_body(user)), 200


@auth.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_user.to_dict()), 200
