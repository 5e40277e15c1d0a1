# agricart/users.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from .services import accounts
from .utils.guards import admin_required

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


# -------------------------------------------------------------------
# Profile (self)
# -------------------------------------------------------------------
@users_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return jsonify(current_user.to_dict()), 200


@users_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    user = accounts.update_profile(current_user._get_current_object(), data)
    return jsonify(user.to_dict()), 200


# -------------------------------------------------------------------
# Admin: user management
# GET /api/users?q=&role=&status=
# -------------------------------------------------------------------
@users_bp.route("", methods=["GET"])
@admin_required
def list_users():
    users = accounts.list_users(request.args)
    return jsonify([u.to_dict() for u in users]), 200


@users_bp.route("/<int:user_id>", methods=["GET"])
@admin_required
def get_user(user_id: int):
    return jsonify(accounts.get_user_or_404(user_id).to_dict()), 200


@users_bp.route("/<int:user_id>", methods=["PUT"])
@admin_required
def update_user(user_id: int):
    data = request.get_json(silent=True) or {}
    user = accounts.admin_update_user(user_id, data)
    return jsonify(user.to_dict()), 200


@users_bp.route("/<int:user_id>/active", methods=["PUT"])
@admin_required
def toggle_active(user_id: int):
    user = accounts.toggle_active(user_id, current_user._get_current_object())
    return jsonify(user.to_dict()), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id: int):
    user, deleted = accounts.remove_user(user_id, current_user._get_current_object())
    if deleted:
        return jsonify({"success": True, "message": "User removed", "deleted": True}), 200
    return (
        jsonify(
            {
                "success": True,
                "message": "User has orders or products and was deactivated instead",
                "deleted": False,
                "user": user.to_dict(),
            }
        ),
        200,
    )
