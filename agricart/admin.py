# agricart/admin.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from .constants.roles import ROLE_FARMER
from .services import accounts, reporting
from .utils.guards import admin_required, role_required

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")
farmer_bp = Blueprint("farmer", __name__, url_prefix="/api/farmer")


# -------------------------------------------------------------------
# Dashboard stats
# -------------------------------------------------------------------
@admin_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    return jsonify(reporting.platform_stats()), 200


# -------------------------------------------------------------------
# Users
# GET    /api/admin/users
# PUT    /api/admin/users/<id>   {"role": "..."}
# DELETE /api/admin/users/<id>
# -------------------------------------------------------------------
@admin_bp.route("/users", methods=["GET"])
@admin_required
def users_list():
    return jsonify([u.to_dict() for u in accounts.list_users(request.args)]), 200


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@admin_required
def users_set_role(user_id: int):
    data = request.get_json(silent=True) or {}
    user = accounts.change_role(user_id, data.get("role"), current_user._get_current_object())
    return jsonify(user.to_dict()), 200


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@admin_required
def users_delete(user_id: int):
    user, deleted = accounts.remove_user(user_id, current_user._get_current_object())
    message = "User removed" if deleted else "User has orders or products and was deactivated instead"
    return jsonify({"success": True, "message": message, "deleted": deleted}), 200


# -------------------------------------------------------------------
# Farmer dashboard
# -------------------------------------------------------------------
@farmer_bp.route("/stats", methods=["GET"])
@role_required(ROLE_FARMER)
def farmer_stats():
    return jsonify(reporting.farmer_stats(current_user._get_current_object())), 200
