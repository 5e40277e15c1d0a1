# agricart/products.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from .constants.roles import ROLE_ADMIN, ROLE_FARMER
from .services import catalog
from .utils.guards import role_required

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


# -------------------------------------------------------------------
# Public catalog
# GET /api/products?keyword=&category=&minPrice=&maxPrice=&farmer=
#                  &organic=&inStock=&sort=&page=&perPage=
# -------------------------------------------------------------------
@products_bp.route("", methods=["GET"])
def list_products():
    result = catalog.search_products(request.args)
    result["products"] = [p.to_dict() for p in result["products"]]
    return jsonify(result), 200


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    return jsonify(catalog.get_product(product_id).to_dict()), 200


@products_bp.route("/category/<category>", methods=["GET"])
def by_category(category: str):
    return jsonify([p.to_dict() for p in catalog.list_by_category(category)]), 200


@products_bp.route("/farmer/<int:farmer_id>", methods=["GET"])
def by_farmer(farmer_id: int):
    return jsonify([p.to_dict() for p in catalog.list_farmer_products(farmer_id)]), 200


# -------------------------------------------------------------------
# Farmer listings
# -------------------------------------------------------------------
@products_bp.route("", methods=["POST"])
@role_required(ROLE_FARMER)
def create_product():
    data = request.get_json(silent=True) or {}
    product = catalog.create_product(current_user._get_current_object(), data)
    return jsonify(product.to_dict()), 201


@products_bp.route("/<int:product_id>", methods=["PUT"])
@role_required(ROLE_FARMER, ROLE_ADMIN)
def update_product(product_id: int):
    data = request.get_json(silent=True) or {}
    product = catalog.update_product(product_id, current_user._get_current_object(), data)
    return jsonify(product.to_dict()), 200


@products_bp.route("/<int:product_id>", methods=["DELETE"])
@role_required(ROLE_FARMER, ROLE_ADMIN)
def delete_product(product_id: int):
    catalog.delete_product(product_id, current_user._get_current_object())
    return jsonify({"success": True, "message": "Product removed"}), 200
