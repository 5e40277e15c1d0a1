# agricart/services/catalog.py
from __future__ import annotations

from datetime import date
from typing import Any, Mapping

import sqlalchemy as sa
from flask import current_app

from ..constants.roles import ROLE_ADMIN, ROLE_FARMER
from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import PRODUCT_CATEGORIES, PRODUCT_UNITS, SUBCATEGORY_REQUIRED, OrderItem, Product, User
from ..utils.parsers import clean_str, parse_bool, parse_date, parse_float, parse_int

# -------------------------------------------------------------------
# Constants
# -------------------------------------------------------------------
NAME_MAXLEN = 100
DESCRIPTION_MAXLEN = 1000
SUBCATEGORY_MAXLEN = 60
LOCATION_MAXLEN = 160
IMAGE_URL_MAXLEN = 500

DEFAULT_PER_PAGE = 12
MAX_PER_PAGE = 100

SORTS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "price_asc": (Product.price.asc(), Product.id.asc()),
    "price_desc": (Product.price.desc(), Product.id.desc()),
    "name": (Product.name.asc(), Product.id.asc()),
}


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _get_product_or_404(product_id) -> Product:
    pid = parse_int(product_id)
    product = db.session.get(Product, pid) if pid else None
    if not product:
        raise NotFound("Product not found")
    return product


def _assert_owner_or_admin(product: Product, actor: User) -> None:
    if actor.role == ROLE_ADMIN:
        return
    if actor.role == ROLE_FARMER and product.farmer_id == actor.id:
        return
    raise Forbidden("Not authorized to modify this product")


def _clean_images(raw) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError("Images must be a list of URLs")
    images = [clean_str(u) for u in raw if clean_str(u)]
    if not images:
        raise ValidationError("At least one image is required")
    for url in images:
        if len(url) > IMAGE_URL_MAXLEN:
            raise ValidationError(f"Image URL too long (max {IMAGE_URL_MAXLEN}).")
    return images


def _apply_fields(product: Product, data: Mapping[str, Any], *, partial: bool) -> None:
    """Validate and assign product fields. ``partial`` skips absent keys."""

    def present(key: str) -> bool:
        return not partial or key in data

    if present("name"):
        name = clean_str(data.get("name"))
        if not name:
            raise ValidationError("Please add a product name")
        if len(name) > NAME_MAXLEN:
            raise ValidationError(f"Name cannot be more than {NAME_MAXLEN} characters")
        product.name = name

    if present("description"):
        description = clean_str(data.get("description"))
        if not description:
            raise ValidationError("Please add a description")
        if len(description) > DESCRIPTION_MAXLEN:
            raise ValidationError(f"Description cannot be more than {DESCRIPTION_MAXLEN} characters")
        product.description = description

    if present("price"):
        price = parse_float(data.get("price"))
        if price is None:
            raise ValidationError("Please add a price")
        if price < 0:
            raise ValidationError("Price must be a positive number")
        product.price = round(price, 2)

    if present("unit"):
        unit = clean_str(data.get("unit")) or "kg"
        if unit not in PRODUCT_UNITS:
            raise ValidationError(f"{unit} is not a valid unit")
        product.unit = unit

    if present("category"):
        category = clean_str(data.get("category"))
        if category not in PRODUCT_CATEGORIES:
            raise ValidationError(f"{category or 'Empty value'} is not a valid category")
        product.category = category

    if present("subCategory"):
        product.sub_category = clean_str(data.get("subCategory"))[:SUBCATEGORY_MAXLEN] or None
    if product.category in SUBCATEGORY_REQUIRED and not product.sub_category:
        raise ValidationError(f"Sub-category is required for {product.category}")

    if present("images"):
        product.images = _clean_images(data.get("images"))

    if present("stock"):
        stock = parse_int(data.get("stock"))
        if stock is None:
            raise ValidationError("Please add stock quantity")
        if stock < 0:
            raise ValidationError("Stock cannot be negative")
        product.stock = stock

    if "location" in data:
        location = clean_str(data.get("location"))
        if location:
            product.location = location[:LOCATION_MAXLEN]

    if "harvestDate" in data:
        raw = data.get("harvestDate")
        harvest = parse_date(raw)
        if raw and harvest is None:
            raise ValidationError("Invalid harvest date")
        if harvest and harvest > date.today():
            raise ValidationError("Harvest date cannot be in the future")
        product.harvest_date = harvest

    if "organic" in data:
        product.organic = bool(parse_bool(data.get("organic")))


def _commit() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------
def create_product(farmer: User, data: Mapping[str, Any]) -> Product:
    if farmer.role != ROLE_FARMER:
        raise Forbidden("Farmer access only")

    product = Product(farmer_id=farmer.id, images=[], organic=False)
    _apply_fields(product, data, partial=False)

    if not product.location:
        product.location = farmer.location
    if not product.location:
        raise ValidationError("Please add a location")

    db.session.add(product)
    _commit()
    current_app.logger.info("Product %s created by farmer %s", product.id, farmer.id)
    return product


def update_product(product_id, actor: User, data: Mapping[str, Any]) -> Product:
    product = _get_product_or_404(product_id)
    _assert_owner_or_admin(product, actor)

    try:
        _apply_fields(product, data, partial=True)
    except ValidationError:
        db.session.rollback()
        raise

    _commit()
    current_app.logger.info("Product %s updated by user %s", product.id, actor.id)
    return product


def delete_product(product_id, actor: User) -> None:
    product = _get_product_or_404(product_id)
    _assert_owner_or_admin(product, actor)

    # Order snapshots keep their copy; the FK is nulled on delete.
    db.session.execute(
        sa.update(OrderItem).where(OrderItem.product_id == product.id).values(product_id=None)
    )
    db.session.delete(product)
    _commit()
    current_app.logger.info("Product %s deleted by user %s", product_id, actor.id)


def get_product(product_id) -> Product:
    return _get_product_or_404(product_id)


# -------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------
def search_products(params: Mapping[str, Any]) -> dict[str, Any]:
    query = Product.query

    keyword = clean_str(params.get("keyword"))
    if keyword:
        like = f"%{keyword}%"
        query = query.filter(sa.or_(Product.name.ilike(like), Product.description.ilike(like)))

    category = clean_str(params.get("category"))
    if category:
        query = query.filter(Product.category == category)

    min_price = parse_float(params.get("minPrice"))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    max_price = parse_float(params.get("maxPrice"))
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    farmer_id = parse_int(params.get("farmer"))
    if farmer_id:
        query = query.filter(Product.farmer_id == farmer_id)

    organic = parse_bool(params.get("organic"))
    if organic is not None:
        query = query.filter(Product.organic.is_(organic))

    if parse_bool(params.get("inStock")):
        query = query.filter(Product.stock > 0)

    sort = clean_str(params.get("sort")) or "newest"
    if sort not in SORTS:
        raise ValidationError(f"Unknown sort: {sort}")
    query = query.order_by(*SORTS[sort])

    page = max(parse_int(params.get("page")) or 1, 1)
    per_page = min(max(parse_int(params.get("perPage")) or DEFAULT_PER_PAGE, 1), MAX_PER_PAGE)

    pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    return {
        "products": pagination.items,
        "page": pagination.page,
        "pages": pagination.pages,
        "perPage": per_page,
        "total": pagination.total,
    }


def list_by_category(category: str) -> list[Product]:
    category = clean_str(category)
    if category not in PRODUCT_CATEGORIES:
        raise ValidationError(f"{category or 'Empty value'} is not a valid category")
    return Product.query.filter_by(category=category).order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_farmer_products(farmer_id) -> list[Product]:
    fid = parse_int(farmer_id)
    farmer = db.session.get(User, fid) if fid else None
    if not farmer or farmer.role != ROLE_FARMER:
        raise NotFound("Farmer not found")
    return Product.query.filter_by(farmer_id=farmer.id).order_by(Product.created_at.desc(), Product.id.desc()).all()
