# agricart/services/accounts.py
"""
User accounts: self-registration, login, profile and admin management.

- Self-registration is limited to buyer/farmer; admins come from create_admin.py
- Farmers must carry a farm name and location
- Users owning orders or products are deactivated instead of deleted
"""

from __future__ import annotations

from typing import Any, Mapping

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..constants.roles import ROLE_FARMER, ROLES, SELF_REGISTER_ROLES
from ..errors import Forbidden, NotFound, Unauthenticated, ValidationError
from ..extensions import db
from ..models import Order, Product, User, utcnow_naive
from ..utils.parsers import clean_str, is_valid_email, is_valid_phone, parse_bool, parse_int
from ..utils.passwords import hash_password, validate_password, verify_password

NAME_MAXLEN = 120
EMAIL_MAXLEN = 120
FARM_NAME_MAXLEN = 160
LOCATION_MAXLEN = 160
AVATAR_MAXLEN = 500


# =========================================================
# Helpers
# =========================================================
def _normalize_role(role) -> str:
    return clean_str(role).lower().replace("-", "_")


def _email_taken(email: str, *, exclude_id: int | None = None) -> bool:
    q = User.query.filter(sa.func.lower(User.email) == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def get_user_or_404(user_id) -> User:
    uid = parse_int(user_id)
    user = db.session.get(User, uid) if uid else None
    if not user:
        raise NotFound("User not found")
    return user


def _apply_profile(user: User, data: Mapping[str, Any]) -> None:
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise ValidationError("Please add a name")
        if len(name) > NAME_MAXLEN:
            raise ValidationError(f"Name too long (max {NAME_MAXLEN}).")
        user.name = name

    if "email" in data:
        email = clean_str(data.get("email")).lower()
        if not is_valid_email(email) or len(email) > EMAIL_MAXLEN:
            raise ValidationError("Please add a valid email")
        if _email_taken(email, exclude_id=user.id):
            raise ValidationError("User already exists")
        user.email = email

    if "phone" in data:
        phone = clean_str(data.get("phone")) or None
        if phone and not is_valid_phone(phone):
            raise ValidationError(f"{phone} is not a valid phone number!")
        user.phone = phone

    if "avatar" in data:
        user.avatar = clean_str(data.get("avatar"))[:AVATAR_MAXLEN] or None

    if "farmName" in data:
        user.farm_name = clean_str(data.get("farmName"))[:FARM_NAME_MAXLEN] or None
    if "location" in data:
        user.location = clean_str(data.get("location"))[:LOCATION_MAXLEN] or None

    if "password" in data and data.get("password"):
        ok, msg = validate_password(data.get("password"))
        if not ok:
            raise ValidationError(msg)
        user.password_hash = hash_password(data.get("password"))


def _check_farmer_profile(user: User) -> None:
    if user.role != ROLE_FARMER:
        return
    if not user.farm_name:
        raise ValidationError("Farm name is required for farmers")
    if not user.location:
        raise ValidationError("Location is required for farmers")


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("%s failed: %s", action, exc)
        raise ValidationError("User already exists") from exc
    except Exception:
        db.session.rollback()
        raise


# =========================================================
# Register / Login
# =========================================================
def register(data: Mapping[str, Any]) -> User:
    name = clean_str(data.get("name"))
    email = clean_str(data.get("email")).lower()
    password = data.get("password") or ""
    role = _normalize_role(data.get("role")) or SELF_REGISTER_ROLES[0]

    if not name or not email or not password:
        raise ValidationError("Please add all fields")
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError("Role must be buyer or farmer")
    ok, msg = validate_password(password)
    if not ok:
        raise ValidationError(msg)
    if _email_taken(email):
        raise ValidationError("User already exists")

    user = User(role=role, is_active=True, password_hash=hash_password(password))
    try:
        _apply_profile(user, {k: v for k, v in data.items() if k not in ("role", "password")})
        _check_farmer_profile(user)
    except ValidationError:
        db.session.rollback()
        raise

    db.session.add(user)
    _commit("Register")
    current_app.logger.info("User %s registered as %s", user.id, user.role)
    return user


def authenticate(email, password) -> User:
    email = clean_str(email).lower()
    password = password or ""
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter(sa.func.lower(User.email) == email).first()
    if not user or not verify_password(user.password_hash, password):
        raise Unauthenticated("Invalid email or password")
    if not user.is_active:
        raise Forbidden("Account deactivated, please contact admin")

    user.last_login_at = utcnow_naive()
    _commit("Login")
    return user


# =========================================================
# Profile (self)
# =========================================================
def update_profile(user: User, data: Mapping[str, Any]) -> User:
    allowed = {k: v for k, v in data.items() if k not in ("role", "isActive")}
    try:
        _apply_profile(user, allowed)
        _check_farmer_profile(user)
    except ValidationError:
        db.session.rollback()
        raise
    _commit("Profile update")
    return user


# =========================================================
# Admin
# =========================================================
def list_users(params: Mapping[str, Any] | None = None) -> list[User]:
    params = params or {}
    qry = User.query

    q = clean_str(params.get("q"))
    if q:
        like = f"%{q.lower()}%"
        qry = qry.filter(
            sa.or_(
                sa.func.lower(User.name).like(like),
                sa.func.lower(User.email).like(like),
            )
        )

    role = _normalize_role(params.get("role"))
    if role:
        qry = qry.filter(User.role == role)

    status = clean_str(params.get("status")).lower()
    if status in ("active", "inactive"):
        qry = qry.filter(User.is_active.is_(status == "active"))

    return qry.order_by(User.created_at.desc(), User.id.desc()).all()


def admin_update_user(user_id, data: Mapping[str, Any]) -> User:
    user = get_user_or_404(user_id)
    try:
        if "role" in data:
            role = _normalize_role(data.get("role"))
            if role not in ROLES:
                raise ValidationError(f"{role or 'Empty value'} is not a valid role")
            user.role = role
        if "isActive" in data:
            active = parse_bool(data.get("isActive"))
            if active is None:
                raise ValidationError("isActive must be true or false")
            user.is_active = active
        _apply_profile(user, {k: v for k, v in data.items() if k not in ("role", "isActive")})
        _check_farmer_profile(user)
    except ValidationError:
        db.session.rollback()
        raise
    _commit("Admin user update")
    current_app.logger.info("User %s updated by admin (role=%s active=%s)", user.id, user.role, user.is_active)
    return user


def change_role(user_id, role, actor: User) -> User:
    user = get_user_or_404(user_id)
    role = _normalize_role(role)
    if role not in ROLES:
        raise ValidationError(f"{role or 'Empty value'} is not a valid role")
    if user.id == actor.id and role != user.role:
        raise ValidationError("You cannot change your own role")
    user.role = role
    try:
        _check_farmer_profile(user)
    except ValidationError:
        db.session.rollback()
        raise
    _commit("Role change")
    current_app.logger.info("User %s role set to %s by %s", user.id, role, actor.id)
    return user


def toggle_active(user_id, actor: User) -> User:
    user = get_user_or_404(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = not user.is_active
    _commit("Toggle active")
    current_app.logger.info("User %s active=%s (by %s)", user.id, user.is_active, actor.id)
    return user


def remove_user(user_id, actor: User) -> tuple[User, bool]:
    """
    Delete a user. Users that own orders or products are deactivated instead.
    Returns (user, deleted).
    """
    user = get_user_or_404(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")

    has_orders = db.session.query(Order.query.filter_by(user_id=user.id).exists()).scalar()
    has_products = db.session.query(Product.query.filter_by(farmer_id=user.id).exists()).scalar()

    if has_orders or has_products:
        user.is_active = False
        _commit("Deactivate user")
        current_app.logger.info("User %s deactivated (has history) by %s", user.id, actor.id)
        return user, False

    db.session.delete(user)
    _commit("Delete user")
    current_app.logger.info("User %s deleted by %s", user_id, actor.id)
    return user, True
