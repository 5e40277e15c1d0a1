# agricart/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask_login import login_required, current_user

from ..constants.roles import ROLE_ADMIN
from ..errors import Forbidden


def _role() -> str:
    return (getattr(current_user, "role", "") or "").strip().lower()


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Allow only admins.
    Raises Forbidden (403) for all other authenticated roles.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if _role() != ROLE_ADMIN:
            raise Forbidden("Admin access only")
        return view(*args, **kwargs)

    return wrapped


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("farmer", "admin")
        def view(): ...
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if _role() not in allowed_roles:
                labels = " or ".join(r.capitalize() for r in allowed_roles)
                raise Forbidden(f"{labels} access only")
            return view(*args, **kwargs)
        return wrapped
    return decorator
