# agricart/utils/tokens.py
"""
Bearer tokens for the JSON API.

Tokens are itsdangerous signatures over the user id, keyed by SECRET_KEY and
time limited by TOKEN_MAX_AGE_DAYS.
"""

from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer

_SALT = "agricart-auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_SALT)


def issue_token(user) -> str:
    return _serializer().dumps({"id": user.id})


def verify_token(token: str | None) -> int | None:
    """Return the user id carried by a valid token, else None (expired tokens included)."""
    if not token:
        return None
    max_age = int(current_app.config.get("TOKEN_MAX_AGE_DAYS", 30)) * 24 * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    try:
        return int(data.get("id"))
    except (AttributeError, TypeError, ValueError):
        return None


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    value = (authorization or "").strip()
    if not value.lower().startswith("bearer "):
        return None
    token = value[7:].strip()
    return token or None
