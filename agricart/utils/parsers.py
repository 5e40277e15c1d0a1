# agricart/utils/parsers.py
from __future__ import annotations

import re
from datetime import date

PHONE_RE = re.compile(r"^\d{10,15}$")
EMAIL_RE = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$")


def clean_str(value) -> str:
    return str(value if value is not None else "").strip()


def parse_float(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return float(val)
    except (TypeError, ValueError):
        return None


def parse_int(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        if isinstance(val, float) and not val.is_integer():
            return None
        return int(val)
    except (TypeError, ValueError):
        return None


def parse_bool(val):
    if isinstance(val, bool):
        return val
    s = clean_str(val).lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return None


def parse_date(val):
    try:
        if not val:
            return None
        return date.fromisoformat(str(val)[:10])
    except (TypeError, ValueError):
        return None


def is_valid_phone(value) -> bool:
    return bool(PHONE_RE.match(clean_str(value)))


def is_valid_email(value) -> bool:
    return bool(EMAIL_RE.match(clean_str(value)))
