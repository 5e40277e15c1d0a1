# agricart/config/company.py
"""
Single source of truth for AgriCart marketplace identity.

Used by the PDF receipt renderer and anywhere a human-facing header/footer
needs the company name or contact lines.
"""

from __future__ import annotations

# -----------------------------
# Canonical fields
# -----------------------------
COMPANY_NAME = "AgriCart"
COMPANY_TAGLINE = "Fresh from the farm • Paid with M-Pesa"

# Single display line (PDF-friendly)
COMPANY_ADDRESS = "Nairobi, Kenya"

COMPANY_EMAIL = "support@agricart.co.ke"

COMPANY_PHONES = ["+254-700-000-000"]

# “Primary” phone for single-line places (headers/footers)
COMPANY_PHONE = COMPANY_PHONES[0]

COMPANY_WEBSITE = "www.agricart.co.ke"

CURRENCY = "KES"


def company_context() -> dict:
    """Header/footer context for rendered documents."""
    return {
        "COMPANY_NAME": COMPANY_NAME,
        "COMPANY_TAGLINE": COMPANY_TAGLINE,
        "COMPANY_ADDRESS": COMPANY_ADDRESS,
        "COMPANY_EMAIL": COMPANY_EMAIL,
        "COMPANY_PHONE": COMPANY_PHONE,
        "COMPANY_PHONES": COMPANY_PHONES,
        "COMPANY_WEBSITE": COMPANY_WEBSITE,
        "CURRENCY": CURRENCY,
    }
