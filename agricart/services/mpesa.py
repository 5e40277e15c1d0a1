# agricart/services/mpesa.py
"""
Safaricom Daraja (M-Pesa) client: OAuth token + STK push.

Settings are captured once into an immutable MpesaConfig at app start-up and
the client is stored on ``app.extensions["mpesa"]``; services receive it as an
argument instead of reading globals.
"""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import requests

from ..errors import UpstreamFailure

# Daraja timestamps are East Africa Time
NAIROBI = ZoneInfo("Africa/Nairobi")


# =========================================================
# Config
# =========================================================
@dataclass(frozen=True)
class MpesaConfig:
    consumer_key: str
    consumer_secret: str
    business_short_code: str
    passkey: str
    callback_url: str
    base_url: str = "https://sandbox.safaricom.co.ke"
    transaction_type: str = "CustomerPayBillOnline"
    account_reference: str = "Agricart"
    transaction_desc: str = "Payment for Agricart Order"
    callback_secret: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "MpesaConfig":
        return cls(
            consumer_key=config.get("MPESA_CONSUMER_KEY") or "",
            consumer_secret=config.get("MPESA_CONSUMER_SECRET") or "",
            business_short_code=str(config.get("MPESA_BUSINESS_SHORT_CODE") or ""),
            passkey=config.get("MPESA_PASSKEY") or "",
            callback_url=config.get("MPESA_CALLBACK_URL") or "",
            base_url=(config.get("MPESA_BASE_URL") or cls.base_url).rstrip("/"),
            callback_secret=config.get("MPESA_CALLBACK_SECRET") or None,
            timeout=float(config.get("MPESA_TIMEOUT") or cls.timeout),
        )

    @property
    def is_configured(self) -> bool:
        return all((self.consumer_key, self.consumer_secret, self.business_short_code, self.passkey))

    @property
    def signed_callback_url(self) -> str:
        """Callback URL carrying the shared secret the callback endpoint checks."""
        if not self.callback_secret:
            return self.callback_url
        sep = "&" if "?" in self.callback_url else "?"
        return f"{self.callback_url}{sep}{urlencode({'token': self.callback_secret})}"


# =========================================================
# Helpers
# =========================================================
def daraja_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(NAIROBI)
    return now.strftime("%Y%m%d%H%M%S")


def stk_password(short_code: str, passkey: str, timestamp: str) -> str:
    raw = f"{short_code}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _error_message(resp: requests.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        return data.get("errorMessage") or data.get("ResponseDescription") or fallback
    return fallback


# =========================================================
# Client
# =========================================================
class MpesaClient:
    def __init__(self, config: MpesaConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()

    def access_token(self) -> str:
        """Client-credentials exchange for a short-lived bearer token."""
        url = f"{self.config.base_url}/oauth/v1/generate"
        try:
            resp = self.session.get(
                url,
                params={"grant_type": "client_credentials"},
                auth=(self.config.consumer_key, self.config.consumer_secret),
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamFailure("Failed to generate M-Pesa access token") from exc

        if not resp.ok:
            raise UpstreamFailure(_error_message(resp, "Failed to generate M-Pesa access token"))

        try:
            token = resp.json().get("access_token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise UpstreamFailure("Failed to generate M-Pesa access token")
        return token

    def password(self, now: datetime | None = None) -> tuple[str, str]:
        timestamp = daraja_timestamp(now)
        return stk_password(self.config.business_short_code, self.config.passkey, timestamp), timestamp

    def stk_push(self, *, amount: float, phone_number: str) -> dict[str, Any]:
        """
        Send the STK push prompt to the customer's phone.
        Returns the gateway JSON (CheckoutRequestID, MerchantRequestID, ...).
        """
        if not self.config.is_configured:
            raise UpstreamFailure("M-Pesa is not configured")

        token = self.access_token()
        password, timestamp = self.password()

        payload = {
            "BusinessShortCode": self.config.business_short_code,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": self.config.transaction_type,
            # Daraja accepts whole shillings only
            "Amount": int(math.ceil(amount)),
            "PartyA": phone_number,
            "PartyB": self.config.business_short_code,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.signed_callback_url,
            "AccountReference": self.config.account_reference,
            "TransactionDesc": self.config.transaction_desc,
        }

        try:
            resp = self.session.post(
                f"{self.config.base_url}/mpesa/stkpush/v1/processrequest",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamFailure("Failed to initiate M-Pesa payment") from exc

        if not resp.ok:
            raise UpstreamFailure(_error_message(resp, "Failed to initiate M-Pesa payment"))

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamFailure("Invalid response from M-Pesa") from exc

        if not isinstance(data, dict) or not data.get("CheckoutRequestID"):
            raise UpstreamFailure(_error_message(resp, "M-Pesa did not accept the payment request"))
        return data
