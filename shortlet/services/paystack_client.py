"""
Paystack API Client

Thin wrapper over the Paystack REST API:
- Transaction initialize (hosted checkout URL)
- Transaction verify by reference (the authoritative answer)
- Webhook signature check (HMAC-SHA512 hex of the raw body)

Paystack docs: https://paystack.com/docs/api/transaction/
"""

import hmac
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import GatewayError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


def _read_string(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_gateway_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 gateway timestamp into a naive UTC datetime"""
    value = _read_string(value)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass
class PaystackInitResult:
    authorization_url: str
    access_code: Optional[str]
    reference: str


@dataclass
class PaystackVerifyResult:
    ok: bool
    status: str
    amount_minor: int
    currency: str
    paid_at: Optional[str] = None
    authorization_code: Optional[str] = None
    email: Optional[str] = None
    transaction_id: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


def verify_paystack_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of the x-paystack-signature header"""
    signature = _read_string(signature)
    secret = _read_string(secret)
    if not signature or not secret:
        return False

    expected = hmac.new(
        secret.encode("utf-8"),
        raw_body,
        hashlib.sha512
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaystackClient:
    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", timeout: float = 20):
        if not _read_string(secret_key):
            raise ProviderNotConfiguredError("Paystack secret key is not configured")
        self.secret_key = secret_key.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: Optional[Dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, headers=self._get_headers(), json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Paystack {method} {path} failed: {e}")
            raise GatewayError(f"Paystack request failed: {e}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("status"):
            message = (body or {}).get("message") if isinstance(body, dict) else None
            logger.warning(f"Paystack {method} {path} returned {response.status_code}: {message}")
            raise GatewayError(message or "Paystack request failed", status_code=response.status_code)

        return body

    def initialize_transaction(
        self,
        amount_minor: int,
        email: str,
        reference: str,
        callback_url: str,
        currency: str = "NGN",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaystackInitResult:
        body = self._request("POST", "/transaction/initialize", {
            "amount": int(amount_minor),
            "email": email,
            "reference": reference,
            "callback_url": callback_url,
            "currency": currency or "NGN",
            "metadata": metadata or {},
        })
        data = body.get("data") or {}
        authorization_url = _read_string(data.get("authorization_url"))
        if not authorization_url:
            raise GatewayError("Unable to initialize Paystack transaction.")

        return PaystackInitResult(
            authorization_url=authorization_url,
            access_code=_read_string(data.get("access_code")),
            reference=_read_string(data.get("reference")) or reference,
        )

    def verify_transaction(self, reference: str) -> PaystackVerifyResult:
        """
        Ask Paystack for the transaction state.

        Raises GatewayError when Paystack cannot answer; a declined or
        abandoned charge is a normal result with ``ok=False``.
        """
        body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayError("Unable to verify Paystack transaction.")

        status = _read_string(data.get("status")) or "unknown"
        authorization = data.get("authorization") or {}
        customer = data.get("customer") or {}
        tx_id = data.get("id")

        return PaystackVerifyResult(
            ok=status == "success",
            status=status,
            amount_minor=int(data.get("amount") or 0),
            currency=(_read_string(data.get("currency")) or "NGN").upper(),
            paid_at=_read_string(data.get("paid_at")),
            authorization_code=_read_string(authorization.get("authorization_code")),
            email=_read_string(customer.get("email")),
            transaction_id=str(tx_id) if tx_id is not None else None,
            raw=body,
        )


def get_paystack_client(settings: Settings) -> PaystackClient:
    """Factory function to create a Paystack client from settings"""
    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.gateway_timeout_seconds,
    )
