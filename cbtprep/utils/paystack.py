from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from cbtprep import config

logger = logging.getLogger(__name__)

DEV_MODE_KEYS = ("", "sk_test_dev_mode")


class PaymentGatewayError(Exception):
    """The gateway rejected the request or could not be reached."""
    pass


def generate_reference() -> str:
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(6))
    return f"CBT_{int(time.time() * 1000)}_{suffix}"


def generate_unlock_code() -> str:
    """8-digit numeric code, same format as the admin-issued ones."""
    return str(10_000_000 + secrets.randbelow(90_000_000))


class PaystackClient:
    """
    Minimal Paystack client: initialize + verify.

    Without a real secret key the client runs in development mode and
    simulates a successful gateway, so the rest of the flow can be exercised.
    """

    def __init__(
        self,
        secret_key: str = config.PAYSTACK_SECRET_KEY,
        base_url: str = config.PAYSTACK_BASE_URL,
        client: httpx.Client | None = None,
    ):
        self.secret_key = secret_key or ""
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=15.0)
        if self.dev_mode:
            logger.warning("PAYSTACK_SECRET_KEY not set, payments run in development mode")

    @property
    def dev_mode(self) -> bool:
        return self.secret_key in DEV_MODE_KEYS

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _call(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, f"{self.base_url}{path}", json=json, headers=self._headers())
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentGatewayError(f"Paystack request failed: {e}") from e

        if not response.is_success or not body.get("status"):
            raise PaymentGatewayError(body.get("message") or f"Paystack HTTP {response.status_code}")
        return body["data"]

    def initialize(self, email: str, amount: int, reference: str,
                   callback_url: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Returns {authorization_url, access_code, reference}."""
        if self.dev_mode:
            logger.info("Development mode: simulating payment initialization %s", reference)
            url = f"{callback_url or ''}?reference={reference}&status=success"
            return {"authorization_url": url, "access_code": "dev_access_code", "reference": reference}

        payload = {"email": email, "amount": amount, "reference": reference, "metadata": metadata or {}}
        if callback_url:
            payload["callback_url"] = callback_url
        return self._call("POST", "/transaction/initialize", json=payload)

    def verify(self, reference: str) -> Dict[str, Any]:
        """Returns the transaction; data["status"] is success|failed|abandoned."""
        if self.dev_mode:
            logger.info("Development mode: simulating payment verification %s", reference)
            return {
                "status": "success",
                "reference": reference,
                "gateway_response": "Approved",
                "paid_at": datetime.utcnow().isoformat(),
                "currency": "NGN",
                "metadata": {"development": True},
            }
        return self._call("GET", f"/transaction/verify/{reference}")


_default_gateway: PaystackClient | None = None


def get_payment_gateway() -> PaystackClient:
    """FastAPI dependency; one client per process so its connection pool is reused."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = PaystackClient()
    return _default_gateway


def close_payment_gateway() -> None:
    global _default_gateway
    if _default_gateway is not None:
        _default_gateway.close()
        _default_gateway = None
