"""HTTP client for the WiPay hosted checkout API."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)

WIPAY_SANDBOX_URL = "https://sandbox.wipayfinancial.com"
WIPAY_LIVE_URL = "https://wipayfinancial.com"


class WiPayError(RuntimeError):
    """WiPay answered but refused the request."""


def to_major_units(amount: int) -> str:
    """Render an amount in cents as the two-decimal total WiPay expects."""

    return str((Decimal(amount) / Decimal(100)).quantize(Decimal("0.01")))


class WiPayClient:
    """Thin wrapper over WiPay's form-encoded checkout endpoints."""

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        if not settings.WIPAY_ENABLED:
            raise RuntimeError("WiPay integration is disabled; enable WIPAY_ENABLED to proceed.")
        if not settings.WIPAY_ACCOUNT_NUMBER or not settings.WIPAY_DEVELOPER_ID:
            raise RuntimeError("WiPay credentials are missing; configure WIPAY_ACCOUNT_NUMBER and WIPAY_DEVELOPER_ID.")

        self._environment = "live" if settings.WIPAY_ENVIRONMENT.lower() == "live" else "sandbox"
        base_url = WIPAY_LIVE_URL if self._environment == "live" else WIPAY_SANDBOX_URL
        self._http = httpx.Client(
            base_url=base_url,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "WiPayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _credentials(self) -> dict[str, str]:
        return {
            "account_number": self.settings.WIPAY_ACCOUNT_NUMBER or "",
            "developer_id": self.settings.WIPAY_DEVELOPER_ID or "",
            "environment": self._environment,
        }

    def _post(self, path: str, data: dict[str, str]) -> dict[str, Any]:
        response = self._http.post(path, data=data)
        response.raise_for_status()
        return response.json()

    def create_checkout(
        self,
        *,
        order_id: str,
        amount: int,
        payer_name: str,
        payer_email: str | None,
        reason: str,
    ) -> dict[str, Any]:
        """Open a hosted checkout and return ``{"url", "transaction_id"}``."""

        data = {
            **self._credentials(),
            "avs": "0",
            "country_code": self.settings.WIPAY_COUNTRY_CODE,
            "currency": self.settings.WIPAY_CURRENCY,
            "fee_structure": "customer",
            "order_id": order_id,
            "origin": "tradeworks",
            "total": to_major_units(amount),
            "payer_name": payer_name,
            "payer_email": payer_email or "",
            "reason": reason,
            "response_url": self.settings.WIPAY_CALLBACK_URL,
        }
        body = self._post("/api/checkout/create", data)
        if body.get("status") != "success" or not body.get("transaction_id"):
            raise WiPayError(body.get("message") or "WiPay refused to create the checkout.")
        logger.info("WiPay checkout created", extra={"order_id": order_id})
        return {"url": body.get("url"), "transaction_id": str(body["transaction_id"])}

    def get_transaction_status(self, transaction_id: str) -> str:
        """Ask WiPay for the current status string of a transaction."""

        body = self._post("/api/checkout/status", {**self._credentials(), "transaction_id": transaction_id})
        status = body.get("status")
        if not status:
            raise WiPayError("WiPay status response carried no status.")
        return str(status)
