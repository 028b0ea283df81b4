"""Razorpay payment gateway implementation.

Talks to the Razorpay Orders/Payments REST API with HTTP basic auth. Checkout
signatures are HMAC-SHA256 over ``order_id|payment_id`` keyed with the
account's key secret.
"""

import hashlib
import hmac
import logging
import time
from functools import lru_cache
from typing import Optional

import httpx

from tiffin.core.config import settings
from tiffin.core.exceptions import GatewayError
from tiffin.core.logging import log_error, log_info
from tiffin.core.metrics import GATEWAY_REQUESTS_TOTAL
from tiffin.modules.payment_gateway.interface import (
    GatewayOrder,
    PaymentGatewayInterface,
    RefundResult,
)

logger = logging.getLogger(__name__)


class RazorpayGateway(PaymentGatewayInterface):
    """Razorpay gateway for INR payments."""

    # Razorpay rejects receipts longer than 40 characters
    MAX_RECEIPT_LENGTH = 40

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        currency: str = "INR",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self._transport = transport

    async def _make_request(
        self,
        operation: str,
        method: str,
        path: str,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to the Razorpay API.

        Raises:
            GatewayError: On transport failure or a non-2xx response
        """
        try:
            async with httpx.AsyncClient(
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method=method,
                    url=f"{self.base_url}{path}",
                    json=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            GATEWAY_REQUESTS_TOTAL.labels(operation=operation, status="transport_error").inc()
            raise GatewayError(f"Payment gateway unreachable: {e}", status_code=502) from e

        GATEWAY_REQUESTS_TOTAL.labels(operation=operation, status=str(response.status_code)).inc()

        body = response.json() if response.content else {}
        if response.is_error:
            description = (body.get("error") or {}).get("description") or response.reason_phrase
            raise GatewayError(
                description,
                status_code=502,
                context={"gateway_status": response.status_code, "operation": operation},
            )
        return body

    def _receipt(self, prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}"[: self.MAX_RECEIPT_LENGTH]

    async def create_order(self, amount: int, receipt_prefix: str = "receipt") -> GatewayOrder:
        """Create a Razorpay order for ``amount`` paise."""
        receipt = self._receipt(receipt_prefix)
        response = await self._make_request(
            "create_order",
            "POST",
            "/orders",
            {"amount": int(amount), "currency": self.currency, "receipt": receipt},
        )
        log_info(logger, "Gateway order created", gateway_order_id=response.get("id"), amount=amount)
        return GatewayOrder(
            id=response["id"],
            amount=int(response.get("amount", amount)),
            currency=response.get("currency", self.currency),
            receipt=response.get("receipt", receipt),
        )

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        """Fetch an order to read back the amount it was created for."""
        response = await self._make_request("fetch_order", "GET", f"/orders/{order_id}")
        return GatewayOrder(
            id=response["id"],
            amount=int(response["amount"]),
            currency=response.get("currency", self.currency),
            receipt=response.get("receipt"),
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Verify the checkout signature in constant time."""
        if not (order_id and payment_id and signature):
            return False
        expected = compute_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected, signature)

    async def process_refund(self, payment_id: str, amount: int) -> RefundResult:
        """Refund ``amount`` paise of a captured payment."""
        try:
            response = await self._make_request(
                "refund",
                "POST",
                f"/payments/{payment_id}/refund",
                {"amount": int(amount), "speed": "optimum"},
            )
        except GatewayError as e:
            log_error(logger, "Gateway refund failed", e, payment_id=payment_id, amount=amount)
            raise

        return RefundResult(
            refund_id=response.get("id", ""),
            payment_id=payment_id,
            amount=int(response.get("amount", amount)),
            status=response.get("status", "pending"),
            gateway_response=response,
        )


def compute_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id``."""
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(key_secret.encode(), body, hashlib.sha256).hexdigest()


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGatewayInterface:
    """FastAPI dependency returning the configured gateway."""
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_BASE_URL,
        currency=settings.CURRENCY,
        timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
    )
