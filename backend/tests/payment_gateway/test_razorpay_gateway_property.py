"""Property-based tests for the Razorpay gateway.

Tests that:
- Checkout signatures verify only for the exact order/payment pair
- Amounts cross the gateway boundary as integer paise
- Gateway error descriptions surface in GatewayError
"""

import hashlib
import hmac
import json
from decimal import Decimal

import httpx
from hypothesis import given, settings, strategies as st
import pytest

from tiffin.core.exceptions import GatewayError
from tiffin.modules.payment_gateway.currency import from_minor_units, to_minor_units
from tiffin.modules.payment_gateway.razorpay import RazorpayGateway, compute_signature


SECRET = "test-razorpay-secret"

id_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd")),
    min_size=1,
    max_size=20,
)


def make_gateway(handler=None) -> RazorpayGateway:
    transport = httpx.MockTransport(handler) if handler else None
    return RazorpayGateway("rzp_test_key", SECRET, transport=transport)


class TestSignature:
    """Property tests for checkout signature verification."""

    @given(order_id=id_strategy, payment_id=id_strategy)
    @settings(max_examples=100)
    def test_signature_matches_hmac(self, order_id: str, payment_id: str) -> None:
        """*For any* pair, the signature SHALL be HMAC-SHA256 over ``order|payment``."""
        expected = hmac.new(
            SECRET.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
        ).hexdigest()

        assert compute_signature(order_id, payment_id, SECRET) == expected
        assert make_gateway().verify_signature(order_id, payment_id, expected)

    @given(order_id=id_strategy, payment_id=id_strategy, other=id_strategy)
    @settings(max_examples=100)
    def test_signature_bound_to_payment(self, order_id: str, payment_id: str, other: str) -> None:
        """*For any* other payment id, a signature SHALL NOT verify."""
        if other == payment_id:
            return
        signature = compute_signature(order_id, payment_id, SECRET)

        assert not make_gateway().verify_signature(order_id, other, signature)

    def test_wrong_secret_rejected(self) -> None:
        signature = compute_signature("order_1", "pay_1", "another-secret")

        assert not make_gateway().verify_signature("order_1", "pay_1", signature)

    def test_missing_fields_rejected(self) -> None:
        gateway = make_gateway()

        assert not gateway.verify_signature("order_1", "pay_1", "")
        assert not gateway.verify_signature("", "pay_1", "sig")


class TestCurrency:

    @given(paise=st.integers(min_value=0, max_value=10**9))
    @settings(max_examples=100)
    def test_paise_survive_conversion(self, paise: int) -> None:
        """*For any* paise amount, rupee conversion SHALL be lossless."""
        assert to_minor_units(from_minor_units(paise)) == paise

    def test_rounds_half_up(self) -> None:
        assert to_minor_units(Decimal("10.005")) == 1001
        assert to_minor_units("240.5") == 24050


class TestApi:

    @pytest.mark.asyncio
    async def test_create_order(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={
                "id": "order_abc",
                "amount": seen["body"]["amount"],
                "currency": "INR",
                "receipt": seen["body"]["receipt"],
            })

        order = await make_gateway(handler).create_order(30000, "receipt_upgrade_for_a_very_long_user_name")

        assert seen["path"] == "/v1/orders"
        assert seen["body"]["amount"] == 30000
        assert seen["body"]["currency"] == "INR"
        assert len(seen["body"]["receipt"]) <= RazorpayGateway.MAX_RECEIPT_LENGTH
        assert seen["auth"].startswith("Basic ")
        assert order.id == "order_abc"
        assert order.amount == 30000

    @pytest.mark.asyncio
    async def test_fetch_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/v1/orders/order_abc"
            return httpx.Response(200, json={"id": "order_abc", "amount": 45000, "currency": "INR"})

        order = await make_gateway(handler).fetch_order("order_abc")

        assert order.amount == 45000

    @pytest.mark.asyncio
    async def test_refund(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "rfnd_1", "amount": 40000, "status": "processed"})

        result = await make_gateway(handler).process_refund("pay_1", 40000)

        assert seen["path"] == "/v1/payments/pay_1/refund"
        assert seen["body"] == {"amount": 40000, "speed": "optimum"}
        assert result.refund_id == "rfnd_1"
        assert result.status == "processed"

    @pytest.mark.asyncio
    async def test_error_description_surfaces(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={
                "error": {"code": "BAD_REQUEST_ERROR", "description": "The payment has been fully refunded already"}
            })

        with pytest.raises(GatewayError, match="fully refunded already"):
            await make_gateway(handler).process_refund("pay_1", 40000)

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayError, match="unreachable"):
            await make_gateway(handler).fetch_order("order_abc")
