"""Payment gateway module.

Wraps the Razorpay REST API behind ``PaymentGatewayInterface`` so the
billing and order services never deal with HTTP or minor currency units.
"""

from tiffin.modules.payment_gateway.interface import (
    GatewayOrder,
    PaymentGatewayInterface,
    RefundResult,
)
from tiffin.modules.payment_gateway.razorpay import RazorpayGateway, get_payment_gateway

__all__ = [
    "GatewayOrder",
    "PaymentGatewayInterface",
    "RefundResult",
    "RazorpayGateway",
    "get_payment_gateway",
]
