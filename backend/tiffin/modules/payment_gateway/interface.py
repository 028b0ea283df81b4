"""Payment Gateway Interface - contract the billing and order services use.

All monetary values crossing this interface are integer minor units.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class GatewayOrder:
    """Order created at the gateway for the client checkout widget."""
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None


@dataclass
class RefundResult:
    """Result from refund operation."""
    refund_id: str
    payment_id: str
    amount: int
    status: str
    gateway_response: Optional[dict] = None


class PaymentGatewayInterface(ABC):
    """Abstract interface for payment gateway implementations."""

    @abstractmethod
    async def create_order(self, amount: int, receipt_prefix: str = "receipt") -> GatewayOrder:
        """Create a gateway order.

        Args:
            amount: Amount in minor units
            receipt_prefix: Prefix for the receipt label

        Returns:
            GatewayOrder with the gateway's order id
        """

    @abstractmethod
    async def fetch_order(self, order_id: str) -> GatewayOrder:
        """Fetch a previously created gateway order."""

    @abstractmethod
    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the checkout signature returned to the client."""

    @abstractmethod
    async def process_refund(self, payment_id: str, amount: int) -> RefundResult:
        """Refund part or all of a captured payment.

        Args:
            payment_id: Gateway payment id
            amount: Amount to refund in minor units
        """
