"""Order flows: checkout, placement, cancellation and staff review.

Refunds are best effort. When the gateway refuses a refund the order
change still goes through; the failure is recorded on the order and
returned to the caller as ``refund_error``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.exceptions import (
    AuthorizationError,
    GatewayError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from tiffin.core.logging import log_error, log_info
from tiffin.core.metrics import REFUNDS_TOTAL, SUBSCRIPTION_TRANSITIONS_TOTAL
from tiffin.modules.auth.models import User
from tiffin.modules.auth.repository import UserRepository
from tiffin.modules.billing.models import SubscriptionStatus
from tiffin.modules.billing.pricing import cancellation_fee, validate_item_windows
from tiffin.modules.billing.repository import SubscriptionRepository
from tiffin.modules.order.models import CLOSED_STATUSES, Order, OrderStatus, PaymentStatus
from tiffin.modules.order.repository import OrderRepository
from tiffin.modules.order.schemas import OrderCreate
from tiffin.modules.payment_gateway.currency import to_minor_units
from tiffin.modules.payment_gateway.interface import GatewayOrder, PaymentGatewayInterface

logger = logging.getLogger(__name__)

MINIMUM_CHECKOUT = Decimal("1")

# Orders counted as successful in a customer's stats
SUCCESSFUL_STATUSES = [OrderStatus.CONFIRMED.value, OrderStatus.UPGRADED.value]


@dataclass
class RefundOutcome:
    """What happened when a refund was due."""
    status: str  # refunded, already_refunded, failed, not_applicable
    amount: Decimal
    refund_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in ("refunded", "already_refunded")


@dataclass
class OrderChange:
    order: Order
    refund: RefundOutcome


def is_already_refunded(error: GatewayError) -> bool:
    """The gateway reports the payment was refunded earlier."""
    return "refunded" in error.message.lower()


class OrderService:
    """Service for one-off orders and order cancellation."""

    def __init__(self, session: AsyncSession, gateway: PaymentGatewayInterface):
        self.session = session
        self.gateway = gateway
        self.order_repo = OrderRepository(session)
        self.subscription_repo = SubscriptionRepository(session)
        self.user_repo = UserRepository(session)

    # ==================== Placement ====================

    async def checkout(self, amount: Decimal) -> GatewayOrder:
        """Create a gateway order for a cart total."""
        if amount < MINIMUM_CHECKOUT:
            raise ValidationError("Order amount must be at least 1 rupee")
        return await self.gateway.create_order(to_minor_units(amount), "receipt_cart")

    async def create_order(
        self,
        user_id: uuid.UUID,
        data: OrderCreate,
        now: Optional[datetime] = None,
    ) -> Order:
        """Store a paid single or event order, pending staff approval.

        Raises:
            GatewayError: If the payment signature does not match or the gateway
                order cannot be read back
            PolicyViolation: If the payment was already applied or the total differs
                from the amount paid
            ValidationError: If the cart is empty or an item's ordering window has closed
        """
        now = now or datetime.utcnow()

        if not data.items:
            raise ValidationError("No order items")

        if not self.gateway.verify_signature(
            data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
        ):
            raise GatewayError(
                "Invalid payment signature",
                status_code=400,
                context={"gateway_order_id": data.razorpay_order_id},
            )

        if await self.order_repo.get_by_payment_id(data.razorpay_payment_id) is not None:
            raise PolicyViolation(
                "This payment has already been applied",
                context={"payment_id": data.razorpay_payment_id},
            )

        gateway_order = await self.gateway.fetch_order(data.razorpay_order_id)
        if gateway_order.amount != to_minor_units(data.total_amount):
            raise PolicyViolation(
                "Order total does not match the amount paid",
                context={
                    "gateway_order_id": data.razorpay_order_id,
                    "paid": gateway_order.amount,
                    "total": to_minor_units(data.total_amount),
                },
            )

        validate_item_windows(data.items, now)

        order = await self.order_repo.create(
            user_id=user_id,
            type=data.type,
            status=OrderStatus.PENDING.value,
            price=data.price if data.price is not None else data.total_amount,
            discount_amount=data.discount_amount,
            coupon_code=data.coupon_code,
            total_amount=data.total_amount,
            payment_status=PaymentStatus.PAID.value,
            payment_id=data.razorpay_payment_id,
            delivery_address=data.delivery_address.model_dump(),
            items=[item.model_dump() for item in data.items],
        )
        await self.session.commit()

        log_info(
            logger,
            "Order placed",
            order_id=str(order.id),
            user_id=str(user_id),
            order_type=data.type,
            total_amount=str(data.total_amount),
        )
        return order

    # ==================== Refunds ====================

    async def _refund(self, order: Order, amount: Decimal) -> RefundOutcome:
        """Refund ``amount`` of the order's payment if there is one to refund."""
        if amount <= 0 or order.payment_status != PaymentStatus.PAID.value or not order.payment_id:
            REFUNDS_TOTAL.labels(outcome="not_applicable").inc()
            return RefundOutcome(status="not_applicable", amount=Decimal("0"))

        try:
            result = await self.gateway.process_refund(order.payment_id, to_minor_units(amount))
        except GatewayError as e:
            if is_already_refunded(e):
                REFUNDS_TOTAL.labels(outcome="already_refunded").inc()
                log_info(logger, "Payment already refunded", order_id=str(order.id))
                return RefundOutcome(status="already_refunded", amount=amount)

            REFUNDS_TOTAL.labels(outcome="failed").inc()
            log_error(
                logger,
                "Refund failed",
                e,
                order_id=str(order.id),
                payment_id=order.payment_id,
                refund_amount=str(amount),
            )
            return RefundOutcome(status="failed", amount=amount, error=e.message)

        REFUNDS_TOTAL.labels(outcome="succeeded").inc()
        log_info(
            logger,
            "Refund processed",
            order_id=str(order.id),
            refund_id=result.refund_id,
            refund_amount=str(amount),
        )
        return RefundOutcome(status="refunded", amount=amount, refund_id=result.refund_id)

    def _apply_refund(self, order: Order, outcome: RefundOutcome) -> None:
        if outcome.succeeded:
            order.payment_status = PaymentStatus.REFUNDED.value
            order.refund_error = None
        elif outcome.status == "failed":
            order.payment_status = PaymentStatus.REFUND_FAILED.value
            order.refund_error = outcome.error

    # ==================== Cancellation ====================

    async def cancel_order(
        self,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> OrderChange:
        """Cancel the user's order, charging the cancellation fee.

        Cancelling a subscription's audit order also cancels the
        subscription.

        Raises:
            NotFoundError: Order missing or not owned
            PolicyViolation: Order already cancelled, rejected or upgraded
        """
        now = now or datetime.utcnow()
        order = await self.order_repo.get_by_id(order_id)
        if order is None or order.user_id != user_id:
            raise NotFoundError("Order not found", context={"order_id": str(order_id)})

        if order.status in CLOSED_STATUSES:
            raise PolicyViolation(
                "Cannot cancel this order",
                context={"order_id": str(order_id), "status": order.status},
            )

        fee, refund_amount = cancellation_fee(order, now)
        outcome = await self._refund(order, refund_amount)

        order.status = OrderStatus.CANCELLED.value
        order.cancellation_fee = fee
        order.refund_amount = refund_amount
        self._apply_refund(order, outcome)
        await self.order_repo.save(order)

        if order.subscription_id is not None:
            await self._cancel_linked_subscription(order.subscription_id)

        await self.session.commit()

        log_info(
            logger,
            "Order cancelled",
            order_id=str(order.id),
            cancellation_fee=str(fee),
            refund_amount=str(refund_amount),
            refund_status=outcome.status,
        )
        return OrderChange(order=order, refund=outcome)

    async def _cancel_linked_subscription(self, subscription_id: uuid.UUID) -> None:
        subscription = await self.subscription_repo.get_by_id(subscription_id)
        if subscription is None or not subscription.is_active:
            return
        subscription.status = SubscriptionStatus.CANCELLED.value
        await self.subscription_repo.save(subscription)
        await self.user_repo.clear_current_subscription_if(subscription.user_id, subscription.id)
        SUBSCRIPTION_TRANSITIONS_TOTAL.labels(transition="cancel").inc()
        log_info(
            logger,
            "Subscription cancelled with its order",
            subscription_id=str(subscription.id),
        )

    # ==================== Staff review ====================

    async def update_status(self, order_id: uuid.UUID, status: str) -> OrderChange:
        """Set an order's status. Rejecting an order refunds it in full."""
        status = getattr(status, "value", status)
        order = await self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", context={"order_id": str(order_id)})

        outcome = RefundOutcome(status="not_applicable", amount=Decimal("0"))

        if status == OrderStatus.REJECTED.value and order.status != OrderStatus.REJECTED.value:
            total = Decimal(order.total_amount or 0)
            order.refund_amount = total
            order.cancellation_fee = Decimal("0")
            if order.payment_status == PaymentStatus.PAID.value and order.payment_id:
                outcome = await self._refund(order, total)
                self._apply_refund(order, outcome)
            else:
                order.payment_status = PaymentStatus.REFUNDED.value

        previous = order.status
        order.status = status
        await self.order_repo.save(order)
        await self.session.commit()

        log_info(
            logger,
            "Order status updated",
            order_id=str(order.id),
            previous_status=previous,
            order_status=status,
            refund_status=outcome.status,
        )
        return OrderChange(order=order, refund=outcome)

    # ==================== Reads ====================

    async def list_mine(self, user_id: uuid.UUID) -> list[Order]:
        return await self.order_repo.list_by_user(user_id)

    async def list_all(self) -> list[Order]:
        return await self.order_repo.list_all()

    async def get_order(self, user: User, order_id: uuid.UUID) -> Order:
        """Get an order visible to ``user``: their own, or any for staff."""
        order = await self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", context={"order_id": str(order_id)})
        if order.user_id != user.id and not user.is_staff:
            raise AuthorizationError("Not authorized to view this order")
        return order

    async def stats(self, user_id: uuid.UUID) -> dict:
        """Count of the user's successful orders."""
        total = await self.order_repo.count_by_user_and_status(user_id, SUCCESSFUL_STATUSES)
        return {"total_successful_orders": total}
