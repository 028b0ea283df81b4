"""API router for one-off orders."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.config import settings
from tiffin.core.database import get_session
from tiffin.modules.auth.dependencies import get_current_user, require_staff
from tiffin.modules.auth.models import User
from tiffin.modules.order.schemas import (
    CancelOrderResponse,
    CheckoutRequest,
    CheckoutResponse,
    OrderCreate,
    OrderResponse,
    OrderStatsResponse,
    RefundInfo,
    UpdateStatusRequest,
    UpdateStatusResponse,
)
from tiffin.modules.order.service import OrderService, RefundOutcome
from tiffin.modules.payment_gateway import PaymentGatewayInterface, get_payment_gateway

router = APIRouter(prefix="/orders", tags=["orders"])


def _refund_info(outcome: RefundOutcome) -> RefundInfo:
    return RefundInfo(status=outcome.status, amount=outcome.amount, refund_id=outcome.refund_id)


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    data: CheckoutRequest,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Create a gateway order for the cart total."""
    service = OrderService(session, gateway)
    gateway_order = await service.checkout(data.amount)
    return CheckoutResponse(
        id=gateway_order.id,
        amount=gateway_order.amount,
        currency=gateway_order.currency,
        key_id=settings.RAZORPAY_KEY_ID,
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Place a paid single or event order."""
    service = OrderService(session, gateway)
    return await service.create_order(user.id, data)


@router.get("/myorders", response_model=list[OrderResponse])
async def list_my_orders(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """The caller's orders, newest first."""
    service = OrderService(session, gateway)
    return await service.list_mine(user.id)


@router.get("/my-stats", response_model=OrderStatsResponse)
async def get_my_stats(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    service = OrderService(session, gateway)
    return await service.stats(user.id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Get one order. Staff can read any order."""
    service = OrderService(session, gateway)
    return await service.get_order(user, order_id)


@router.put("/{order_id}/cancel", response_model=CancelOrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Cancel an order, refunding what the cancellation policy allows."""
    service = OrderService(session, gateway)
    change = await service.cancel_order(user.id, order_id)
    return CancelOrderResponse(
        message="Order cancelled",
        order=OrderResponse.model_validate(change.order),
        refund=_refund_info(change.refund),
        refund_error=change.order.refund_error,
    )


@router.put("/{order_id}/status", response_model=UpdateStatusResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: UpdateStatusRequest,
    _: User = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Confirm or reject an order. Rejection refunds the full amount."""
    service = OrderService(session, gateway)
    change = await service.update_status(order_id, data.status.value)
    return UpdateStatusResponse(
        order=OrderResponse.model_validate(change.order),
        refund_amount=change.order.refund_amount,
        refund=_refund_info(change.refund),
        refund_error=change.order.refund_error,
    )


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    _: User = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """List all orders."""
    service = OrderService(session, gateway)
    return await service.list_all()
