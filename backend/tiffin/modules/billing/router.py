"""API routers for plans and subscriptions."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.config import settings
from tiffin.core.database import get_session
from tiffin.modules.auth.dependencies import get_current_user, require_admin
from tiffin.modules.auth.models import User
from tiffin.modules.billing.schemas import (
    ActivationResponse,
    AvailableUpgrade,
    AvailableUpgradesResponse,
    CancelSubscriptionRequest,
    ChangeMealTypeRequest,
    CheckoutResponse,
    CreditPreviewResponse,
    MessageSubscriptionResponse,
    PlanResponse,
    ProcessExpiredResponse,
    QuoteResponse,
    RenewRequest,
    RenewVerifyRequest,
    SubscribeRequest,
    SubscribeVerifyRequest,
    SubscriptionResponse,
    UpdateAddressesRequest,
)
from tiffin.modules.billing.service import Checkout, Quote, SubscriptionService
from tiffin.modules.payment_gateway import PaymentGatewayInterface, get_payment_gateway

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])
plans_router = APIRouter(prefix="/plans", tags=["plans"])


def _address(address) -> dict | None:
    return address.model_dump() if address is not None else None


def _quote_response(quote: Quote) -> QuoteResponse:
    return QuoteResponse(
        plan_id=quote.plan.id,
        meal_type=quote.meal_type,
        price=quote.price,
        credit=quote.credit,
        payable=quote.payable,
        current_subscription_id=quote.current.id if quote.current else None,
    )


def _checkout_response(checkout: Checkout) -> CheckoutResponse:
    response = CheckoutResponse(quote=_quote_response(checkout.quote))
    if checkout.free_switch:
        response.free_switch = True
        response.subscription = SubscriptionResponse.model_validate(checkout.subscription)
    else:
        response.order_id = checkout.gateway_order.id
        response.amount = checkout.gateway_order.amount
        response.currency = checkout.gateway_order.currency
        response.key_id = settings.RAZORPAY_KEY_ID
    return response


# ==================== Plans ====================

@plans_router.get("", response_model=list[PlanResponse])
async def list_plans(
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """List all plans."""
    service = SubscriptionService(session, gateway)
    return await service.list_plans()


# ==================== Subscribe / upgrade ====================

@router.post("", response_model=CheckoutResponse)
async def subscribe_init(
    data: SubscribeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Quote a plan and create the gateway order to pay for it.

    If the user is already subscribed this is an upgrade and the unused
    days of the current subscription are credited.
    """
    service = SubscriptionService(session, gateway)
    checkout = await service.init_subscribe(
        user.id,
        data.plan_id,
        data.meal_type.value,
        _address(data.lunch_address),
        _address(data.dinner_address),
    )
    return _checkout_response(checkout)


@router.post("/verify", response_model=ActivationResponse, status_code=status.HTTP_201_CREATED)
async def subscribe_verify(
    data: SubscribeVerifyRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Verify the payment and activate the subscription."""
    service = SubscriptionService(session, gateway)
    activation = await service.verify_subscribe(
        user.id,
        data.plan_id,
        data.meal_type.value,
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
        _address(data.lunch_address),
        _address(data.dinner_address),
    )
    return ActivationResponse(
        message="Subscription activated",
        subscription=SubscriptionResponse.model_validate(activation.subscription),
        order_id=activation.order_id,
    )


@router.post("/upgrade-init", response_model=CheckoutResponse)
async def upgrade_init(
    data: SubscribeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Start an upgrade of the Active subscription."""
    service = SubscriptionService(session, gateway)
    checkout = await service.init_upgrade(
        user.id,
        data.plan_id,
        data.meal_type.value,
        _address(data.lunch_address),
        _address(data.dinner_address),
    )
    return _checkout_response(checkout)


@router.post("/upgrade-verify", response_model=ActivationResponse, status_code=status.HTTP_201_CREATED)
async def upgrade_verify(
    data: SubscribeVerifyRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Verify an upgrade payment and switch to the new plan."""
    service = SubscriptionService(session, gateway)
    activation = await service.verify_subscribe(
        user.id,
        data.plan_id,
        data.meal_type.value,
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
        _address(data.lunch_address),
        _address(data.dinner_address),
        require_current=True,
    )
    return ActivationResponse(
        message="Subscription upgraded successfully",
        subscription=SubscriptionResponse.model_validate(activation.subscription),
        order_id=activation.order_id,
    )


# ==================== Renewal ====================

@router.post("/renew-init", response_model=CheckoutResponse)
async def renew_init(
    data: RenewRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Start renewing a subscription on the same plan and meal type."""
    service = SubscriptionService(session, gateway)
    return _checkout_response(await service.init_renew(user.id, data.subscription_id))


@router.post("/renew-verify", response_model=ActivationResponse, status_code=status.HTTP_201_CREATED)
async def renew_verify(
    data: RenewVerifyRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Verify a renewal payment."""
    service = SubscriptionService(session, gateway)
    activation = await service.verify_renew(
        user.id,
        data.subscription_id,
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
    )
    return ActivationResponse(
        message="Subscription renewed successfully",
        subscription=SubscriptionResponse.model_validate(activation.subscription),
        order_id=activation.order_id,
    )


# ==================== Changes ====================

@router.post("/cancel", response_model=MessageSubscriptionResponse)
async def cancel_subscription(
    data: CancelSubscriptionRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Cancel the Active subscription. No refund is issued."""
    service = SubscriptionService(session, gateway)
    subscription = await service.cancel(user.id, data.subscription_id)
    return MessageSubscriptionResponse(
        message="Subscription cancelled successfully",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.put("/change-meal-type", response_model=MessageSubscriptionResponse)
async def change_meal_type(
    data: ChangeMealTypeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Switch meal type on the Active subscription (no refund)."""
    service = SubscriptionService(session, gateway)
    subscription = await service.change_meal_type(user.id, data.meal_type.value)
    return MessageSubscriptionResponse(
        message=f"Meal type updated to {subscription.meal_type}. No refund applied.",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.put("/update-addresses", response_model=MessageSubscriptionResponse)
async def update_addresses(
    data: UpdateAddressesRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Replace delivery addresses on the Active subscription."""
    service = SubscriptionService(session, gateway)
    subscription = await service.update_addresses(
        user.id, _address(data.lunch_address), _address(data.dinner_address)
    )
    return MessageSubscriptionResponse(
        message="Addresses updated",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


# ==================== Reads ====================

@router.get("/me", response_model=SubscriptionResponse)
async def get_my_subscription(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Get the caller's Active subscription."""
    service = SubscriptionService(session, gateway)
    return await service.get_my_subscription(user.id)


@router.get("/available-upgrades", response_model=AvailableUpgradesResponse)
async def get_available_upgrades(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Plans the caller can move to, with quoted prices."""
    service = SubscriptionService(session, gateway)
    current, quotes = await service.available_upgrades(user.id)
    return AvailableUpgradesResponse(
        current_subscription=SubscriptionResponse.model_validate(current) if current else None,
        available_upgrades=[
            AvailableUpgrade(
                plan=PlanResponse.model_validate(q.plan),
                meal_type=q.meal_type,
                price=q.price,
                credit=q.credit,
                payable=q.payable,
            )
            for q in quotes
        ],
    )


@router.get("/credit-preview", response_model=CreditPreviewResponse)
async def get_credit_preview(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Credit the caller's Active subscription is worth now."""
    service = SubscriptionService(session, gateway)
    return await service.credit_preview(user.id)


# ==================== Admin ====================

@router.get("", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """List all subscriptions."""
    service = SubscriptionService(session, gateway)
    return await service.list_all()


@router.put("/{subscription_id}/cancel", response_model=MessageSubscriptionResponse)
async def admin_cancel_subscription(
    subscription_id: uuid.UUID,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Cancel any Active subscription."""
    service = SubscriptionService(session, gateway)
    subscription = await service.admin_cancel(subscription_id)
    return MessageSubscriptionResponse(
        message="Subscription cancelled by admin",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.post("/process-expired", response_model=ProcessExpiredResponse)
async def process_expired_subscriptions(
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
):
    """Expire Active subscriptions whose period has ended."""
    service = SubscriptionService(session, gateway)
    return ProcessExpiredResponse(expired_count=await service.expire_lapsed())
