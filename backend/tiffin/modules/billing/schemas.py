"""Pydantic schemas for plans and subscriptions."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from tiffin.modules.billing.models import MealType


# ==================== Shared ====================

class Address(BaseModel):
    """Delivery address."""
    street: str = Field(..., min_length=1, max_length=80)
    city: str = Field(..., min_length=1, max_length=30)
    zip: str = Field(..., min_length=1, max_length=10)


class PaymentProof(BaseModel):
    """Values returned by the checkout widget after payment."""
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


# ==================== Plans ====================

class PlanResponse(BaseModel):
    """Plan as shown to customers."""
    id: uuid.UUID
    name: str
    price: Decimal
    duration: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


# ==================== Subscription requests ====================

class SubscribeRequest(BaseModel):
    """Buy a plan, or upgrade to it when already subscribed."""
    plan_id: uuid.UUID
    meal_type: MealType = MealType.BOTH
    lunch_address: Optional[Address] = None
    dinner_address: Optional[Address] = None


class SubscribeVerifyRequest(SubscribeRequest, PaymentProof):
    """Payment proof plus the selection it paid for."""
    pass


class RenewRequest(BaseModel):
    """Renew an existing subscription on the same plan and meal type."""
    subscription_id: uuid.UUID


class RenewVerifyRequest(RenewRequest, PaymentProof):
    pass


class CancelSubscriptionRequest(BaseModel):
    subscription_id: uuid.UUID


class ChangeMealTypeRequest(BaseModel):
    meal_type: MealType


class UpdateAddressesRequest(BaseModel):
    lunch_address: Optional[Address] = None
    dinner_address: Optional[Address] = None


# ==================== Subscription responses ====================

class SubscriptionResponse(BaseModel):
    """Subscription details."""
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID
    plan: Optional[PlanResponse] = None
    start_date: datetime
    end_date: datetime
    status: str
    meal_type: str
    amount_paid: Decimal
    plan_value: Decimal
    payment_id: Optional[str] = None
    lunch_address: Optional[Address] = None
    dinner_address: Optional[Address] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QuoteResponse(BaseModel):
    """Price breakdown for a subscribe, upgrade or renewal."""
    plan_id: uuid.UUID
    meal_type: MealType
    price: Decimal = Field(..., description="Plan price at the selected meal type")
    credit: Decimal = Field(..., description="Pro-rata credit from the current subscription")
    payable: Decimal = Field(..., description="Amount to be charged")
    current_subscription_id: Optional[uuid.UUID] = None


class CheckoutResponse(BaseModel):
    """Result of an init call.

    When ``free_switch`` is true the subscription was activated without a
    payment and ``subscription`` is set; otherwise the gateway order fields
    are set and the client must complete payment and call verify.
    """
    quote: QuoteResponse
    free_switch: bool = False
    order_id: Optional[str] = None
    amount: Optional[int] = Field(None, description="Gateway order amount in paise")
    currency: Optional[str] = None
    key_id: Optional[str] = None
    subscription: Optional[SubscriptionResponse] = None


class ActivationResponse(BaseModel):
    """Subscription created by a verify call or a free switch."""
    message: str
    subscription: SubscriptionResponse
    order_id: uuid.UUID


class AvailableUpgrade(BaseModel):
    """A plan the user may move to, with its quoted price."""
    plan: PlanResponse
    meal_type: MealType
    price: Decimal
    credit: Decimal
    payable: Decimal


class AvailableUpgradesResponse(BaseModel):
    current_subscription: Optional[SubscriptionResponse] = None
    available_upgrades: list[AvailableUpgrade]


class CreditPreviewResponse(BaseModel):
    """Credit the current subscription would contribute right now."""
    subscription_id: uuid.UUID
    credit: Decimal
    remaining_days: int
    total_days: int


class MessageSubscriptionResponse(BaseModel):
    message: str
    subscription: SubscriptionResponse


class ProcessExpiredResponse(BaseModel):
    expired_count: int
