"""Pydantic schemas for orders."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from tiffin.modules.billing.schemas import Address, PaymentProof
from tiffin.modules.order.models import OrderStatus


# ==================== Checkout ====================

class CheckoutRequest(BaseModel):
    """Cart total to create a gateway order for, in rupees."""
    amount: Decimal = Field(..., gt=0)


class CheckoutResponse(BaseModel):
    id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key_id: Optional[str] = None


# ==================== Create ====================

class OrderItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(1, ge=1)
    price: Optional[Decimal] = None
    selected_items: Optional[Any] = None
    delivery_date: Optional[datetime] = None
    delivery_time: Optional[str] = Field(None, pattern=r"^\d{1,2}:\d{2}$")

    @field_validator("delivery_date")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class OrderCreate(PaymentProof):
    """A paid cart. The payment proof is checked before the order is stored."""
    items: list[OrderItemCreate]
    type: Literal["single", "event"]
    total_amount: Decimal = Field(..., ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    coupon_code: Optional[str] = Field(None, max_length=50)
    delivery_address: Address


class UpdateStatusRequest(BaseModel):
    status: OrderStatus


# ==================== Responses ====================

class OrderItemResponse(BaseModel):
    id: uuid.UUID
    name: str
    quantity: int
    price: Optional[Decimal] = None
    selected_items: Optional[Any] = None
    delivery_date: Optional[datetime] = None
    delivery_time: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    subscription_id: Optional[uuid.UUID] = None
    type: str
    status: str
    price: Decimal
    discount_amount: Decimal
    coupon_code: Optional[str] = None
    pro_rata_credit: Decimal
    total_amount: Decimal
    payment_status: str
    payment_id: Optional[str] = None
    delivery_address: Optional[dict[str, Any]] = None
    cancellation_fee: Decimal
    refund_amount: Decimal
    refund_error: Optional[str] = None
    items: list[OrderItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RefundInfo(BaseModel):
    """Outcome of a refund attempt."""
    status: Literal["refunded", "already_refunded", "failed", "not_applicable"]
    amount: Decimal
    refund_id: Optional[str] = None


class CancelOrderResponse(BaseModel):
    message: str
    order: OrderResponse
    refund: RefundInfo
    refund_error: Optional[str] = None


class UpdateStatusResponse(BaseModel):
    order: OrderResponse
    refund_amount: Decimal
    refund: Optional[RefundInfo] = None
    refund_error: Optional[str] = None


class OrderStatsResponse(BaseModel):
    total_successful_orders: int
