"""Order models."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tiffin.core.database import Base
from tiffin.modules.auth.models import User


class OrderStatus(str, Enum):
    """Order status values."""
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    UPGRADED = "Upgraded"


class OrderType(str, Enum):
    """Kinds of order."""
    SINGLE = "single"
    EVENT = "event"
    SUBSCRIPTION_PURCHASE = "subscription_purchase"
    SUBSCRIPTION_UPGRADE = "subscription_upgrade"


class PaymentStatus(str, Enum):
    """Payment status of an order."""
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    REFUND_FAILED = "Refund Failed"


# Orders in these states can no longer be cancelled by their owner
CLOSED_STATUSES = (
    OrderStatus.CANCELLED.value,
    OrderStatus.REJECTED.value,
    OrderStatus.UPGRADED.value,
)


class Order(Base):
    """A paid order.

    ``price`` is the pre-discount amount; ``total_amount`` is what was
    charged after discount and pro-rata credit.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, nullable=False, index=True
    )

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pro_rata_credit: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    delivery_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    cancellation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    refund_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.position",
    )
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, type={self.type}, status={self.status})>"


class OrderItem(Base):
    """Line item of an order."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    # Free-form selection detail, e.g. {"name": "Dal, Rice", "planType": "Premium"}
    selected_items: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    delivery_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # "HH:MM"

    order: Mapped["Order"] = relationship("Order", back_populates="items")
