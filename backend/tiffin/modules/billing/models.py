"""Billing models for meal plans and subscriptions.

A Subscription is created on successful payment (or a free switch) and is
never deleted; it only moves from Active to one of the terminal states.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from tiffin.core.database import Base
from tiffin.modules.auth.models import User


class PlanTier(str, Enum):
    """Service tiers, lowest first."""
    BASIC = "Basic"
    PREMIUM = "Premium"
    EXOTIC = "Exotic"


TIER_RANK = {
    PlanTier.BASIC.value: 1,
    PlanTier.PREMIUM.value: 2,
    PlanTier.EXOTIC.value: 3,
}


class PlanDuration(str, Enum):
    """Billing period of a plan."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


DURATION_RANK = {
    PlanDuration.MONTHLY.value: 1,
    PlanDuration.YEARLY.value: 2,
}


class MealType(str, Enum):
    """Meals covered by a subscription."""
    BOTH = "both"
    LUNCH = "lunch"
    DINNER = "dinner"


class SubscriptionStatus(str, Enum):
    """Subscription status values. Everything but ACTIVE is terminal."""
    ACTIVE = "Active"
    UPGRADED = "Upgraded"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class Plan(Base):
    """Purchasable meal plan. Price is for one full billing period."""

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration: Mapped[str] = mapped_column(
        String(20), default=PlanDuration.MONTHLY.value, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name={self.name}, duration={self.duration})>"

    @property
    def tier_rank(self) -> int:
        return TIER_RANK.get(self.name, 0)

    @property
    def duration_rank(self) -> int:
        return DURATION_RANK.get(self.duration, 0)


class Subscription(Base):
    """A user's subscription to a plan for one billing period.

    ``amount_paid`` is the cash actually collected for this period after any
    pro-rata credit. ``plan_value`` is the market price of the plan at the
    subscription's meal type and is re-snapshotted on meal-type changes.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("plans.id"), nullable=False
    )

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True
    )
    meal_type: Mapped[str] = mapped_column(
        String(10), default=MealType.BOTH.value, nullable=False
    )

    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    plan_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # {"street": ..., "city": ..., "zip": ...}
    lunch_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    dinner_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Set in Python so status changes and the delivery manifest agree on the clock
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    plan: Mapped["Plan"] = relationship("Plan")
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_window", "start_date", "end_date"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user={self.user_id}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE.value
