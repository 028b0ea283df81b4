"""Delivery models: pauses and daily menus."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tiffin.core.database import Base


class PauseStatus(str, Enum):
    """Stored pause status."""
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


class PauseDisplayState(str, Enum):
    """Pause state shown to customers; derived, never stored."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryPause(Base):
    """A run of days on which a subscription's deliveries are skipped.

    Both dates are midnight and inclusive.
    """

    __tablename__ = "delivery_pauses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    pause_days: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PauseStatus.ACTIVE.value, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<DeliveryPause(id={self.id}, {self.start_date:%Y-%m-%d}..{self.end_date:%Y-%m-%d}, status={self.status})>"


class Menu(Base):
    """Menu served to one plan tier on one day."""

    __tablename__ = "menus"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    plan_type: Mapped[str] = mapped_column(String(50), nullable=False)
    lunch_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    dinner_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("date", "plan_type", name="uq_menus_date_plan_type"),
    )
