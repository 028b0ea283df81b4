"""Pydantic schemas for delivery pauses and the dispatch manifest."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from tiffin.modules.delivery.models import PauseDisplayState


class PauseCreate(BaseModel):
    """Dates are parsed by the service so bad input maps to a 400."""
    subscription_id: uuid.UUID
    start_date: str = Field(..., description="YYYY-MM-DD")
    end_date: str = Field(..., description="YYYY-MM-DD")


class PauseResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    subscription_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    pause_days: int
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class PauseListItem(PauseResponse):
    display_state: PauseDisplayState


class PauseCancelResponse(BaseModel):
    message: str
    pause: PauseResponse


class ManifestEntry(BaseModel):
    """One delivery on the manifest."""
    id: uuid.UUID
    type: str = Field(..., description="Subscription, Single Order or Event Order")
    customer_name: str
    phone: Optional[str] = None
    lunch_address: Optional[dict[str, Any]] = None
    dinner_address: Optional[dict[str, Any]] = None
    address: Optional[dict[str, Any]] = None
    meal_type: str
    items: list[str]
    quantity: int


class DeliveryScheduleResponse(BaseModel):
    Basic: list[ManifestEntry] = []
    Premium: list[ManifestEntry] = []
    Exotic: list[ManifestEntry] = []
    Events: list[ManifestEntry] = []
