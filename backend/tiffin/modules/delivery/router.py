"""API routers for delivery pauses and the admin delivery schedule."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.database import get_session
from tiffin.core.exceptions import ValidationError
from tiffin.modules.auth.dependencies import get_current_user, require_admin
from tiffin.modules.auth.models import User
from tiffin.modules.delivery.pause_service import DeliveryPauseService, parse_day
from tiffin.modules.delivery.schedule_service import DeliveryScheduleService
from tiffin.modules.delivery.schemas import (
    DeliveryScheduleResponse,
    PauseCancelResponse,
    PauseCreate,
    PauseListItem,
    PauseResponse,
)

pause_router = APIRouter(prefix="/delivery-pauses", tags=["delivery-pauses"])
schedule_router = APIRouter(prefix="/admin/delivery-schedule", tags=["admin"])


@pause_router.post("", response_model=PauseResponse, status_code=status.HTTP_201_CREATED)
async def create_pause(
    data: PauseCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Pause deliveries of an Active subscription for a date range."""
    service = DeliveryPauseService(session)
    return await service.create_pause(user.id, data.subscription_id, data.start_date, data.end_date)


@pause_router.get("", response_model=list[PauseListItem])
async def list_my_pauses(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List the caller's pauses, latest first."""
    service = DeliveryPauseService(session)
    views = await service.list_pauses(user.id)
    return [
        PauseListItem(
            **PauseResponse.model_validate(view.pause).model_dump(),
            display_state=view.state,
        )
        for view in views
    ]


@pause_router.put("/{pause_id}/cancel", response_model=PauseCancelResponse)
async def cancel_pause(
    pause_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Cancel a pause that has not started."""
    service = DeliveryPauseService(session)
    pause = await service.cancel_pause(user.id, pause_id)
    return PauseCancelResponse(
        message="Pause cancelled successfully",
        pause=PauseResponse.model_validate(pause),
    )


@schedule_router.get("", response_model=DeliveryScheduleResponse)
async def get_delivery_schedule(
    date: Optional[str] = Query(None, description="Day to build the manifest for, YYYY-MM-DD"),
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Dispatch manifest for a day grouped by tier."""
    if not date:
        raise ValidationError("Date is required")
    day = parse_day(date).date()
    service = DeliveryScheduleService(session)
    return await service.get_schedule(day)
