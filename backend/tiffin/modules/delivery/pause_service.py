"""Delivery pause scheduling.

A pause skips every delivery of a subscription from its start day to its
end day inclusive. Pauses start tomorrow at the earliest, stay inside the
subscription period and never overlap another Active pause on the same
subscription.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.core.exceptions import NotFoundError, PolicyViolation, ValidationError
from tiffin.core.logging import log_info
from tiffin.modules.billing.repository import SubscriptionRepository
from tiffin.modules.delivery.models import DeliveryPause, PauseDisplayState, PauseStatus
from tiffin.modules.delivery.repository import DeliveryPauseRepository

logger = logging.getLogger(__name__)

DateInput = Union[str, date, datetime]


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_day(value: Optional[DateInput]) -> datetime:
    """Parse a date or ISO timestamp and normalize it to midnight.

    Raises:
        ValidationError: If the value is missing or not a date
    """
    if value is None or value == "":
        raise ValidationError("Please provide a start date and an end date")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError("Invalid date format", context={"value": str(value)}) from None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return start_of_day(parsed)


def count_pause_days(start: datetime, end: datetime) -> int:
    """Days covered by a pause, both ends included."""
    return math.ceil(abs(end - start) / timedelta(days=1)) + 1


def display_state(pause: DeliveryPause, now: datetime) -> PauseDisplayState:
    """State shown for a pause at ``now``."""
    if pause.status == PauseStatus.CANCELLED.value:
        return PauseDisplayState.CANCELLED
    today = start_of_day(now)
    if today < start_of_day(pause.start_date):
        return PauseDisplayState.SCHEDULED
    if today <= start_of_day(pause.end_date):
        return PauseDisplayState.IN_PROGRESS
    return PauseDisplayState.COMPLETED


@dataclass
class PauseView:
    pause: DeliveryPause
    state: PauseDisplayState


class DeliveryPauseService:
    """Service for creating, cancelling and listing delivery pauses."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.pause_repo = DeliveryPauseRepository(session)
        self.subscription_repo = SubscriptionRepository(session)

    async def create_pause(
        self,
        user_id: uuid.UUID,
        subscription_id: uuid.UUID,
        start_date: DateInput,
        end_date: DateInput,
        now: Optional[datetime] = None,
    ) -> DeliveryPause:
        """Schedule a pause on one of the user's Active subscriptions.

        Raises:
            ValidationError: Bad dates, start before tomorrow, end before start
                or end past the subscription end
            NotFoundError: Subscription missing, not owned or not Active
            PolicyViolation: Overlaps an existing Active pause
        """
        now = now or datetime.utcnow()
        start = parse_day(start_date)
        end = parse_day(end_date)
        tomorrow = start_of_day(now) + timedelta(days=1)

        if start < tomorrow:
            raise ValidationError("Start date must be at least tomorrow")
        if end < start:
            raise ValidationError("End date must be after or same as start date")

        subscription = await self.subscription_repo.get_by_id(subscription_id)
        if subscription is None or subscription.user_id != user_id or not subscription.is_active:
            raise NotFoundError(
                "Active subscription not found",
                context={"subscription_id": str(subscription_id)},
            )

        if end > subscription.end_date:
            raise ValidationError("Pause period cannot exceed subscription end date")

        overlapping = await self.pause_repo.find_overlapping(subscription_id, start, end)
        if overlapping is not None:
            raise PolicyViolation(
                "You already have a pause scheduled during this period",
                context={"pause_id": str(overlapping.id)},
            )

        pause = await self.pause_repo.create(
            user_id=user_id,
            subscription_id=subscription_id,
            start_date=start,
            end_date=end,
            pause_days=count_pause_days(start, end),
            status=PauseStatus.ACTIVE.value,
        )
        await self.session.commit()

        log_info(
            logger,
            "Delivery pause created",
            pause_id=str(pause.id),
            subscription_id=str(subscription_id),
            start_date=start.date().isoformat(),
            end_date=end.date().isoformat(),
            pause_days=pause.pause_days,
        )
        return pause

    async def cancel_pause(
        self,
        user_id: uuid.UUID,
        pause_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> DeliveryPause:
        """Cancel a pause that has not started yet.

        Raises:
            NotFoundError: Pause missing or not owned
            PolicyViolation: Pause not Active, or it starts today or earlier
        """
        now = now or datetime.utcnow()
        pause = await self.pause_repo.get_by_id(pause_id)
        if pause is None or pause.user_id != user_id:
            raise NotFoundError("Pause request not found", context={"pause_id": str(pause_id)})

        if pause.status != PauseStatus.ACTIVE.value:
            raise PolicyViolation("Pause is already cancelled or expired")

        if start_of_day(now) >= start_of_day(pause.start_date):
            raise PolicyViolation("Cannot cancel a pause that has already started or is today")

        pause.status = PauseStatus.CANCELLED.value
        await self.pause_repo.save(pause)
        await self.session.commit()

        log_info(logger, "Delivery pause cancelled", pause_id=str(pause.id))
        return pause

    async def list_pauses(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> list[PauseView]:
        """The user's pauses, latest start first, with their display state."""
        now = now or datetime.utcnow()
        pauses = await self.pause_repo.list_by_user(user_id)
        return [PauseView(pause=p, state=display_state(p, now)) for p in pauses]
