"""Repositories for delivery pauses and menus."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.modules.delivery.models import DeliveryPause, Menu, PauseStatus


class DeliveryPauseRepository:
    """Repository for delivery pause operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, pause_id: uuid.UUID) -> Optional[DeliveryPause]:
        result = await self.session.execute(
            select(DeliveryPause).where(DeliveryPause.id == pause_id)
        )
        return result.scalar_one_or_none()

    async def find_overlapping(
        self,
        subscription_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> Optional[DeliveryPause]:
        """First Active pause on the subscription touching [start, end], boundaries included."""
        result = await self.session.execute(
            select(DeliveryPause)
            .where(
                DeliveryPause.subscription_id == subscription_id,
                DeliveryPause.status == PauseStatus.ACTIVE.value,
                DeliveryPause.start_date <= end,
                DeliveryPause.end_date >= start,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> list[DeliveryPause]:
        """A user's pauses, latest start first."""
        result = await self.session.execute(
            select(DeliveryPause)
            .where(DeliveryPause.user_id == user_id)
            .order_by(DeliveryPause.start_date.desc())
        )
        return list(result.scalars().all())

    async def list_active_between(self, start: datetime, end: datetime) -> list[DeliveryPause]:
        """Active pauses covering any part of [start, end]."""
        result = await self.session.execute(
            select(DeliveryPause).where(
                DeliveryPause.status == PauseStatus.ACTIVE.value,
                DeliveryPause.start_date <= end,
                DeliveryPause.end_date >= start,
            )
        )
        return list(result.scalars().all())

    async def create(self, **kwargs) -> DeliveryPause:
        pause = DeliveryPause(**kwargs)
        self.session.add(pause)
        await self.session.flush()
        return pause

    async def save(self, pause: DeliveryPause) -> DeliveryPause:
        await self.session.flush()
        return pause


class MenuRepository:
    """Read access to daily menus."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_between(self, start: datetime, end: datetime) -> list[Menu]:
        """Menus dated within [start, end]."""
        result = await self.session.execute(
            select(Menu).where(Menu.date >= start, Menu.date <= end)
        )
        return list(result.scalars().all())
