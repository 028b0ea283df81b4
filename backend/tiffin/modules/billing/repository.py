"""Repository for plan and subscription database operations."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tiffin.modules.billing.models import Plan, Subscription, SubscriptionStatus


class PlanRepository:
    """Repository for plan operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> list[Plan]:
        """Get all plans, cheapest first."""
        result = await self.session.execute(select(Plan).order_by(Plan.price))
        return list(result.scalars().all())

    async def get_by_id(self, plan_id: uuid.UUID) -> Optional[Plan]:
        """Get plan by ID."""
        result = await self.session.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_by_name_and_duration(self, name: str, duration: str) -> Optional[Plan]:
        """Get plan by tier name and billing period."""
        result = await self.session.execute(
            select(Plan).where(Plan.name == name, Plan.duration == duration)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> Plan:
        """Create a new plan."""
        plan = Plan(**kwargs)
        self.session.add(plan)
        await self.session.flush()
        return plan


class SubscriptionRepository:
    """Repository for subscription operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, subscription_id: uuid.UUID) -> Optional[Subscription]:
        """Get subscription by ID with its plan."""
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(Subscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_active_for_user(self, user_id: uuid.UUID) -> Optional[Subscription]:
        """Get the user's Active subscription, if any."""
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> Subscription:
        """Create a new subscription."""
        subscription = Subscription(**kwargs)
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def get_by_payment_id(self, payment_id: str) -> Optional[Subscription]:
        """Get the subscription a gateway payment was applied to."""
        result = await self.session.execute(
            select(Subscription).where(Subscription.payment_id == payment_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def save(self, subscription: Subscription) -> Subscription:
        """Flush pending changes to a subscription."""
        await self.session.flush()
        return subscription

    async def list_all(self) -> list[Subscription]:
        """Get every subscription with its user and plan, newest first."""
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.user), selectinload(Subscription.plan))
            .order_by(Subscription.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_lapsed(self, now: datetime) -> list[Subscription]:
        """Active subscriptions whose end date has passed."""
        result = await self.session.execute(
            select(Subscription).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date < now,
            )
        )
        return list(result.scalars().all())

    async def list_serving_between(self, start: datetime, end: datetime) -> list[Subscription]:
        """Subscriptions whose window covers [start, end].

        Includes subscriptions that have since left Active, as long as the
        status change happened on or after ``start``, so past days can be
        rebuilt.
        """
        closed = [
            SubscriptionStatus.CANCELLED.value,
            SubscriptionStatus.UPGRADED.value,
            SubscriptionStatus.EXPIRED.value,
        ]
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.user), selectinload(Subscription.plan))
            .where(
                Subscription.start_date <= end,
                Subscription.end_date >= start,
                or_(
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                    and_(
                        Subscription.status.in_(closed),
                        Subscription.updated_at >= start,
                    ),
                ),
            )
        )
        return list(result.scalars().all())
