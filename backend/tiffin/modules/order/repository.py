"""Repository for order database operations."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tiffin.modules.order.models import Order, OrderItem, OrderStatus, OrderType, PaymentStatus


class OrderRepository:
    """Repository for order operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, items: Optional[list[dict]] = None, **kwargs) -> Order:
        """Create an order with its line items."""
        order = Order(**kwargs)
        order.items = [
            OrderItem(position=position, **item)
            for position, item in enumerate(items or [])
        ]
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """Get order by ID with its customer."""
        result = await self.session.execute(
            select(Order)
            .options(selectinload(Order.user))
            .where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        """Get the order a gateway payment was recorded on."""
        result = await self.session.execute(
            select(Order).where(Order.payment_id == payment_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> list[Order]:
        """Get a user's orders, newest first."""
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[Order]:
        """Get all orders with their customers, newest first."""
        result = await self.session.execute(
            select(Order)
            .options(selectinload(Order.user))
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_by_user_and_status(self, user_id: uuid.UUID, statuses: list[str]) -> int:
        """Count a user's orders in any of ``statuses``."""
        result = await self.session.execute(
            select(func.count(Order.id)).where(
                Order.user_id == user_id,
                Order.status.in_(statuses),
            )
        )
        return result.scalar() or 0

    async def bulk_update_status_by_subscription(
        self,
        subscription_id: uuid.UUID,
        status: str,
    ) -> int:
        """Set the status of every order tied to a subscription.

        Returns:
            Number of orders updated
        """
        result = await self.session.execute(
            update(Order)
            .where(Order.subscription_id == subscription_id)
            .values(status=status, updated_at=datetime.utcnow())
        )
        await self.session.flush()
        return result.rowcount

    async def list_deliverable_between(self, start: datetime, end: datetime) -> list[Order]:
        """Confirmed, paid one-off orders with an item delivered in [start, end]."""
        dated_item = (
            select(OrderItem.order_id)
            .where(OrderItem.delivery_date >= start, OrderItem.delivery_date <= end)
        )
        result = await self.session.execute(
            select(Order)
            .options(selectinload(Order.user))
            .where(
                Order.status == OrderStatus.CONFIRMED.value,
                Order.payment_status == PaymentStatus.PAID.value,
                Order.type.in_([OrderType.SINGLE.value, OrderType.EVENT.value]),
                Order.id.in_(dated_item),
            )
            .order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def save(self, order: Order) -> Order:
        """Flush pending changes to an order."""
        await self.session.flush()
        return order
