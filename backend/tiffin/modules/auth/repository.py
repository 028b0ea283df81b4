"""Repository for user lookups and the current-subscription pointer."""

import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.modules.auth.models import User


class UserRepository:
    """Repository for user operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get user by ID."""
        result = await self.session.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def set_current_subscription(
        self,
        user_id: uuid.UUID,
        subscription_id: Optional[uuid.UUID],
    ) -> None:
        """Point the user at a subscription (or clear the pointer)."""
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(current_subscription_id=subscription_id)
        )
        await self.session.flush()

    async def clear_current_subscription_if(
        self,
        user_id: uuid.UUID,
        subscription_id: uuid.UUID,
    ) -> bool:
        """Clear the pointer only if it currently references ``subscription_id``."""
        result = await self.session.execute(
            update(User)
            .where(
                User.id == user_id,
                User.current_subscription_id == subscription_id,
            )
            .values(current_subscription_id=None)
        )
        await self.session.flush()
        return result.rowcount > 0
