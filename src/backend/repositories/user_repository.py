"""Repository for User database operations."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User
from repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for user lookups."""

    model = User

    @classmethod
    async def find_active_by_id(
        cls, db: AsyncSession, user_id: UUID
    ) -> Optional[User]:
        """
        Find an active (non-revoked) user by ID.

        Args:
            db: Database session
            user_id: User UUID

        Returns:
            User or None if missing or revoked
        """
        stmt = select(User).where(User.id == user_id, User.is_active == True)  # noqa: E712
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
