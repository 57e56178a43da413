"""
Base repository with generic CRUD operations.

Provides reusable database operations that can be inherited by specific repositories.
"""
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

# Type variable for the model class
ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common CRUD operations.

    Usage:
        class UserRepository(BaseRepository[User]):
            model = User
    """

    model: Type[ModelType] = None

    @classmethod
    def _apply_filters(cls, stmt, filters: Optional[Dict[str, Any]]):
        """Apply equality filters, skipping None values."""
        if filters:
            for field, value in filters.items():
                if value is not None:
                    stmt = stmt.where(getattr(cls.model, field) == value)
        return stmt

    @classmethod
    async def find_by_id(
        cls,
        db: AsyncSession,
        id_value: Any,
        *,
        populate_existing: bool = True,
    ) -> Optional[ModelType]:
        """
        Find a single record by ID.

        Args:
            db: Database session
            id_value: The ID value to search for
            populate_existing: Overwrite any copy already in the session identity
                map with the row as it is now stored

        Returns:
            Model instance or None if not found
        """
        stmt = select(cls.model).where(cls.model.id == id_value)
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)

        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @classmethod
    async def find_one(
        cls,
        db: AsyncSession,
        *,
        filters: Dict[str, Any],
    ) -> Optional[ModelType]:
        """
        Find a single record matching filters.

        Args:
            db: Database session
            filters: Dictionary of field:value filters

        Returns:
            Model instance or None if not found
        """
        stmt = cls._apply_filters(select(cls.model), filters)
        stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @classmethod
    async def find_paginated(
        cls,
        db: AsyncSession,
        *,
        page: int = 1,
        per_page: int = 20,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Any] = None
    ) -> Tuple[List[ModelType], int]:
        """
        Find records with pagination and total count.

        Args:
            db: Database session
            page: Page number (1-indexed)
            per_page: Items per page
            filters: Dictionary of field:value filters
            order_by: Column(s) to order by

        Returns:
            Tuple of (list of records, total count)
        """
        stmt = cls._apply_filters(select(cls.model), filters)
        count_stmt = cls._apply_filters(select(func.count(cls.model.id)), filters)

        count_result = await db.execute(count_stmt)
        total = count_result.scalar() or 0

        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                stmt = stmt.order_by(*order_by)
            else:
                stmt = stmt.order_by(order_by)

        offset = (page - 1) * per_page
        stmt = stmt.offset(offset).limit(per_page).execution_options(populate_existing=True)

        result = await db.execute(stmt)
        items = list(result.scalars().all())

        return items, total

    @classmethod
    async def count(
        cls,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Count records matching filters.

        Args:
            db: Database session
            filters: Dictionary of field:value filters

        Returns:
            Count of matching records
        """
        stmt = cls._apply_filters(select(func.count(cls.model.id)), filters)
        result = await db.execute(stmt)
        return result.scalar() or 0

    @classmethod
    async def create(
        cls,
        db: AsyncSession,
        *,
        obj_in: Dict[str, Any],
        commit: bool = True
    ) -> ModelType:
        """
        Create a new record.

        Args:
            db: Database session
            obj_in: Dictionary of field values
            commit: Whether to commit immediately

        Returns:
            Created model instance
        """
        db_obj = cls.model(**obj_in)
        db.add(db_obj)

        if commit:
            await db.commit()
            await db.refresh(db_obj)
        else:
            await db.flush()

        return db_obj
