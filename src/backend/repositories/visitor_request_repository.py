"""Repository for VisitorRequest database operations."""

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import VisitorRequestStatus
from db.models import VisitorRequest, utc_now
from repositories.base_repository import BaseRepository


class VisitorRequestRepository(BaseRepository[VisitorRequest]):
    """Repository for visitor request operations.

    Status changes only go through conditional updates keyed on the status
    the caller last observed, so two writers can never both win.
    """

    model = VisitorRequest

    @classmethod
    async def conditional_update(
        cls,
        db: AsyncSession,
        request_id: UUID,
        expected_status: VisitorRequestStatus,
        values: Dict[str, Any],
    ) -> bool:
        """
        Update a request only if its status still equals expected_status.

        The update and the commit form one all-or-nothing write.

        Args:
            db: Database session
            request_id: Visitor request ID
            expected_status: Status the caller read before deciding to write
            values: Column values to set (may include SQL expressions)

        Returns:
            True if the row was updated, False if its status had changed

        Raises:
            IntegrityError: If a unique constraint (approval_code) is violated;
                the session has been rolled back
        """
        stmt = (
            update(VisitorRequest)
            .where(
                VisitorRequest.id == request_id,
                VisitorRequest.status == expected_status,
            )
            .values(**values, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

        try:
            result = await db.execute(stmt)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise

        return result.rowcount == 1

    @classmethod
    async def expire_past_due(cls, db: AsyncSession, today: date) -> int:
        """
        Expire every pending request scheduled before today.

        Args:
            db: Database session
            today: Current business date

        Returns:
            Number of requests expired
        """
        stmt = (
            update(VisitorRequest)
            .where(
                VisitorRequest.status == VisitorRequestStatus.PENDING,
                VisitorRequest.scheduled_date < today,
            )
            .values(status=VisitorRequestStatus.EXPIRED, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount or 0

    @classmethod
    async def find_by_approval_code(
        cls, db: AsyncSession, approval_code: str
    ) -> Optional[VisitorRequest]:
        """
        Find a visitor request by its approval code.

        Args:
            db: Database session
            approval_code: Code issued on approval

        Returns:
            VisitorRequest or None
        """
        return await cls.find_one(db, filters={"approval_code": approval_code})

    @classmethod
    async def count_by_status(
        cls,
        db: AsyncSession,
        *,
        requested_by_id: Optional[UUID] = None,
        department: Optional[str] = None,
    ) -> Dict[VisitorRequestStatus, int]:
        """
        Count requests per status.

        Args:
            db: Database session
            requested_by_id: Restrict to one requester
            department: Restrict to one department

        Returns:
            Mapping of every status to its count (zero when absent)
        """
        stmt = select(VisitorRequest.status, func.count(VisitorRequest.id)).group_by(
            VisitorRequest.status
        )
        if requested_by_id is not None:
            stmt = stmt.where(VisitorRequest.requested_by_id == requested_by_id)
        if department is not None:
            stmt = stmt.where(VisitorRequest.department == department)

        result = await db.execute(stmt)
        counts = {status: 0 for status in VisitorRequestStatus}
        for status, count in result.all():
            counts[VisitorRequestStatus(status)] = count
        return counts
