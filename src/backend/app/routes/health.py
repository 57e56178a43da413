"""
Health check endpoint handler.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.decorators import safe_database_query

router = APIRouter()


@safe_database_query("database health check", default_return=False)
async def _database_reachable(db: AsyncSession) -> bool:
    await db.execute(text("SELECT 1"))
    return True


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring.
    Checks that the database answers a trivial query.
    """
    database_ok = await _database_reachable(db)
    return {
        "status": "healthy" if database_ok else "degraded",
        "services": {
            "database": {"status": "healthy" if database_ok else "unhealthy"},
        },
    }
