"""
Background task scheduler for periodic jobs.
Uses APScheduler to run the visitor request expiry sweep.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.database import get_background_session
from services.visitor_request_service import VisitorRequestService

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def expire_stale_requests_job() -> int:
    """
    Background job that expires past-due pending visitor requests.
    Runs every VISITOR_EXPIRY_SWEEP_INTERVAL_MINUTES via APScheduler.

    Reads already expire requests as they are loaded; the sweep keeps
    stored statuses current for anything nobody has looked at.
    """
    logger.debug("Running visitor request expiry sweep...")

    try:
        async with get_background_session() as db:
            count = await VisitorRequestService.expire_stale_requests(db)
    except Exception as e:
        logger.error(f"Visitor request expiry sweep failed: {str(e)}", exc_info=True)
        return 0

    if count > 0:
        logger.info(f"Expiry sweep completed: {count} requests expired")
    return count


def start_scheduler() -> Optional[AsyncIOScheduler]:
    """Start the background scheduler with all jobs."""
    global scheduler

    if not settings.visitor.expiry_sweep_enabled:
        logger.info("Expiry sweep disabled; scheduler not started")
        return None

    logger.info("Starting APScheduler for background tasks...")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        expire_stale_requests_job,
        trigger=IntervalTrigger(minutes=settings.visitor.expiry_sweep_interval_minutes),
        id="expire_stale_visitor_requests",
        replace_existing=True,
        max_instances=1,
        name="Visitor Request Expiry Sweep",
    )
    scheduler.start()

    logger.info(
        f"APScheduler started with jobs: expiry sweep "
        f"({settings.visitor.expiry_sweep_interval_minutes}m)"
    )
    return scheduler


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global scheduler

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("APScheduler shut down successfully")
    scheduler = None
