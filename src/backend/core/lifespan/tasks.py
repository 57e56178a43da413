"""
Lifespan startup and shutdown task functions.

Each function handles one step of the application startup or shutdown
sequence.
"""

import logging


async def initialize_logging(settings, log_config):
    """Setup logging configuration."""
    from core.logging_config import setup_logging

    setup_logging(log_config, query_logging=settings.logging.enable_query_logging)
    logging.getLogger("main").info(f"Starting {settings.api.app_name} API...")


async def initialize_database():
    """Create database tables if they do not exist."""
    from core.database import init_db

    logger = logging.getLogger("main")
    await init_db()
    logger.info("Database initialized")


async def start_background_scheduler():
    """Start the APScheduler jobs (expiry sweep)."""
    from core.scheduler import start_scheduler

    logger = logging.getLogger("main")
    try:
        start_scheduler()
    except Exception as e:
        logger.warning(f"Scheduler initialization failed: {e}")


async def shutdown_scheduler_task():
    """Shutdown the background scheduler."""
    from core.scheduler import shutdown_scheduler

    logger = logging.getLogger("main")
    try:
        shutdown_scheduler()
    except Exception as e:
        logger.warning(f"Scheduler shutdown error: {e}")


async def shutdown_database():
    """Close database connections."""
    from core.database import close_db

    await close_db()
    logging.getLogger("main").info("Database connections closed")
