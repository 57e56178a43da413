"""
Logging configuration for the Visitor Access application.
Provides structured logging with different levels and formats.

PERFORMANCE:
- Uses QueueHandler to prevent log writes from blocking the event loop
- QueueListener handles file I/O in a separate thread
"""

import atexit
import logging
import logging.handlers
import queue
import sys
from datetime import date
from pathlib import Path
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


# Global queue listener for cleanup
_queue_listener: Optional[logging.handlers.QueueListener] = None


class LogConfig(BaseModel):
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_file_logging: bool = True
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    grey = "\x1b[38;21m"
    yellow = "\x1b[33;21m"
    red = "\x1b[31;21m"
    bold_red = "\x1b[31;1m"
    blue = "\x1b[34;21m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: grey,
        logging.INFO: blue,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.grey)
        record.levelname = f"{color}{record.levelname}{self.reset}"
        formatted = super().format(record)
        return f"{formatted}{self.reset}"


def setup_logging(config: Optional[LogConfig] = None, query_logging: bool = False) -> None:
    """Setup application logging with configuration.

    - Console handler writes directly (stdout is non-blocking)
    - File handlers run behind a QueueListener in a separate thread
    """
    global _queue_listener

    if config is None:
        config = LogConfig()

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None

    if config.enable_file_logging:
        Path(config.log_dir).mkdir(exist_ok=True)

    level = getattr(logging, config.level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            ColoredFormatter(
                fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
                datefmt=config.date_format,
            )
        )
        root_logger.addHandler(console_handler)

    file_handlers = []

    if config.enable_file_logging:
        file_formatter = logging.Formatter(
            fmt="%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt=config.date_format,
        )

        app_handler = logging.handlers.RotatingFileHandler(
            Path(config.log_dir) / "app.log",
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(file_formatter)
        file_handlers.append(app_handler)

        # Transition history, one line per lifecycle event
        lifecycle_handler = logging.handlers.RotatingFileHandler(
            Path(config.log_dir) / "lifecycle.log",
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        lifecycle_handler.setLevel(level)
        lifecycle_handler.setFormatter(file_formatter)
        lifecycle_handler.addFilter(logging.Filter("lifecycle"))
        file_handlers.append(lifecycle_handler)

    if file_handlers:
        log_queue = queue.Queue(-1)
        root_logger.addHandler(logging.handlers.QueueHandler(log_queue))

        _queue_listener = logging.handlers.QueueListener(
            log_queue,
            *file_handlers,
            respect_handler_level=True,
        )
        _queue_listener.start()
        atexit.register(stop_queue_listener)

    sqlalchemy_logger = logging.getLogger("sqlalchemy.engine")
    sqlalchemy_logger.setLevel(level if query_logging else logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def stop_queue_listener() -> None:
    """Stop the queue listener gracefully.

    Called automatically on exit via atexit.
    Can also be called manually during shutdown.
    """
    global _queue_listener

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None


class LifecycleLogger:
    """Structured logger for visitor request lifecycle events."""

    def __init__(self, name: str = "visitor_request"):
        self.logger = logging.getLogger(f"lifecycle.{name}")

    def request_created(
        self, request_id: UUID, requester_id: UUID, department: str, scheduled_date: date
    ) -> None:
        self.logger.info(
            f"Request created | ID: {request_id} | Requester: {requester_id} | "
            f"Department: {department} | Scheduled: {scheduled_date.isoformat()}"
        )

    def request_updated(self, request_id: UUID, actor_id: UUID, fields: list) -> None:
        self.logger.info(
            f"Request updated | ID: {request_id} | Actor: {actor_id} | "
            f"Fields: {', '.join(sorted(fields)) or '-'}"
        )

    def transitioned(
        self,
        request_id: UUID,
        from_status: str,
        to_status: str,
        actor_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful status transition."""
        actor = str(actor_id) if actor_id else "system"
        self.logger.info(
            f"Transition | ID: {request_id} | {from_status} -> {to_status} | Actor: {actor}"
        )

    def transition_lost(
        self, request_id: UUID, expected_status: str, to_status: str
    ) -> None:
        """Log a conditional update that matched no row."""
        self.logger.warning(
            f"Stale transition rejected | ID: {request_id} | "
            f"Expected: {expected_status} | Wanted: {to_status}"
        )

    def sweep_completed(self, expired_count: int) -> None:
        if expired_count:
            self.logger.info(f"Expiry sweep | Expired: {expired_count}")
        else:
            self.logger.debug("Expiry sweep | nothing to expire")
