"""
Centralized error handling decorators for database operations.

Database failures are classified and logged before being re-raised; domain
errors raised by the lifecycle (core.exceptions) pass through untouched so
callers can map them to responses.
"""
import functools
import inspect
import logging
import traceback
from typing import Any, Callable, Optional

from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    StatementError,
    TimeoutError,
)

from core.exceptions import VisitorRequestError

logger = logging.getLogger(__name__)


class DatabaseErrorHandler:
    """Centralized database error handling utilities."""

    DATABASE_EXCEPTIONS = (
        SQLAlchemyError,
        ConnectionError,
    )

    @staticmethod
    def handle_database_error(
        exc: Exception,
        operation: str,
        context: Optional[dict] = None
    ) -> tuple[bool, str]:
        """
        Classify a database error and log it.

        Args:
            exc: The exception that occurred
            operation: Description of the database operation
            context: Additional context information

        Returns:
            Tuple of (is_recoverable, error_message)
        """
        context_str = f" | Context: {context}" if context else ""

        if isinstance(exc, IntegrityError):
            error_msg = f"Database integrity error during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return False, error_msg

        if isinstance(exc, (ConnectionError, DisconnectionError)):
            error_msg = f"Database connection error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
            return True, error_msg

        if isinstance(exc, TimeoutError):
            error_msg = f"Database timeout during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return True, error_msg

        if isinstance(exc, OperationalError):
            error_msg = f"Database operational error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
            return True, error_msg

        if isinstance(exc, StatementError):
            error_msg = f"Database statement error during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
            return False, error_msg

        error_msg = f"Unexpected database error during {operation}: {type(exc).__name__}: {exc}{context_str}"
        logger.error(f"{error_msg}\nTraceback: {traceback.format_exc()}")
        return False, error_msg


def handle_database_exceptions(
    operation_name: Optional[str] = None,
    reraise: bool = True,
    default_return: Any = None,
) -> Callable:
    """
    Decorator to wrap async database operations with error handling.

    Args:
        operation_name: Name of the operation for logging (defaults to function name)
        reraise: Whether to re-raise database errors after logging
        default_return: Value to return if a database error occurs and reraise=False

    Returns:
        Decorated coroutine function
    """
    def decorator(func: Callable) -> Callable:
        if not (inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, '__wrapped__', None))):
            raise TypeError(f"{func.__name__} must be a coroutine function")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            operation = operation_name or getattr(func, '__name__', 'unknown')
            context = {
                "function": getattr(func, '__name__', 'unknown'),
                "kwargs_keys": list(kwargs.keys()) if kwargs else []
            }

            try:
                result = await func(*args, **kwargs)
                logger.debug(f"Successfully completed {operation}")
                return result

            except VisitorRequestError:
                raise

            except DatabaseErrorHandler.DATABASE_EXCEPTIONS as exc:
                DatabaseErrorHandler.handle_database_error(exc, operation, context)

                if reraise:
                    raise
                logger.info(f"Operation {operation} failed, returning default: {default_return}")
                return default_return

        return async_wrapper

    return decorator


def log_database_operation(
    operation: str,
    level: str = "debug"
) -> Callable:
    """
    Decorator to log the start and end of an async database operation.

    Args:
        operation: Description of the operation
        level: Logging level ('debug', 'info', 'warning', 'error')
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            logger_method = getattr(logger, level)
            func_name = getattr(func, '__name__', 'unknown')
            logger_method(f"Starting {operation} via {func_name}")

            try:
                result = await func(*args, **kwargs)
                logger_method(f"Completed {operation} via {func_name}")
                return result
            except Exception as exc:
                logger_method(f"Failed {operation} via {func_name}: {exc}")
                raise

        return async_wrapper

    return decorator


def safe_database_query(func=None, operation_name: Optional[str] = None, default_return: Any = None) -> Callable:
    """
    Database query decorator that logs database errors and returns a default.
    Use for read operations that must not fail the caller (e.g. background sweeps).

    Can be used with or without parentheses:
        @safe_database_query
        async def my_func(...): ...

        @safe_database_query("custom name", default_return=0)
        async def my_func(...): ...
    """
    def decorator(f: Callable) -> Callable:
        return handle_database_exceptions(
            operation_name=operation_name,
            reraise=False,
            default_return=default_return,
        )(f)

    if func is None:
        return decorator
    elif callable(func):
        return decorator(func)
    else:
        # Called with operation_name as first positional arg
        return safe_database_query(operation_name=func, default_return=default_return)


def critical_database_operation(func=None, operation_name: Optional[str] = None) -> Callable:
    """
    Critical database operation decorator that always logs errors and reraises.
    Use for lifecycle writes that must succeed or fail loudly.

    Can be used with or without parentheses:
        @critical_database_operation
        async def my_func(...): ...

        @critical_database_operation("review_request")
        async def my_func(...): ...
    """
    def decorator(f: Callable) -> Callable:
        return handle_database_exceptions(
            operation_name=operation_name,
            reraise=True,
        )(f)

    if func is None:
        return decorator
    elif callable(func):
        return decorator(func)
    else:
        return critical_database_operation(operation_name=func)
