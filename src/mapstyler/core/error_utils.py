"""
Error handling utilities for MapStyler.

Provides centralized error logging for soft failures. Layer processing never
raises to its caller; failures are funnelled through here instead.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]


def log_and_notify(
    error: Exception,
    user_message: str,
    log_level: int = logging.ERROR,
    callback: Optional[ErrorCallback] = None,
    exc_info: bool = True,
) -> None:
    """
    Log an exception and optionally notify a listener.

    Handles error logging with proper context and exception chaining,
    while forwarding a user-friendly message to an optional callback
    (the desktop viewer shows it in its status bar).

    Args:
        error: The exception that occurred
        user_message: User-friendly message describing what failed
        log_level: Logging level (logging.ERROR, WARNING, DEBUG, etc.)
        callback: Optional callable receiving (user_message, str(error))
        exc_info: Attach the traceback to the log record

    Example:
        try:
            extent = await calculator.compute_extent(url)
        except Exception as e:
            log_and_notify(e, f"Extent calculation failed for {url}.",
                           log_level=logging.WARNING)
    """
    # Log the exception with full traceback
    logger.log(
        log_level,
        f"{user_message} Error: {str(error)}",
        exc_info=exc_info,
    )

    if callback:
        try:
            callback(user_message, str(error))
        except Exception:
            logger.exception("Error callback raised while reporting a failure")


def safe_operation(
    operation: Callable[[], Any],
    error_message: str,
    default_return: Any = None,
    log_level: int = logging.ERROR,
    callback: Optional[ErrorCallback] = None,
) -> Any:
    """
    Execute an operation with automatic error handling.

    Args:
        operation: Callable to execute
        error_message: Message to log on error
        default_return: Value to return on exception
        log_level: Logging level used for the failure
        callback: Optional error listener (see log_and_notify)

    Returns:
        Result of operation, or default_return on exception

    Example:
        style = safe_operation(
            lambda: parse_style(text),
            "Style text could not be parsed",
        )
    """
    try:
        return operation()
    except Exception as e:
        log_and_notify(e, error_message, log_level=log_level, callback=callback)
        return default_return


async def safe_async_operation(
    awaitable: Awaitable[Any],
    error_message: str,
    default_return: Any = None,
    log_level: int = logging.ERROR,
    callback: Optional[ErrorCallback] = None,
) -> Any:
    """Await a coroutine, downgrading any exception to a logged diagnostic.

    Same contract as :func:`safe_operation` for coroutines.
    """
    try:
        return await awaitable
    except Exception as e:
        log_and_notify(e, error_message, log_level=log_level, callback=callback)
        return default_return
