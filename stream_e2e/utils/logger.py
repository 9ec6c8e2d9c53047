"""
Logging utilities with Rich integration.

This module provides logging setup and utilities for console output.
"""

import inspect
import logging
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, cast

from rich.console import Console
from rich.logging import RichHandler

# Type variable for generic function decoration
F = TypeVar("F", bound=Callable[..., Any])


def setup_logger(
    name: str = "stream_e2e",
    level: str = "INFO",
    log_file: Optional[Path] = None,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Setup logger with Rich handler and optional file output.

    Args:
        name: Logger name (use "stream_e2e" to match package name)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        verbose: Enable verbose output with file paths
        console: Rich console to use (creates new if None)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=verbose,
        omit_repeated_times=False,
        level=log_level,
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(rich_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    # Prevent propagation to root logger to avoid duplicate logs
    logger.propagate = False

    # Request logs from httpx are noise next to process logs
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger


def log_performance(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator to log function execution time.

    Args:
        logger: Logger instance to use (creates default if None)

    Returns:
        Decorated function that logs execution time
    """
    if logger is None:
        logger = logging.getLogger("stream_e2e")

    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
                logger.debug(f"{func.__name__} completed in {time.monotonic() - start:.2f}s")
                return result
            except Exception as e:
                logger.debug(f"{func.__name__} failed after {time.monotonic() - start:.2f}s: {e}")
                raise

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                result = func(*args, **kwargs)
                logger.debug(f"{func.__name__} completed in {time.monotonic() - start:.2f}s")
                return result
            except Exception as e:
                logger.debug(f"{func.__name__} failed after {time.monotonic() - start:.2f}s: {e}")
                raise

        if inspect.iscoroutinefunction(func):
            return cast(F, async_wrapper)
        return cast(F, sync_wrapper)

    return decorator


# Create default logger
default_logger = setup_logger()


def get_logger(name: str = "stream_e2e") -> logging.Logger:
    """
    Get a logger instance.

    Modules call get_logger(__name__); names like "stream_e2e.streaming.prober"
    inherit the handlers configured on the "stream_e2e" logger by setup_logger().

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        Logger instance that inherits from the package logger
    """
    return logging.getLogger(name)
