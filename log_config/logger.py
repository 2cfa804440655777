"""Centralized logging configuration using loguru."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Remove default handler
logger.remove()

_console_handler_id = logger.add(
    sys.stderr,
    level="INFO",
    format=CONSOLE_FORMAT,
    colorize=True,
)
_file_handler_id: Optional[int] = None


def get_logger(name: Optional[str] = None):
    """Get a logger instance with the given name.

    Args:
        name: Module name for the logger (usually __name__)

    Returns:
        Configured logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


def enable_debug_logging() -> None:
    """Lower the console handler to DEBUG so per-tick diagnostics show up."""
    global _console_handler_id
    logger.remove(_console_handler_id)
    _console_handler_id = logger.add(
        sys.stderr,
        level="DEBUG",
        format=CONSOLE_FORMAT,
        colorize=True,
    )


def enable_file_logging(log_dir: Union[str, Path] = "logs") -> Path:
    """Add a rotating DEBUG file handler under ``log_dir``.

    Calling it again replaces the previous file handler.

    Returns:
        The directory the log files are written to
    """
    global _file_handler_id
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    if _file_handler_id is not None:
        logger.remove(_file_handler_id)

    _file_handler_id = logger.add(
        logs_dir / "qrscanner_{time}.log",
        rotation="50 MB",
        retention="10 days",
        level="DEBUG",
        format=FILE_FORMAT,
        enqueue=True,  # Thread-safe logging
    )
    return logs_dir


# Performance logging helper
def log_performance(operation: str, duration_ms: float, threshold_ms: float = 100.0) -> None:
    """Log performance metrics with warnings for slow operations.

    Args:
        operation: Description of the operation
        duration_ms: Duration in milliseconds
        threshold_ms: Threshold for warning (default: 100ms)
    """
    if duration_ms > threshold_ms:
        logger.warning(f"Slow operation: {operation} took {duration_ms:.2f}ms (threshold: {threshold_ms}ms)")
    else:
        logger.debug(f"Performance: {operation} took {duration_ms:.2f}ms")


# Export configured logger
__all__ = [
    "logger",
    "get_logger",
    "enable_debug_logging",
    "enable_file_logging",
    "log_performance",
]
