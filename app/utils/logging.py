"""Structured Logging Configuration.

This module provides structured logging with JSON output and context binding.
Outputs JSON format for production log aggregation.

Configuration:
- JSON output format (for production log aggregation)
- structlog processors configured once at startup via configure_logging()
- Log levels: DEBUG, INFO, WARNING, ERROR, CRITICAL
- mask_email() for the few places an address must appear in a log line
"""

import json
import logging
import sys
from typing import Any

import structlog


class StructuredLogger:
    """Wrapper around standard Logger with structured JSON logging support.

    Provides structured logging methods (info, error, warning, debug) that
    accept keyword arguments and output JSON format for log aggregation.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _format_json(self, event: str, **kwargs: Any) -> str:
        """Format log entry as JSON with event and context fields."""
        log_entry = {"event": event, **kwargs}
        return json.dumps(log_entry, default=str)

    def info(self, event: str, **kwargs: Any) -> None:
        """Log info message with structured context as JSON."""
        self._logger.info(self._format_json(event, **kwargs))

    def error(self, event: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message with structured context as JSON."""
        self._logger.error(self._format_json(event, **kwargs), exc_info=exc_info)

    def warning(self, event: str, **kwargs: Any) -> None:
        """Log warning message with structured context as JSON."""
        self._logger.warning(self._format_json(event, **kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        """Log debug message with structured context as JSON."""
        self._logger.debug(self._format_json(event, **kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured StructuredLogger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return StructuredLogger(logger)


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for JSON output at the given level.

    Called once from the application lifespan. Safe to call repeatedly.

    Args:
        level: Log level name (e.g., "INFO", "DEBUG").
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def mask_email(email: str) -> str:
    """Mask the local part of an email address for logging.

    Example:
        >>> mask_email("someone@example.com")
        's***@example.com'
    """
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
