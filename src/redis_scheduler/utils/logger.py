"""
Module: logger.py
Description: Structured logging configuration for the scheduler.

Configures structlog for JSON output so that every firing, retry and
API operation is logged as a single machine-readable line with its
schedule key and outcome bound as context.

Key Components:
- JSON output with ISO 8601 timestamps and level names
- configure_logging() to apply the configured log level at startup
- get_logger() helper function

Dependencies: structlog, logging, datetime
"""

import logging
from datetime import datetime, timezone

import structlog


def _add_timestamp(logger, method_name, event_dict):
    """
    Add ISO 8601 timestamp to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name (info, error, etc.)
        event_dict: Current log event dictionary

    Returns:
        Updated event dictionary with timestamp
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add upper-cased log level to event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog for JSON output at the given level.

    Safe to call more than once; the last call wins. Called from the
    application lifespan with the LOG_LEVEL setting.

    Args:
        log_level: Standard logging level name (DEBUG, INFO, ...)
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            # Add timestamp and log level
            _add_timestamp,
            _add_log_level,
            # Add exception information
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        # Drop events below the configured level before rendering
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Schedule created", schedule_key="rsch-ref:default:abc", ttl=30)
        {"schedule_key": "rsch-ref:default:abc", "ttl": 30, "event": "Schedule created", "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)
