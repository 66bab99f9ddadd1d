"""Structured logging configuration."""

from __future__ import annotations

import datetime
import logging
import sys

import structlog
from structlog.types import EventDict, Processor

# Third-party loggers that are too chatty at INFO for a per-scrape exporter.
NOISY_LOGGERS = ("pymodbus", "uvicorn.access")


def add_log_level(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add upper-case log level to event dict."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add a UTC ISO-8601 timestamp to event dict."""
    now = datetime.datetime.now(datetime.timezone.utc)
    event_dict["timestamp"] = now.isoformat().replace("+00:00", "Z")
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    use_json: bool = False,
    include_caller_info: bool = True,
) -> None:
    """Setup structured logging for the exporter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: If True, output JSON lines (for log aggregation). If False, colored console output.
        include_caller_info: If True, add module, function and line number of the call site
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    if include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            )
        )
    processors.append(structlog.processors.StackInfoRenderer())

    if use_json:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("block_read_failed", block="engine", error="timeout")
    """
    return structlog.get_logger(name)
