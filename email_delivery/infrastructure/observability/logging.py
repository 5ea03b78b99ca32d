"""
Structured logging setup for the email delivery service.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the emitting service."""
    event_dict.setdefault("service", "email_delivery")
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def _summarize_recipients(to: Any) -> Any:
    if isinstance(to, list | tuple):
        return [_summarize_recipients(item) for item in to]
    if isinstance(to, dict):
        return to.get("address")
    return to


def log_email_event(
    event: str,
    provider: str | None = None,
    to: Any = None,
    subject: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log an email delivery event with the standard {event, provider, to, subject, error} fields."""
    logger = get_logger("email")

    log_data = {
        "provider": provider,
        "to": _summarize_recipients(to),
        "subject": subject,
        **extra,
    }

    if error:
        log_data["error"] = error
        logger.warning(event, **log_data)
    else:
        logger.info(event, **log_data)
