"""
Structured logging setup for the lead sync pipeline.
Provides JSON-formatted logs with consistent fields for device and server diagnostics.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_pipeline_context,
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
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_pipeline_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Merge context bound with bind_contextvars (sync run id, recipient)."""
    return structlog.contextvars.merge_contextvars(logger, method_name, event_dict)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_sync_outcome(
    outcome: str,
    duration_ms: float,
    record_count: int | None = None,
    error_kind: str | None = None,
):
    """Log a sync cycle result with consistent fields."""
    logger = get_logger("sync")

    log_data = {
        "outcome": outcome,
        "duration_ms": round(duration_ms, 2),
        "event_type": "sync_cycle",
    }

    if record_count is not None:
        log_data["record_count"] = record_count
    if error_kind:
        log_data["error_kind"] = error_kind

    if outcome == "success":
        logger.info("Sync cycle completed", **log_data)
    elif outcome == "cancelled":
        logger.debug("Sync cycle superseded", **log_data)
    else:
        logger.warning("Sync cycle failed", **log_data)
