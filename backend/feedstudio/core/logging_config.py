"""
Structured logging configuration with JSON formatting and correlation IDs.
"""

import logging
import sys
import uuid
from typing import Optional
from datetime import datetime
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Context variable for correlation ID (task-local)
correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

PIPELINE_LOGGER_NAME = "feedstudio.pipeline"


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get() or "none"
        return True


class PipelineJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always emits timestamp, level, logger and correlation ID."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["correlation_id"] = getattr(record, "correlation_id", "none")
        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure structured JSON logging for the application.

    Returns the pipeline event logger.
    """
    formatter = PipelineJsonFormatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Route uvicorn and apscheduler output through the same handler
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "apscheduler"):
        third_party = logging.getLogger(name)
        third_party.handlers.clear()
        third_party.addHandler(console_handler)
        third_party.propagate = False

    pipeline_logger = logging.getLogger(PIPELINE_LOGGER_NAME)
    pipeline_logger.setLevel(level)

    return pipeline_logger


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id

        return response


def log_pipeline_event(
    event_type: str,
    message: str,
    level: int = logging.INFO,
    feed_id: Optional[int] = None,
    feed_item_id: Optional[int] = None,
    job_id: Optional[str] = None,
    **extra_fields
):
    """
    Log a pipeline event with structured data.

    Args:
        event_type: Type of event (e.g., "feed.processed", "job.failed")
        message: Human-readable message
        level: Logging level (default: INFO)
        feed_id: Feed ID if applicable
        feed_item_id: Feed item ID if applicable
        job_id: Analysis job ID if applicable
        **extra_fields: Additional fields to include
    """
    logger = logging.getLogger(PIPELINE_LOGGER_NAME)

    extra = {"event_type": event_type}

    if feed_id is not None:
        extra["feed_id"] = feed_id
    if feed_item_id is not None:
        extra["feed_item_id"] = feed_item_id
    if job_id is not None:
        extra["job_id"] = job_id

    extra.update(extra_fields)

    logger.log(level, message, extra=extra)
