"""
Structured Logging
==================

JSON-structured logging with correlation and trace ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for HTTP request tracing
- Trace ID for correlating every log line of one triage run
- Latency measurement for pipeline stages

Usage:
    from helpdesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket triaged", extra={"ticket_id": "..."})
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger


_REDACTED_KEYS = ("password", "api_key", "secret")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id / trace_id when available
    - Environment info
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        for key in ("correlation_id", "trace_id"):
            if hasattr(record, key):
                log_record[key] = getattr(record, key)

        log_record["environment"] = self._environment

        for key, value in list(log_record.items()):
            if isinstance(value, str) and any(s in key.lower() for s in _REDACTED_KEYS):
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call `extra`."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(
    name: str,
    correlation_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> logging.Logger | logging.LoggerAdapter:
    """
    Get a logger that stamps every record with request/trace identifiers.

    Args:
        name: Logger name
        correlation_id: HTTP request correlation ID
        trace_id: Triage run trace ID

    Returns:
        A LoggerAdapter when any identifier is given, else the plain logger
    """
    logger = get_logger(name)
    context = {}
    if correlation_id:
        context["correlation_id"] = correlation_id
    if trace_id:
        context["trace_id"] = trace_id
    if context:
        return ContextLoggerAdapter(logger, context)
    return logger


class LatencyTimer:
    """Elapsed wall time of a `measure_latency` block, in milliseconds."""

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._end: Optional[float] = None

    def stop(self) -> None:
        if self._end is None:
            self._end = time.perf_counter()

    @property
    def latency_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)


@contextmanager
def measure_latency(
    logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    operation: Optional[str] = None,
    **extra_context: Any,
) -> Iterator[LatencyTimer]:
    """
    Context manager for measuring (and optionally logging) latency.

    Usage:
        with measure_latency(logger, "classify") as timer:
            result = await provider.classify(text)
        timer.latency_ms

    Args:
        logger: Logger to emit a DEBUG line on completion, if given
        operation: Operation name for logging
        **extra_context: Additional context to include in the log
    """
    timer = LatencyTimer()
    try:
        yield timer
    finally:
        timer.stop()
        if logger is not None and operation:
            logger.debug(
                f"{operation} completed",
                extra={
                    "operation": operation,
                    "latency_ms": timer.latency_ms,
                    **extra_context,
                },
            )
