"""
Structured Logging
==================

JSON-structured logging with tenant/ticket context.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID and tenant/ticket context for automation passes
- Contextual loggers for modules
- Performance timing utilities

Usage:
    from psa_engine.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Rule matched", extra={"rule_id": "...", "ticket_id": "..."})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

from pythonjsonlogger import jsonlogger

_SENSITIVE_KEYS = ("password", "secret", "api_key", "authorization")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with engine-specific fields.

    Adds:
    - timestamp in ISO format (UTC)
    - correlation_id when available
    - environment name
    - redaction of secret-looking keys (webhook headers end up in extras)
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        self._environment = environment
        super().__init__(*args, **kwargs)

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id

        log_record["environment"] = self._environment

        for key, value in list(log_record.items()):
            lowered = key.lower()
            if isinstance(value, str) and any(s in lowered for s in _SENSITIVE_KEYS):
                log_record[key] = "***REDACTED***"
            elif "token" in lowered and isinstance(value, str):
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the engine.

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
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)
    """
    return logging.getLogger(name)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its bound context with per-call ``extra``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_context_logger(
    name: str,
    correlation_id: Optional[str] = None,
    **context: Any,
) -> logging.LoggerAdapter:
    """
    Get a logger bound to a correlation ID and arbitrary context.

    Used by the rule engine to stamp every record of a pass with
    tenant_id/ticket_id/trigger.

    Args:
        name: Logger name
        correlation_id: Pass or request correlation ID
        **context: Additional fields added to every record
    """
    bound = {key: value for key, value in context.items() if value is not None}
    if correlation_id:
        bound["correlation_id"] = correlation_id
    return ContextAdapter(get_logger(name), bound)


@contextmanager
def log_latency(logger: logging.Logger | logging.LoggerAdapter, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "automation_pass", trigger="on_update"):
            await engine.process(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
