"""
Logging utilities for the entity sync engine.

Provides structured logging with correlation fields for tracing a request
across the pipeline (dataset → sync id → batches → warehouse statements).
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CORRELATION_FIELDS = ["dataset", "sync_id", "request_id"]


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Correlation fields if present (dataset, sync_id, request_id)
    - Exception text if present
    """

    def __init__(self, include_timestamp: bool = True, service: Optional[str] = None):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        if self.service:
            log_entry["service"] = self.service

        for name in CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with correlation context.

    Format: TIMESTAMP [LEVEL] LOGGER - MESSAGE [dataset=X sync_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        else:
            fmt = "[%(levelname)s] %(name)s - %(message)s"
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for name in CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class SyncContextFilter(logging.Filter):
    """Copies the active SyncContext fields onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in SyncContext.get_current().items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
    service: Optional[str] = None,
) -> None:
    """
    Configure logging for the entity_sync package.

    Args:
        level: Logging level (default: INFO)
        structured: If True, output JSON lines; if False, human-readable
        include_timestamp: Whether to include timestamp in log messages
        service: Optional service name added to JSON lines

    Example:
        >>> from entity_sync.core.logging import configure_logging
        >>> configure_logging(level=logging.DEBUG, structured=True)
    """
    package_logger = logging.getLogger("entity_sync")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not package_logger.handlers:
        # stdout carries entity pages
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        if structured:
            handler.setFormatter(StructuredFormatter(include_timestamp, service=service))
        else:
            handler.setFormatter(HumanReadableFormatter(include_timestamp))
        handler.addFilter(SyncContextFilter())
        package_logger.addHandler(handler)
        package_logger.propagate = False


def level_from_name(name: Optional[str], default: int = logging.INFO) -> int:
    """Translate a level name like 'debug' to a logging level."""
    if not name:
        return default
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


class SyncContext:
    """
    Context manager for adding correlation fields to log records.

    Example:
        >>> with SyncContext(dataset="people", sync_id="abc"):
        ...     logger.info("Staging batch")  # includes dataset and sync_id
    """

    # one active context per thread
    _local = threading.local()

    def __init__(
        self,
        dataset: Optional[str] = None,
        sync_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ):
        self.context = {
            "dataset": dataset,
            "sync_id": sync_id or None,
            "request_id": request_id,
            **extra,
        }
        self.context = {k: v for k, v in self.context.items() if v is not None}
        self._previous: Optional["SyncContext"] = None

    def __enter__(self) -> "SyncContext":
        self._previous = getattr(SyncContext._local, "current", None)
        SyncContext._local.current = self
        return self

    def __exit__(self, *args) -> None:
        SyncContext._local.current = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current correlation context."""
        current = getattr(cls._local, "current", None)
        if current is None:
            return {}
        return current.context.copy()
