"""
Structured JSON logging with correlation IDs and operation timing.

Provides:
- JSON format for log aggregation
- Request correlation IDs propagated through a context variable
- Structured metadata via ``extra={"extra_fields": {...}}``
- Duration tracking for slow operations (remote downloads, image transforms)
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variable for request ID (thread-safe)
request_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "request_id", default=None)

NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3", "PIL")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Context manager for tracking operation performance.

    Usage:
        with PerformanceTracker("s3_download", logger, file_id=file_id):
            # ... perform operation
            pass

    The measured duration is available as ``duration_seconds`` after exit so
    callers can feed it into a histogram.
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.DEBUG,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_seconds: float = 0.0

    def _extra(self, **fields) -> dict:
        extra = {"operation": self.operation, **self.extra_fields, **fields}
        request_id = request_id_ctx.get()
        if request_id:
            extra["request_id"] = request_id
        return extra

    def __enter__(self):
        """Start timing."""
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"extra_fields": self._extra()},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log completion with duration."""
        self.duration_seconds = time.perf_counter() - self.start_time
        duration_ms = round(self.duration_seconds * 1000, 2)

        if exc_type:
            self.logger.warning(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": self._extra(
                    duration_ms=duration_ms,
                    error=str(exc_val),
                    error_type=exc_type.__name__,
                )},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": self._extra(duration_ms=duration_ms)},
            )
        return False


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, standard format if False
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set third-party loggers to WARNING to reduce noise
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context.

    Args:
        request_id: Request ID (generated if not provided)

    Returns:
        Request ID
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_ctx.get()


def clear_request_id() -> None:
    """Clear request ID from context."""
    request_id_ctx.set(None)
