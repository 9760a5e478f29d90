"""Structured logging configuration for the business data API."""

import logging
import sys
import time
from typing import Optional, Union
from pathlib import Path
from logging.handlers import RotatingFileHandler

import structlog
from structlog.types import FilteringBoundLogger

from .exceptions import DataApiError, ErrorContext


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[str] = None,
    structured: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Set up structlog and the standard library handlers it writes through.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a rotating log file
        structured: Render JSON lines instead of the console renderer
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of rotated files to keep
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    renderer = structlog.processors.JSONRenderer() if structured else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count))

    # structlog has already rendered the event, the handlers only emit it
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))

    logging.basicConfig(level=level, handlers=handlers, force=True)

    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def log_operation(
    logger: FilteringBoundLogger,
    operation: str,
    level: str = "info",
    **kwargs
) -> None:
    """Log a named operation with structured context."""
    log_func = getattr(logger, level.lower())
    log_func(f"Operation: {operation}", operation=operation, **kwargs)


def log_error(
    logger: FilteringBoundLogger,
    error: Exception,
    operation: Optional[str] = None,
    context: Optional[ErrorContext] = None,
    **kwargs
) -> None:
    """
    Log an error with its classification and context.

    Args:
        logger: Logger instance
        error: Exception that occurred
        operation: Operation that failed
        context: Additional error context
        **kwargs: Additional context fields
    """
    log_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **kwargs
    }

    if operation:
        log_data["operation"] = operation

    if isinstance(error, DataApiError):
        log_data.update({
            "error_kind": error.kind.value,
            "error_code": error.error_code,
            "status_code": error.status_code,
        })
        if error.cause:
            log_data["cause"] = str(error.cause)
        context = context or error.context

    if context:
        if context.operation and "operation" not in log_data:
            log_data["operation"] = context.operation
        if context.resource:
            log_data["resource"] = context.resource
        if context.request_id:
            log_data["request_id"] = context.request_id
        if context.additional_data:
            for key, value in context.additional_data.items():
                log_data.setdefault(key, value)

    logger.error(f"Error occurred: {error}", exc_info=error, **log_data)


def log_performance(
    logger: FilteringBoundLogger,
    operation: str,
    duration_ms: float,
    success: bool = True,
    **kwargs
) -> None:
    """Log the duration of an operation."""
    logger.info(
        f"Performance: {operation}",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        success=success,
        **kwargs
    )


class OperationLogger:
    """Context manager for logging operation start/end with timing."""

    def __init__(
        self,
        logger: FilteringBoundLogger,
        operation: str,
        level: str = "debug",
        **context
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.context = context
        self.start_time: Optional[float] = None
        self.success = False

    def __enter__(self):
        self.start_time = time.perf_counter()
        log_func = getattr(self.logger, self.level.lower())
        log_func(f"Starting operation: {self.operation}", operation=self.operation, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000 if self.start_time else 0
        self.success = exc_type is None
        if not self.success:
            self.context["error_type"] = exc_type.__name__
        log_performance(self.logger, self.operation, duration_ms, success=self.success, **self.context)
        return False

    def set_context(self, **kwargs) -> None:
        """Add additional context to the operation."""
        self.context.update(kwargs)
