"""Error classification and response rendering."""

import functools
import re
import traceback
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timezone

from .exceptions import (
    DataApiError,
    AuthenticationError,
    ConnectionError,
    ConnectionTimeoutError,
    TLSError,
    InternalError,
    ErrorCode,
    ErrorContext,
)
from .logging_config import get_logger, log_error


logger = get_logger(__name__)

_SQLSTATE_PATTERN = re.compile(r"^[0-9A-Z]{5}$")

TIMEOUT_SQLSTATES = {"HYT00", "HYT01"}
TLS_MARKERS = ("tls", "ssl", "unsupported protocol", "ssl_choose_client_version")
TIMEOUT_MARKERS = ("timeout expired", "timed out", "timeout")


def get_sqlstate(error: BaseException) -> Optional[str]:
    """Return the ODBC SQLSTATE of a driver error, if it carries one.

    pyodbc errors are raised as ``Error(sqlstate, message)``.
    """
    args = getattr(error, "args", ())
    if len(args) >= 2 and isinstance(args[0], str) and _SQLSTATE_PATTERN.match(args[0]):
        return args[0]
    return None


def get_driver_message(error: BaseException) -> str:
    """Return the human-readable part of a driver error."""
    args = getattr(error, "args", ())
    if get_sqlstate(error) and isinstance(args[1], str):
        return args[1]
    return str(error)


class ErrorHandler:
    """Central handler mapping any exception onto one ``DataApiError``."""

    @staticmethod
    def handle_error(
        error: BaseException,
        operation: Optional[str] = None,
        resource: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        connecting: bool = False,
    ) -> DataApiError:
        """
        Classify an exception.

        Checks run in a fixed order: login failure, timeout, TLS, missing
        object, other connection-class failures, then everything else.

        Args:
            error: The original exception
            operation: Operation that failed
            resource: Resource being accessed
            context: Additional error context
            connecting: The error happened while opening a connection, so an
                unrecognised failure is still a connection error

        Returns:
            DataApiError: The classified error
        """
        if context is None:
            context = ErrorContext(operation=operation, resource=resource)
        else:
            context.operation = context.operation or operation
            context.resource = context.resource or resource
        if not context.timestamp:
            context.timestamp = datetime.now(timezone.utc).isoformat()

        if isinstance(error, DataApiError):
            if not error.context.operation:
                error.context = context
            return error

        sqlstate = get_sqlstate(error)
        message = get_driver_message(error)
        lowered = message.lower()

        if sqlstate == "28000" or "login failed" in lowered:
            return AuthenticationError(context=context, cause=error)

        if sqlstate in TIMEOUT_SQLSTATES or any(marker in lowered for marker in TIMEOUT_MARKERS):
            return ConnectionTimeoutError(context=context, cause=error)

        if any(marker in lowered for marker in TLS_MARKERS):
            return TLSError(context=context, cause=error)

        if sqlstate == "42S02" or "invalid object name" in lowered:
            return InternalError(
                message="Table not found. Database structure may have changed.",
                error_code=ErrorCode.TABLE_NOT_FOUND,
                context=context,
                cause=error,
            )

        if connecting or (sqlstate and sqlstate.startswith("08")):
            return ConnectionError(
                message=f"Failed to connect to SQL Server: {message}",
                context=context,
                cause=error,
            )

        return InternalError(message=message, context=context, cause=error)

    @staticmethod
    def to_response(error: DataApiError, include_diagnostics: bool = False) -> Dict[str, Any]:
        """
        Render the stable error body returned over HTTP.

        Args:
            error: Classified error
            include_diagnostics: Add the raw message and stack trace

        Returns:
            JSON-safe dictionary
        """
        body: Dict[str, Any] = {
            "success": False,
            "error": error.get_user_message(),
            "errorCode": error.error_code,
        }
        if include_diagnostics:
            original = error.cause or error
            body["detail"] = str(original)
            body["stack"] = "".join(
                traceback.format_exception(type(original), original, original.__traceback__)
            )
        return body


def handle_data_error(operation: Optional[str] = None, resource: Optional[str] = None):
    """
    Decorator converting any exception raised by the wrapped call into a
    classified ``DataApiError``.

    Args:
        operation: Operation name for context
        resource: Resource name for context
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if isinstance(e, DataApiError):
                    raise
                data_error = ErrorHandler.handle_error(e, operation=operation or func.__name__, resource=resource)
                log_error(logger, data_error, operation=operation or func.__name__)
                raise data_error from e

        return wrapper
    return decorator


class ErrorHandlingContext:
    """Context manager that classifies and logs errors raised inside it."""

    def __init__(
        self,
        operation: str,
        resource: Optional[str] = None,
        connecting: bool = False,
        log_errors: bool = True,
    ):
        self.operation = operation
        self.resource = resource
        self.connecting = connecting
        self.log_errors = log_errors
        self.context = ErrorContext(operation=operation, resource=resource)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_val is None or not isinstance(exc_val, Exception):
            return False

        data_error = ErrorHandler.handle_error(
            exc_val,
            operation=self.operation,
            resource=self.resource,
            context=self.context,
            connecting=self.connecting,
        )
        if data_error is exc_val:
            return False
        if self.log_errors:
            log_error(logger, data_error, operation=self.operation)
        raise data_error from exc_val
