"""Exception classes for the business data API."""

from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass


class ErrorKind(Enum):
    """Failure kinds a retrieval can end in."""
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    CONNECTION_ERROR = "connection_error"
    INTERNAL = "internal"


class ErrorCode:
    """Machine-readable codes surfaced in the ``errorCode`` response field."""
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    TLS_ERROR = "TLS_ERROR"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    UNKNOWN = "UNKNOWN"
    MISSING_PARAMETERS = "MISSING_PARAMETERS"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"


@dataclass
class ErrorContext:
    """Additional context information for errors."""
    operation: Optional[str] = None
    resource: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


class DataApiError(Exception):
    """Base exception for every failure the API reports."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        error_code: str = ErrorCode.UNKNOWN,
        status_code: int = 500,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.error_code = error_code
        self.status_code = status_code
        self.context = context or ErrorContext()
        self.cause = cause

    def get_user_message(self) -> str:
        """Get a user-facing error message."""
        return self.message

    def get_technical_details(self) -> str:
        """Get technical details for debugging."""
        details = [f"Error: {self.message}", f"Code: {self.error_code}"]
        if self.cause:
            details.append(f"Underlying Cause: {self.cause}")
        return " | ".join(details)


class BadRequestError(DataApiError):
    """Missing or malformed request parameters."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: str = ErrorCode.MISSING_PARAMETERS,
        context: Optional[ErrorContext] = None,
    ):
        if field:
            context = context or ErrorContext()
            context.additional_data = {**(context.additional_data or {}), "field": field}

        super().__init__(
            message=message,
            kind=ErrorKind.BAD_REQUEST,
            error_code=error_code,
            status_code=400,
            context=context,
        )
        self.field = field


class TableNotFoundError(DataApiError):
    """No table in the catalog matched the discovery heuristics."""

    def __init__(
        self,
        message: str = "No Business Written table found in database",
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.NOT_FOUND,
            error_code=ErrorCode.TABLE_NOT_FOUND,
            status_code=404,
            context=context,
        )


class ConnectionError(DataApiError):
    """Database could not be reached or the session was lost."""

    default_message = "Failed to connect to SQL Server"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: str = ErrorCode.UNKNOWN,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message or self.default_message,
            kind=ErrorKind.CONNECTION_ERROR,
            error_code=error_code,
            status_code=500,
            context=context,
            cause=cause,
        )


class AuthenticationError(ConnectionError):
    """Login to the database was refused."""

    default_message = "Login failed. Check username/password."

    def __init__(self, message: Optional[str] = None, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.AUTHENTICATION_ERROR, context, cause)


class ConnectionTimeoutError(ConnectionError):
    """Connecting to (or talking to) the database timed out."""

    default_message = "Connection timeout. Server may be down or firewall blocking."

    def __init__(self, message: Optional[str] = None, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.CONNECTION_TIMEOUT, context, cause)


class TLSError(ConnectionError):
    """TLS negotiation with the database failed."""

    default_message = (
        "TLS/SSL Error: Connection failed. The server may require a different "
        "encryption configuration (see DB_CONNECTION_STRATEGIES)."
    )

    def __init__(self, message: Optional[str] = None, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.TLS_ERROR, context, cause)


class InternalError(DataApiError):
    """Anything not otherwise classified; the original message is kept."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.UNKNOWN,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.INTERNAL,
            error_code=error_code,
            status_code=500,
            context=context,
            cause=cause,
        )


class ConfigurationError(DataApiError):
    """Invalid or missing configuration detected at startup."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        if config_key:
            context = context or ErrorContext()
            context.additional_data = {**(context.additional_data or {}), "config_key": config_key}

        super().__init__(
            message=message,
            kind=ErrorKind.INTERNAL,
            error_code="CONFIGURATION_ERROR",
            status_code=500,
            context=context,
        )
        self.config_key = config_key

    def get_user_message(self) -> str:
        if self.config_key:
            return f"Configuration error for '{self.config_key}': {self.message}"
        return f"Configuration error: {self.message}"
