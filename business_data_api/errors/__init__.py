"""Error handling and logging utilities for the business data API."""

from .exceptions import *
from .handlers import *
from .logging_config import *

__all__ = [
    # Exceptions
    'ErrorKind',
    'ErrorCode',
    'ErrorContext',
    'DataApiError',
    'BadRequestError',
    'TableNotFoundError',
    'ConnectionError',
    'AuthenticationError',
    'ConnectionTimeoutError',
    'TLSError',
    'InternalError',
    'ConfigurationError',

    # Error handlers
    'ErrorHandler',
    'ErrorHandlingContext',
    'handle_data_error',
    'get_sqlstate',

    # Logging
    'setup_logging',
    'get_logger',
    'log_operation',
    'log_error',
    'log_performance',
    'OperationLogger',
]
