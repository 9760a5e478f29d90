"""Process-wide SQL Server connection with lazy creation and health checks.

Lifecycle: the connection is opened on the first ``lease()``, checked with
``SELECT 1`` every time it is leased again, reopened when that check fails or
after ``invalidate()``, and closed by ``close()`` (wired to the HTTP app
shutdown). Requests are never retried here; a failed check only causes a
reconnect before the request proceeds.

A lease is exclusive: pyodbc connections must not be shared between threads
and SQL Server rejects a second statement while results are pending, so
concurrent requests queue on the lease and the cached connection is only ever
checked, replaced or closed by the thread holding it.
"""

import struct
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from azure.identity import DefaultAzureCredential

from ..config import ServerConfig
from ..errors import (
    AuthenticationError,
    DataApiError,
    ErrorContext,
    ErrorHandler,
    ErrorKind,
    get_logger,
    log_error,
    log_operation,
)


logger = get_logger(__name__)

SQL_COPT_SS_ACCESS_TOKEN = 1256
SQL_SS_TIMESTAMPOFFSET = -155
AZURE_SQL_SCOPE = "https://database.windows.net/.default"


def convert_datetimeoffset(value: bytes) -> datetime:
    """Output converter for DATETIMEOFFSET columns, which pyodbc cannot map itself."""
    year, month, day, hour, minute, second, nanoseconds, tz_hour, tz_minute = struct.unpack("<6hI2h", value)
    return datetime(
        year, month, day, hour, minute, second, nanoseconds // 1000,
        tzinfo=timezone(timedelta(hours=tz_hour, minutes=tz_minute)),
    )


def _pyodbc_connect(connection_string: str, **kwargs) -> Any:
    # imported on first connect; pyodbc needs the system ODBC manager at import time
    import pyodbc
    return pyodbc.connect(connection_string, **kwargs)


class ConnectionManager:
    """Owns the cached database connection."""

    HEALTH_CHECK_QUERY = "SELECT 1"

    def __init__(
        self,
        config: ServerConfig,
        connect: Optional[Callable[..., Any]] = None,
        credential: Optional[Any] = None,
    ):
        """
        Args:
            config: Server configuration with the connection strategies
            connect: DB-API ``connect(connection_string, **kwargs)``; pyodbc by default
            credential: Azure token credential for ``azure_ad`` auth
        """
        self.config = config
        self._connect = connect or _pyodbc_connect
        self._credential = credential
        self._connection: Optional[Any] = None
        self._active_strategy: Optional[str] = None
        # held for the whole lease; reentrant so invalidate()/close() work inside one
        self._lock = threading.RLock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def active_strategy(self) -> Optional[str]:
        return self._active_strategy

    @contextmanager
    def lease(self) -> Iterator[Any]:
        """
        Hold the healthy cached connection exclusively for the duration of the block.

        Other callers wait until the block exits. An exception raised inside
        the block that classifies as a connection error drops the connection
        before the lease is released, so the next lease reconnects.

        Raises:
            ConnectionError: If every connection strategy fails
        """
        with self._lock:
            connection = self._acquire()
            try:
                yield connection
            except Exception as e:
                error = e if isinstance(e, DataApiError) else ErrorHandler.handle_error(e, operation="lease_connection")
                if error.kind is ErrorKind.CONNECTION_ERROR and self._connection is connection:
                    self.invalidate()
                raise

    def invalidate(self) -> None:
        """Drop the cached connection so the next lease reconnects."""
        with self._lock:
            if self._connection is not None:
                log_operation(logger, "connection_invalidated", strategy=self._active_strategy)
                self._discard()

    def close(self) -> None:
        """Close the cached connection, if any, once no lease holds it."""
        with self._lock:
            if self._connection is not None:
                self._discard()
                log_operation(logger, "database_connection_closed")

    def test_connection(self) -> Dict[str, Any]:
        """Lease a connection and describe it."""
        with self.lease():
            return {
                "server": self.config.db_server,
                "database": self.config.db_name,
                "strategy": self._active_strategy,
            }

    def _acquire(self) -> Any:
        # caller holds self._lock
        if self._connection is not None:
            if self._is_healthy(self._connection):
                return self._connection
            log_operation(logger, "cached_connection_unhealthy", strategy=self._active_strategy, level="warning")
            self._discard()

        self._connection = self._open()
        return self._connection

    def _open(self) -> Any:
        strategies = self.config.connection_strategies()
        kwargs: Dict[str, Any] = {"timeout": self.config.db_connect_timeout}
        if self.config.db_auth_method == "azure_ad":
            kwargs["attrs_before"] = {SQL_COPT_SS_ACCESS_TOKEN: self._access_token_struct()}

        last_error: Optional[Exception] = None
        for index, strategy in enumerate(strategies, start=1):
            log_operation(
                logger,
                "connection_attempt",
                strategy=strategy.name,
                attempt=index,
                of=len(strategies),
                server=self.config.db_server,
            )
            try:
                connection = self._connect(strategy.connection_string, **kwargs)
            except Exception as e:
                log_operation(logger, "connection_strategy_failed", strategy=strategy.name, error=str(e), level="warning")
                last_error = e
                continue

            self._configure(connection)
            self._active_strategy = strategy.name
            log_operation(logger, "database_connected", strategy=strategy.name, database=self.config.db_name)
            return connection

        context = ErrorContext(
            operation="connect_database",
            resource=self.config.db_server,
            additional_data={"strategies": [s.name for s in strategies]},
        )
        error = ErrorHandler.handle_error(last_error, context=context, connecting=True)
        log_error(logger, error, operation="connect_database")
        raise error from last_error

    def _configure(self, connection: Any) -> None:
        connection.timeout = self.config.db_query_timeout
        if hasattr(connection, "add_output_converter"):
            connection.add_output_converter(SQL_SS_TIMESTAMPOFFSET, convert_datetimeoffset)

    def _access_token_struct(self) -> bytes:
        try:
            credential = self._credential or DefaultAzureCredential()
            token = credential.get_token(AZURE_SQL_SCOPE).token
        except Exception as e:
            context = ErrorContext(operation="get_access_token", resource=AZURE_SQL_SCOPE)
            auth_error = AuthenticationError("Failed to get an Azure AD token for SQL Server", context=context, cause=e)
            log_error(logger, auth_error, operation="get_access_token")
            raise auth_error from e

        token_bytes = token.encode("utf-16-le")
        return struct.pack(f"<I{len(token_bytes)}s", len(token_bytes), token_bytes)

    def _is_healthy(self, connection: Any) -> bool:
        try:
            cursor = connection.cursor()
            try:
                cursor.execute(self.HEALTH_CHECK_QUERY)
                cursor.fetchone()
            finally:
                cursor.close()
            return True
        except Exception as e:
            log_operation(logger, "connection_health_check_failed", error=str(e), level="debug")
            return False

    def _discard(self) -> None:
        connection, self._connection = self._connection, None
        self._active_strategy = None
        try:
            connection.close()
        except Exception as e:
            log_operation(logger, "connection_close_failed", error=str(e), level="debug")


# Process-wide instance
_connection_manager: Optional[ConnectionManager] = None


def initialize_connection_manager(config: ServerConfig, **kwargs) -> ConnectionManager:
    """Create (or replace) the process-wide connection manager."""
    global _connection_manager
    if _connection_manager is not None:
        _connection_manager.close()
    _connection_manager = ConnectionManager(config, **kwargs)
    return _connection_manager


def get_connection_manager() -> ConnectionManager:
    """Get the process-wide connection manager."""
    if _connection_manager is None:
        raise RuntimeError("Connection manager not initialized. Call initialize_connection_manager() first.")
    return _connection_manager


def shutdown_connection_manager() -> None:
    """Close and forget the process-wide connection manager."""
    global _connection_manager
    if _connection_manager is not None:
        _connection_manager.close()
        _connection_manager = None
