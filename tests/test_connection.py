"""Tests for the database connection lifecycle and statement execution."""

import struct
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from business_data_api.client import (
    ConnectionManager,
    MetadataCatalogReader,
    SqlClient,
    get_connection_manager,
    initialize_connection_manager,
    shutdown_connection_manager,
)
from business_data_api.client.connection import (
    SQL_COPT_SS_ACCESS_TOKEN,
    SQL_SS_TIMESTAMPOFFSET,
    convert_datetimeoffset,
)
from business_data_api.config.settings import ServerConfig
from business_data_api.errors import (
    AuthenticationError,
    ConnectionError,
    ConnectionTimeoutError,
    ErrorCode,
    InternalError,
    TLSError,
)
from business_data_api.models import CatalogTable


def checkout(manager):
    """Lease a connection and hand it back straight away."""
    with manager.lease() as connection:
        return connection


class TestConnectionManager:
    """Test cases for ConnectionManager."""

    def test_lazy_connect(self, connection_manager, business_database):
        """No connection is opened until the first lease."""
        assert not connection_manager.is_connected
        assert business_database.connect_calls == []

        connection = checkout(connection_manager)

        assert connection_manager.is_connected
        assert connection_manager.active_strategy == "plain"
        connection_string, kwargs = business_database.connect_calls[0]
        assert "Encrypt=no" in connection_string
        assert kwargs == {"timeout": 5}
        assert connection.timeout == 10
        assert SQL_SS_TIMESTAMPOFFSET in connection.output_converters

    def test_healthy_connection_reused(self, connection_manager, business_database):
        """A cached connection passing the health check is handed out again."""
        first = checkout(connection_manager)
        second = checkout(connection_manager)

        assert first is second
        assert len(business_database.connect_calls) == 1
        assert ("SELECT 1", ()) in business_database.statements

    def test_unhealthy_connection_replaced(self, connection_manager, business_database):
        """A failed health check closes the cached connection and reconnects."""
        first = checkout(connection_manager)
        first.healthy = False

        second = checkout(connection_manager)

        assert second is not first
        assert first.closed
        assert len(business_database.connect_calls) == 2

    def test_strategy_fallback(self, connection_manager, business_database):
        """Strategies are tried in order until one connects."""
        business_database.connect_errors = [
            Exception("08001", "SSL Provider: unsupported protocol"),
        ]

        checkout(connection_manager)

        assert connection_manager.active_strategy == "encrypted"
        assert len(business_database.connect_calls) == 2
        assert "Encrypt=yes" in business_database.connect_calls[1][0]

    @pytest.mark.parametrize("error, expected_type, expected_code", [
        (Exception("28000", "Login failed for user 'api_reader'."), AuthenticationError, ErrorCode.AUTHENTICATION_ERROR),
        (Exception("HYT00", "Login timeout expired"), ConnectionTimeoutError, ErrorCode.CONNECTION_TIMEOUT),
        (Exception("08001", "TLS handshake failed"), TLSError, ErrorCode.TLS_ERROR),
        (Exception("01000", "Can't open lib 'ODBC Driver 18 for SQL Server'"), ConnectionError, ErrorCode.UNKNOWN),
    ])
    def test_all_strategies_fail(self, connection_manager, business_database, error, expected_type, expected_code):
        """When every strategy fails the last error is classified as a connection error."""
        business_database.connect_errors = [Exception("08001", "first failure"), error]

        with pytest.raises(expected_type) as exc_info:
            checkout(connection_manager)

        assert exc_info.value.error_code == expected_code
        assert exc_info.value.context.additional_data == {"strategies": ["plain", "encrypted"]}
        assert not connection_manager.is_connected

    def test_invalidate_forces_reconnect(self, connection_manager, business_database):
        first = checkout(connection_manager)

        connection_manager.invalidate()

        assert first.closed
        assert not connection_manager.is_connected
        assert checkout(connection_manager) is not first
        assert len(business_database.connect_calls) == 2

    def test_close(self, connection_manager):
        connection = checkout(connection_manager)

        connection_manager.close()
        connection_manager.close()

        assert connection.closed
        assert not connection_manager.is_connected
        assert connection_manager.active_strategy is None

    def test_test_connection(self, connection_manager):
        assert connection_manager.test_connection() == {
            "server": "sql.test.local",
            "database": "LoansDb",
            "strategy": "plain",
        }

    def test_azure_ad_access_token(self, make_database):
        """azure_ad auth passes the token struct before connecting."""
        config = ServerConfig(db_server="srv", db_name="db", db_auth_method="azure_ad")
        database = make_database()
        credential = Mock()
        credential.get_token.return_value = Mock(token="abc")
        manager = ConnectionManager(config, connect=database.connect, credential=credential)

        checkout(manager)

        _, kwargs = database.connect_calls[0]
        token_bytes = "abc".encode("utf-16-le")
        assert kwargs["attrs_before"] == {
            SQL_COPT_SS_ACCESS_TOKEN: struct.pack(f"<I{len(token_bytes)}s", len(token_bytes), token_bytes)
        }
        credential.get_token.assert_called_once_with("https://database.windows.net/.default")

    def test_azure_ad_token_failure(self, make_database):
        config = ServerConfig(db_server="srv", db_name="db", db_auth_method="azure_ad")
        database = make_database()
        credential = Mock()
        credential.get_token.side_effect = RuntimeError("no identity")
        manager = ConnectionManager(config, connect=database.connect, credential=credential)

        with pytest.raises(AuthenticationError, match="Failed to get an Azure AD token"):
            checkout(manager)
        assert database.connect_calls == []

    def test_process_wide_manager(self, mock_config, make_database):
        shutdown_connection_manager()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_connection_manager()

        manager = initialize_connection_manager(mock_config, connect=make_database().connect)
        assert get_connection_manager() is manager

        shutdown_connection_manager()
        with pytest.raises(RuntimeError):
            get_connection_manager()


class TestConnectionLease:
    """Exclusive use of the cached connection."""

    def test_lease_is_exclusive(self, connection_manager, business_database):
        """A second request waits for the first instead of health-checking a busy connection."""
        held = threading.Event()
        release = threading.Event()
        leased = []

        def first_request():
            with connection_manager.lease() as connection:
                connection.busy = True
                held.set()
                release.wait(5)
                connection.busy = False

        def second_request():
            with connection_manager.lease() as connection:
                leased.append(connection)

        first = threading.Thread(target=first_request)
        first.start()
        assert held.wait(5)
        second = threading.Thread(target=second_request)
        second.start()
        second.join(0.2)

        assert second.is_alive()
        assert leased == []

        release.set()
        first.join(5)
        second.join(5)

        assert leased[0] is business_database.connections[0]
        assert not leased[0].closed
        assert len(business_database.connect_calls) == 1

    def test_close_waits_for_lease(self, connection_manager):
        """Shutdown does not close a connection a request is still using."""
        held = threading.Event()
        release = threading.Event()
        leased = []

        def request():
            with connection_manager.lease() as connection:
                leased.append(connection)
                held.set()
                release.wait(5)

        worker = threading.Thread(target=request)
        worker.start()
        assert held.wait(5)
        [connection] = leased
        closer = threading.Thread(target=connection_manager.close)
        closer.start()
        closer.join(0.2)

        assert not connection.closed

        release.set()
        worker.join(5)
        closer.join(5)

        assert connection.closed
        assert not connection_manager.is_connected

    def test_connection_error_drops_connection(self, connection_manager):
        with pytest.raises(ConnectionError):
            with connection_manager.lease() as connection:
                raise ConnectionError("session lost")

        assert connection.closed
        assert not connection_manager.is_connected

    def test_driver_link_failure_drops_connection(self, connection_manager):
        """Raw driver errors are classified before deciding to drop the connection."""
        with pytest.raises(Exception, match="08S01"):
            with connection_manager.lease() as connection:
                raise Exception("08S01", "[08S01] Communication link failure")

        assert connection.closed
        assert not connection_manager.is_connected

    def test_other_errors_keep_connection(self, connection_manager):
        with pytest.raises(InternalError):
            with connection_manager.lease() as connection:
                raise InternalError("bad row")

        assert not connection.closed
        assert connection_manager.is_connected


def test_convert_datetimeoffset():
    raw = struct.pack("<6hI2h", 2024, 3, 15, 23, 30, 0, 500000000, 10, 0)

    value = convert_datetimeoffset(raw)

    assert value == datetime(2024, 3, 15, 23, 30, 0, 500000, tzinfo=timezone(timedelta(hours=10)))


class TestSqlClient:
    """Test cases for SqlClient."""

    def test_fetch_all_returns_dicts(self, connection_manager, business_database):
        client = SqlClient(checkout(connection_manager))

        rows = client.fetch_all("SELECT TOP (1000) [LoanNumber] FROM [dbo].[BusinessWritten]")

        assert [row["LoanNumber"] for row in rows] == ["L-1001", "L-0999"]

    def test_fetch_all_binds_parameters_positionally(self, connection_manager, business_database):
        client = SqlClient(checkout(connection_manager))

        client.fetch_all("SELECT x FROM t WHERE a = ? AND b = ?", ("one", 2))

        assert business_database.statements[-1] == ("SELECT x FROM t WHERE a = ? AND b = ?", ("one", 2))

    def test_statement_without_result_set(self):
        cursor = Mock(description=None)
        cursor.nextset.return_value = False
        connection = Mock()
        connection.cursor.return_value = cursor

        assert SqlClient(connection).fetch_all("SET NOCOUNT ON;") == []
        cursor.close.assert_called_once()

    def test_driver_error_is_classified(self, connection_manager, business_database):
        business_database.errors["FROM [dbo].[Gone]"] = Exception("42S02", "Invalid object name 'dbo.Gone'.")
        client = SqlClient(checkout(connection_manager))

        with pytest.raises(InternalError) as exc_info:
            client.fetch_all("SELECT * FROM [dbo].[Gone]")

        assert exc_info.value.error_code == ErrorCode.TABLE_NOT_FOUND


class TestMetadataCatalogReader:
    """Test cases for MetadataCatalogReader."""

    def test_list_tables(self, connection_manager):
        catalog = MetadataCatalogReader(SqlClient(checkout(connection_manager)))

        assert [t.name for t in catalog.list_tables()] == ["AuditLog", "BusinessWritten", "Customers"]

    def test_list_columns_binds_schema_and_table(self, connection_manager, business_database):
        catalog = MetadataCatalogReader(SqlClient(checkout(connection_manager)))

        columns = catalog.list_columns(CatalogTable("dbo", "BusinessWritten"))

        assert [c.name for c in columns][:4] == ["Id", "LoanNumber", "ClientName", "CreatedDate"]
        assert columns[3].data_type == "datetime"
        assert columns[3].nullable is True
        assert business_database.statements[-1][1] == ("dbo", "BusinessWritten")

    def test_list_columns_by_table(self, connection_manager):
        catalog = MetadataCatalogReader(SqlClient(checkout(connection_manager)))

        by_table = catalog.list_columns_by_table()

        assert set(by_table) == {
            CatalogTable("dbo", "AuditLog"),
            CatalogTable("dbo", "BusinessWritten"),
            CatalogTable("dbo", "Customers"),
        }
        assert [c.name for c in by_table[CatalogTable("dbo", "Customers")]] == ["Id", "Name"]
