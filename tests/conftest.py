"""Pytest configuration and fixtures."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pytest

from business_data_api.config.settings import ServerConfig
from business_data_api.client import ConnectionManager


@pytest.fixture
def mock_config():
    """Mock server configuration for testing."""
    return ServerConfig(
        db_server="sql.test.local",
        db_name="LoansDb",
        db_port=1433,
        db_user="api_reader",
        db_password="s3cret}pw",
        db_auth_method="sql_password",
        db_connect_timeout=5,
        db_query_timeout=10,
        db_connection_strategies=["plain", "encrypted"],
        environment="production",
        log_level="DEBUG",
        structured_logging=False,
    )


class FakeCursor:
    """DB-API cursor answering catalog and data queries from a FakeDatabase."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.database = connection.database
        self.description = None
        self._rows: List[Tuple] = []
        self.closed = False

    def execute(self, query: str, *params):
        self.database.statements.append((query, params))

        for marker, error in self.database.errors.items():
            if marker in query:
                raise error

        if query.strip() == "SELECT 1":
            if not self.connection.healthy:
                raise Exception("08S01", "[08S01] Communication link failure")
            if self.connection.busy:
                raise Exception("HY000", "[HY000] Connection is busy with results for another command")
            self._set_result(["health"], [(1,)])
        elif "INFORMATION_SCHEMA.TABLES" in query and "INFORMATION_SCHEMA.COLUMNS" not in query:
            self._set_result(
                ["TABLE_SCHEMA", "TABLE_NAME"],
                sorted(self.database.tables.keys()),
            )
        elif "WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ?" in query:
            columns = self.database.tables.get(tuple(params), [])
            self._set_result(
                ["COLUMN_NAME", "DATA_TYPE", "IS_NULLABLE"],
                [(name, data_type, "YES") for name, data_type in columns],
            )
        elif "INFORMATION_SCHEMA.COLUMNS" in query:
            rows = []
            for (schema, table), columns in sorted(self.database.tables.items()):
                rows.extend((schema, table, name, data_type, "YES") for name, data_type in columns)
            self._set_result(["TABLE_SCHEMA", "TABLE_NAME", "COLUMN_NAME", "DATA_TYPE", "IS_NULLABLE"], rows)
        else:
            rows = self.database.data_rows
            columns = list(rows[0].keys()) if rows else ["empty"]
            self._set_result(columns, [tuple(row[c] for c in columns) for row in rows])
        return self

    def _set_result(self, columns: List[str], rows: List[Tuple]):
        self.description = [(column, None, None, None, None, None, None) for column in columns]
        self._rows = list(rows)

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def nextset(self):
        return False

    def close(self):
        self.closed = True


class FakeConnection:
    """DB-API connection handing out FakeCursors."""

    def __init__(self, database: "FakeDatabase", connection_string: str):
        self.database = database
        self.connection_string = connection_string
        self.healthy = True
        # set while a statement on this connection has pending results
        self.busy = False
        self.closed = False
        self.timeout = 0
        self.output_converters: Dict[int, Any] = {}

    def cursor(self):
        return FakeCursor(self)

    def add_output_converter(self, sql_type: int, func):
        self.output_converters[sql_type] = func

    def close(self):
        self.closed = True


class FakeDatabase:
    """
    In-memory stand-in for a SQL Server database.

    ``tables`` maps ``(schema, table)`` to ``[(column, data_type), ...]``;
    ``data_rows`` is what any data query returns. Every executed statement is
    recorded in ``statements`` as ``(query, params)``.
    """

    def __init__(
        self,
        tables: Optional[Dict[Tuple[str, str], List[Tuple[str, str]]]] = None,
        data_rows: Optional[List[Dict[str, Any]]] = None,
    ):
        self.tables = tables or {}
        self.data_rows = data_rows or []
        self.statements: List[Tuple[str, Tuple]] = []
        self.errors: Dict[str, Exception] = {}
        self.connect_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.connections: List[FakeConnection] = []
        self.connect_errors: List[Exception] = []

    def connect(self, connection_string: str, **kwargs) -> FakeConnection:
        self.connect_calls.append((connection_string, kwargs))
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        connection = FakeConnection(self, connection_string)
        self.connections.append(connection)
        return connection

    @property
    def data_statements(self) -> List[Tuple[str, Tuple]]:
        return [
            (query, params) for query, params in self.statements
            if "INFORMATION_SCHEMA" not in query and query.strip() != "SELECT 1"
        ]


@pytest.fixture
def business_database():
    """A database holding one BusinessWritten table among unrelated tables."""
    return FakeDatabase(
        tables={
            ("dbo", "AuditLog"): [("Id", "int"), ("Message", "nvarchar")],
            ("dbo", "BusinessWritten"): [
                ("Id", "int"),
                ("LoanNumber", "varchar"),
                ("ClientName", "nvarchar"),
                ("CreatedDate", "datetime"),
                ("PremiumAmount", "decimal"),
                ("Notes", "nvarchar"),
            ],
            ("dbo", "Customers"): [("Id", "int"), ("Name", "nvarchar")],
        },
        data_rows=[
            {
                "CreatedDate": datetime(2024, 3, 15, 0, 0, 0),
                "LoanNumber": "L-1001",
                "ClientName": "Acme Pty Ltd",
                "PremiumAmount": 1250.5,
                "Id": 7,
                "Notes": None,
            },
            {
                "CreatedDate": datetime(2024, 2, 1, 9, 30, 0),
                "LoanNumber": "L-0999",
                "ClientName": "Globex",
                "PremiumAmount": 980.0,
                "Id": 3,
                "Notes": "renewal",
            },
        ],
    )


@pytest.fixture
def connection_manager(mock_config, business_database):
    """Connection manager wired to the fake business database."""
    return ConnectionManager(mock_config, connect=business_database.connect)


@pytest.fixture
def make_database():
    """Factory for empty or custom fake databases."""
    return FakeDatabase
