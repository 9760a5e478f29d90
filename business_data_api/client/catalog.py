"""Information-schema reader for tables and columns."""

from typing import Dict, List

from ..models import CatalogColumn, CatalogTable, DEFAULT_SCHEMA
from ..errors import get_logger, log_operation
from .sql_client import SqlClient


logger = get_logger(__name__)


class MetadataCatalogReader:
    """Lists base tables and their columns from INFORMATION_SCHEMA."""

    LIST_TABLES_QUERY = """
        SELECT TABLE_SCHEMA, TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_SCHEMA, TABLE_NAME
    """

    LIST_COLUMNS_QUERY = """
        SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ?
        ORDER BY ORDINAL_POSITION
    """

    LIST_ALL_COLUMNS_QUERY = """
        SELECT c.TABLE_SCHEMA, c.TABLE_NAME, c.COLUMN_NAME, c.DATA_TYPE, c.IS_NULLABLE
        FROM INFORMATION_SCHEMA.COLUMNS c
        INNER JOIN INFORMATION_SCHEMA.TABLES t
            ON t.TABLE_SCHEMA = c.TABLE_SCHEMA AND t.TABLE_NAME = c.TABLE_NAME
        WHERE t.TABLE_TYPE = 'BASE TABLE'
        ORDER BY c.TABLE_SCHEMA, c.TABLE_NAME, c.ORDINAL_POSITION
    """

    def __init__(self, sql_client: SqlClient):
        self.sql_client = sql_client

    def list_tables(self) -> List[CatalogTable]:
        """All base tables, ordered by schema then name."""
        rows = self.sql_client.fetch_all(self.LIST_TABLES_QUERY)
        tables = [
            CatalogTable(schema=row["TABLE_SCHEMA"] or DEFAULT_SCHEMA, name=row["TABLE_NAME"])
            for row in rows
        ]
        log_operation(logger, "catalog_tables_listed", count=len(tables))
        return tables

    def list_columns(self, table: CatalogTable) -> List[CatalogColumn]:
        """Columns of one table in ordinal order."""
        rows = self.sql_client.fetch_all(self.LIST_COLUMNS_QUERY, (table.schema, table.name))
        columns = [self._column(row) for row in rows]
        log_operation(
            logger,
            "catalog_columns_listed",
            table=table.qualified_name,
            count=len(columns),
            preview=[c.name for c in columns[:10]],
        )
        return columns

    def list_columns_by_table(self) -> Dict[CatalogTable, List[CatalogColumn]]:
        """Columns of every base table, fetched in one query."""
        columns_by_table: Dict[CatalogTable, List[CatalogColumn]] = {}
        for row in self.sql_client.fetch_all(self.LIST_ALL_COLUMNS_QUERY):
            table = CatalogTable(schema=row["TABLE_SCHEMA"] or DEFAULT_SCHEMA, name=row["TABLE_NAME"])
            columns_by_table.setdefault(table, []).append(self._column(row))
        log_operation(logger, "catalog_columns_by_table_listed", table_count=len(columns_by_table), level="debug")
        return columns_by_table

    @staticmethod
    def _column(row) -> CatalogColumn:
        return CatalogColumn(
            name=row["COLUMN_NAME"],
            data_type=row["DATA_TYPE"] or "",
            nullable=str(row["IS_NULLABLE"]).upper() == "YES",
        )
