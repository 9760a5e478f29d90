"""Statement execution over an open DB-API connection."""

from typing import Any, List, Sequence

from ..models import RecordRow
from ..errors import get_logger, handle_data_error, OperationLogger


logger = get_logger(__name__)


class SqlClient:
    """Runs one statement with positional bound parameters and returns row dicts."""

    def __init__(self, connection: Any):
        self.connection = connection

    @handle_data_error(operation="execute_query", resource="sql_server")
    def fetch_all(self, query: str, parameters: Sequence[Any] = ()) -> List[RecordRow]:
        """
        Execute a query and fetch every row.

        Args:
            query: SQL text using ``?`` markers
            parameters: Values bound to the markers, in order

        Returns:
            One dict per row, keyed by result column name

        Raises:
            DataApiError: Classified driver error
        """
        preview = " ".join(query.split())[:100]
        with OperationLogger(logger, "execute_query", query_preview=preview, parameter_count=len(parameters)) as op:
            cursor = self.connection.cursor()
            try:
                cursor.execute(query, *parameters)

                # batches may start with statements that return no result set
                while cursor.description is None and cursor.nextset():
                    pass

                if cursor.description is None:
                    op.set_context(row_count=0)
                    return []

                columns = [description[0] for description in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
                op.set_context(row_count=len(rows), column_count=len(columns))
                return rows
            finally:
                cursor.close()
