"""Composes discovery, query building and formatting into one retrieval."""

from typing import Any, Callable, Optional

from ..client import ConnectionManager, MetadataCatalogReader, SqlClient
from ..discovery import ColumnClassifier, TableResolver
from ..errors import (
    ErrorHandler,
    ErrorKind,
    InternalError,
    get_logger,
    log_error,
    log_operation,
    OperationLogger,
)
from ..models import (
    QuerySpec,
    ResultFormatter,
    RetrievalResult,
    RetrievalState,
    parse_date_param,
)
from ..query import QueryBuilder


logger = get_logger(__name__)


class RetrievalOrchestrator:
    """
    Runs ``GET /api/data`` end to end.

    Steps run strictly in order (validate, connect, discover table, discover
    columns, classify, execute, format). Any failure is classified into one
    ``DataApiError`` carrying the step it happened in; parameter errors are
    raised before the database is touched. The database steps run inside one
    exclusive connection lease, and connection-class failures drop the cached
    connection before the lease is released so the next request reconnects.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        resolver: Optional[TableResolver] = None,
        classifier: Optional[ColumnClassifier] = None,
        builder: Optional[QueryBuilder] = None,
        formatter: Optional[ResultFormatter] = None,
        match_column_concepts: bool = True,
        client_factory: Callable[[Any], SqlClient] = SqlClient,
    ):
        self.connection_manager = connection_manager
        self.resolver = resolver or TableResolver()
        self.classifier = classifier or ColumnClassifier()
        self.builder = builder or QueryBuilder()
        self.formatter = formatter or ResultFormatter()
        self.match_column_concepts = match_column_concepts
        self.client_factory = client_factory

    def retrieve(self, start_date: Optional[str], end_date: Optional[str]) -> RetrievalResult:
        """
        Fetch up to 1000 rows of the discovered table within a date range.

        Args:
            start_date: ``YYYY-MM-DD`` lower bound, inclusive
            end_date: ``YYYY-MM-DD`` upper bound, inclusive

        Returns:
            RetrievalResult for the response body

        Raises:
            DataApiError: BadRequest, NotFound, ConnectionError or Internal
        """
        state = RetrievalState.VALIDATE_INPUT
        with OperationLogger(logger, "retrieve_data", level="info", start_date=start_date, end_date=end_date) as op:
            try:
                start = parse_date_param(start_date, "startDate")
                end = parse_date_param(end_date, "endDate")

                state = RetrievalState.CONNECT_DATABASE
                with self.connection_manager.lease() as connection:
                    sql_client = self.client_factory(connection)
                    catalog = MetadataCatalogReader(sql_client)

                    state = RetrievalState.DISCOVER_TABLE
                    tables = catalog.list_tables()
                    columns_by_table = None
                    if self.match_column_concepts and self.resolver.needs_columns(tables):
                        columns_by_table = catalog.list_columns_by_table()
                    table = self.resolver.resolve(tables, columns_by_table)

                    state = RetrievalState.DISCOVER_COLUMNS
                    if columns_by_table is not None and table in columns_by_table:
                        columns = columns_by_table[table]
                    else:
                        columns = catalog.list_columns(table)
                    if not columns:
                        raise InternalError(f"Table {table.qualified_name} has no readable columns")

                    state = RetrievalState.CLASSIFY_COLUMNS
                    selection = self.classifier.classify(columns)
                    if selection.date_column is None:
                        log_operation(logger, "date_column_not_found", table=table.qualified_name, level="warning")

                    state = RetrievalState.EXECUTE_QUERY
                    query = self.builder.build(QuerySpec(
                        schema=table.schema,
                        table=table.name,
                        projected_columns=selection.projected_columns,
                        date_column=selection.date_column,
                        start_date=start,
                        end_date=end,
                        order_descending_by=selection.date_column,
                    ))
                    rows = sql_client.fetch_all(query.text, query.parameters)

                    state = RetrievalState.FORMAT_RESULTS
                    data = self.formatter.format(rows)

                state = RetrievalState.RESPOND
                op.set_context(table=table.qualified_name, date_column=selection.date_column, row_count=len(data))
                return RetrievalResult(
                    table=table,
                    date_column=selection.date_column,
                    columns=[column.name for column in columns],
                    rows=data,
                    start_date=start.isoformat(),
                    end_date=end.isoformat(),
                )

            except Exception as e:
                error = ErrorHandler.handle_error(
                    e,
                    operation="retrieve_data",
                    connecting=state is RetrievalState.CONNECT_DATABASE,
                )
                error.context.additional_data = {**(error.context.additional_data or {}), "state": state.value}
                op.set_context(failed_state=state.value, error_code=error.error_code)

                if error.kind is ErrorKind.BAD_REQUEST or error.kind is ErrorKind.NOT_FOUND:
                    log_operation(logger, "retrieval_rejected", state=state.value, reason=error.message, level="warning")
                else:
                    log_error(logger, error, operation="retrieve_data")

                if error is e:
                    raise
                raise error from e
