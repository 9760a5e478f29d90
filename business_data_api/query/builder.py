"""Builds the parameterised SELECT for a resolved table.

Identifiers come from catalog discovery and are bracket-quoted; the caller's
dates only ever travel as bound parameters. The filtered form declares
``@startDate``/``@endDate`` from the two positional ``?`` markers so the
statement reads the same as a named-parameter query.
"""

from datetime import date
from typing import NamedTuple, Optional, Tuple

from ..errors import get_logger, log_operation
from ..models import QuerySpec, ROW_LIMIT


logger = get_logger(__name__)


class BoundQuery(NamedTuple):
    """Query text plus its positional parameters; unpacks as ``(text, params)``."""
    text: str
    parameters: Tuple[date, ...]

    @property
    def is_filtered(self) -> bool:
        return bool(self.parameters)


def quote_identifier(identifier: str) -> str:
    """Quote a SQL Server identifier: ``a]b`` -> ``[a]]b]``."""
    return "[" + identifier.replace("]", "]]") + "]"


class QueryBuilder:
    """Turns a ``QuerySpec`` into SQL Server text and bound parameters."""

    def __init__(self, max_rows: int = ROW_LIMIT):
        self.max_rows = max_rows

    def build(self, spec: QuerySpec) -> BoundQuery:
        """
        Build the data query.

        With a date column the query is filtered by the date range and ordered
        newest first; without one it is unfiltered with an arbitrary but
        stable ``ORDER BY (SELECT NULL)``. Rows are capped at ``max_rows``.

        Args:
            spec: Table, projection, date column and date range

        Returns:
            BoundQuery with the statement and its parameters
        """
        if not spec.projected_columns:
            raise ValueError("projected_columns must not be empty")

        row_limit = min(spec.row_limit, self.max_rows)
        select_list = ", ".join(quote_identifier(column) for column in spec.projected_columns)
        source = f"{quote_identifier(spec.schema)}.{quote_identifier(spec.table)}"

        if spec.date_column:
            if spec.start_date is None or spec.end_date is None:
                raise ValueError("start_date and end_date are required when filtering by date")

            date_column = quote_identifier(spec.date_column)
            order_column = quote_identifier(spec.order_descending_by or spec.date_column)
            text = (
                "SET NOCOUNT ON;\n"
                "DECLARE @startDate DATE = ?;\n"
                "DECLARE @endDate DATE = ?;\n"
                f"SELECT TOP ({row_limit}) {select_list}\n"
                f"FROM {source}\n"
                f"WHERE {date_column} BETWEEN @startDate AND @endDate\n"
                f"ORDER BY {order_column} DESC;"
            )
            parameters: Tuple[date, ...] = (spec.start_date, spec.end_date)
        else:
            order_by = self._unfiltered_order(spec.order_descending_by)
            text = (
                f"SELECT TOP ({row_limit}) {select_list}\n"
                f"FROM {source}\n"
                f"ORDER BY {order_by};"
            )
            parameters = ()

        log_operation(
            logger,
            "query_built",
            table=f"{spec.schema}.{spec.table}",
            filtered=bool(parameters),
            column_count=len(spec.projected_columns),
            row_limit=row_limit,
            level="debug",
        )
        return BoundQuery(text, parameters)

    @staticmethod
    def _unfiltered_order(order_descending_by: Optional[str]) -> str:
        if order_descending_by:
            return f"{quote_identifier(order_descending_by)} DESC"
        return "(SELECT NULL)"
