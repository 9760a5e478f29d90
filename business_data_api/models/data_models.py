"""Data models for catalog discovery and retrieval."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
from enum import Enum
import re

from ..errors import BadRequestError, ErrorCode

# A single result row: column name -> scalar value
RecordRow = Dict[str, Any]

DEFAULT_SCHEMA = "dbo"
ROW_LIMIT = 1000
MAX_PROJECTED_COLUMNS = 50

_DATE_PARAM_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class CatalogTable:
    """A base table listed by the information schema."""
    schema: str
    name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"


@dataclass(frozen=True)
class CatalogColumn:
    """A column of a catalog table, in ordinal position order."""
    name: str
    data_type: str
    nullable: bool = True


@dataclass(frozen=True)
class TableMatch:
    """A candidate table with its rank (lower is better) and the rule that matched."""
    table: CatalogTable
    rank: int
    reason: str

    @property
    def sort_key(self) -> Tuple[int, str, str]:
        return (self.rank, self.table.name.lower(), self.table.schema.lower())


@dataclass(frozen=True)
class ColumnSelection:
    """Date column and projection chosen for one request."""
    date_column: Optional[str]
    projected_columns: Tuple[str, ...]


@dataclass(frozen=True)
class QuerySpec:
    """Everything needed to build the data query."""
    schema: str
    table: str
    projected_columns: Tuple[str, ...]
    date_column: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    row_limit: int = ROW_LIMIT
    order_descending_by: Optional[str] = None


class RetrievalState(Enum):
    """Steps of a retrieval, in execution order."""
    VALIDATE_INPUT = "validate_input"
    CONNECT_DATABASE = "connect_database"
    DISCOVER_TABLE = "discover_table"
    DISCOVER_COLUMNS = "discover_columns"
    CLASSIFY_COLUMNS = "classify_columns"
    EXECUTE_QUERY = "execute_query"
    FORMAT_RESULTS = "format_results"
    RESPOND = "respond"


@dataclass
class RetrievalResult:
    """Successful outcome of ``GET /api/data``."""
    table: CatalogTable
    date_column: Optional[str]
    columns: List[str]
    rows: List[RecordRow]
    start_date: str
    end_date: str
    timestamp: str = field(default_factory=lambda: utc_timestamp())

    @property
    def count(self) -> int:
        return len(self.rows)

    def to_response(self) -> Dict[str, Any]:
        """Render the JSON body returned to the caller."""
        return {
            "success": True,
            "count": self.count,
            "table": self.table.qualified_name,
            "dateColumn": self.date_column,
            "columns": self.columns,
            "data": self.rows,
            "query": {
                "startDate": self.start_date,
                "endDate": self.end_date,
            },
            "timestamp": self.timestamp,
        }


def parse_date_param(value: Union[str, date, None], field_name: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` request parameter.

    Raises:
        BadRequestError: If the value is missing or not a calendar date
    """
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise BadRequestError(
            "Missing startDate or endDate parameters. Use: ?startDate=YYYY-MM-DD&endDate=YYYY-MM-DD",
            field=field_name,
        )

    text = str(value).strip()
    if not _DATE_PARAM_PATTERN.match(text):
        raise BadRequestError(
            f"Invalid {field_name} '{text}'. Use the YYYY-MM-DD format.",
            field=field_name,
            error_code=ErrorCode.INVALID_PARAMETERS,
        )
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise BadRequestError(
            f"Invalid {field_name} '{text}': not a calendar date.",
            field=field_name,
            error_code=ErrorCode.INVALID_PARAMETERS,
        )


def utc_timestamp() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
