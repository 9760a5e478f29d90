"""Data models for the business data API."""

from .data_models import (
    RecordRow,
    CatalogTable,
    CatalogColumn,
    TableMatch,
    ColumnSelection,
    QuerySpec,
    RetrievalState,
    RetrievalResult,
    parse_date_param,
    utc_timestamp,
    DEFAULT_SCHEMA,
    ROW_LIMIT,
    MAX_PROJECTED_COLUMNS,
)
from .patterns import (
    DiscoveryPatterns,
    TableNamePattern,
    ConceptGroup,
    DEFAULT_PATTERNS,
    normalize_name,
    name_tokens,
)
from .result_formatter import ResultFormatter, format_cell

__all__ = [
    "RecordRow",
    "CatalogTable",
    "CatalogColumn",
    "TableMatch",
    "ColumnSelection",
    "QuerySpec",
    "RetrievalState",
    "RetrievalResult",
    "parse_date_param",
    "utc_timestamp",
    "DEFAULT_SCHEMA",
    "ROW_LIMIT",
    "MAX_PROJECTED_COLUMNS",
    "DiscoveryPatterns",
    "TableNamePattern",
    "ConceptGroup",
    "DEFAULT_PATTERNS",
    "normalize_name",
    "name_tokens",
    "ResultFormatter",
    "format_cell",
]
