"""Date column and projection selection for a resolved table."""

from typing import List, Optional, Sequence

from ..errors import get_logger, log_operation
from ..models import (
    CatalogColumn,
    ColumnSelection,
    DiscoveryPatterns,
    DEFAULT_PATTERNS,
    MAX_PROJECTED_COLUMNS,
    normalize_name,
    name_tokens,
)


logger = get_logger(__name__)


class ColumnClassifier:
    """Picks the date filter column and the projected columns.

    Pure function of the column list: the same input always yields the same
    selection.
    """

    def __init__(
        self,
        patterns: DiscoveryPatterns = DEFAULT_PATTERNS,
        max_columns: int = MAX_PROJECTED_COLUMNS,
    ):
        self.patterns = patterns
        self.max_columns = max_columns

    def classify(self, columns: Sequence[CatalogColumn]) -> ColumnSelection:
        """Classify columns given in catalog ordinal order."""
        date_column = self.find_date_column(columns)
        key_columns = self.key_columns(columns)

        ordered: List[str] = []
        seen = set()
        candidates = ([date_column] if date_column else []) + key_columns + [c.name for c in columns]
        for name in candidates:
            if name not in seen:
                seen.add(name)
                ordered.append(name)

        selection = ColumnSelection(
            date_column=date_column,
            projected_columns=tuple(ordered[:self.max_columns]),
        )
        log_operation(
            logger,
            "columns_classified",
            date_column=date_column,
            key_column_count=len(key_columns),
            projected_count=len(selection.projected_columns),
            total_columns=len(columns),
            level="debug",
        )
        return selection

    def find_date_column(self, columns: Sequence[CatalogColumn]) -> Optional[str]:
        """
        Find the column used for date-range filtering.

        In priority order: a name containing a date keyword, a name with a
        date-like alias token, then a date/time data type. None means the
        request runs unfiltered.
        """
        for column in columns:
            lowered = column.name.lower()
            if any(keyword in lowered for keyword in self.patterns.date_name_keywords):
                return column.name

        for column in columns:
            if self._has_date_alias(column.name):
                return column.name

        for column in columns:
            if self._is_temporal_type(column.data_type):
                return column.name

        return None

    def key_columns(self, columns: Sequence[CatalogColumn]) -> List[str]:
        """Columns whose normalised name contains a vocabulary word, in ordinal order."""
        vocabulary = self.patterns.key_column_vocabulary
        return [
            column.name
            for column in columns
            if any(word in normalize_name(column.name) for word in vocabulary)
        ]

    def _has_date_alias(self, name: str) -> bool:
        tokens = name_tokens(name)
        if not tokens:
            return False
        # aliases are suffixes: PostedOn, txn_dt; "as_of" tokenises to ["as", "of"]
        candidates = {tokens[-1], "".join(tokens[-2:])}
        return any(alias in candidates for alias in self.patterns.date_name_aliases)

    def _is_temporal_type(self, data_type: Optional[str]) -> bool:
        lowered = (data_type or "").lower()
        if lowered in self.patterns.non_temporal_types:
            return False
        return any(keyword in lowered for keyword in self.patterns.temporal_type_keywords)
