"""Selection of the "business written" table from catalog metadata."""

from typing import List, Mapping, Optional, Sequence

from ..errors import TableNotFoundError, get_logger, log_operation
from ..models import (
    CatalogColumn,
    CatalogTable,
    DiscoveryPatterns,
    TableMatch,
    DEFAULT_PATTERNS,
    normalize_name,
)


logger = get_logger(__name__)


class TableResolver:
    """
    Ranks catalog tables and picks the best candidate.

    A table is a candidate when its name matches one of the ranked name
    patterns, or when its columns cover every concept group (loan id, client
    id, premium/commission). Ties on rank go to the alphabetically first table
    name. The choice is best-effort: a plausible but wrong table can win when
    several generic names match.
    """

    def __init__(self, patterns: DiscoveryPatterns = DEFAULT_PATTERNS):
        self.patterns = patterns
        self._name_patterns = sorted(patterns.table_name_patterns, key=lambda p: p.rank)

    def match(
        self,
        table: CatalogTable,
        columns: Optional[Sequence[CatalogColumn]] = None,
    ) -> Optional[TableMatch]:
        """Return the best match for one table, or None if it is not a candidate."""
        for pattern in self._name_patterns:
            if pattern.matches(table.name):
                return TableMatch(table=table, rank=pattern.rank, reason=f"name matches '{pattern.label}'")

        if columns and self.covers_concepts(columns):
            return TableMatch(
                table=table,
                rank=self.patterns.concept_match_rank,
                reason="columns cover " + ", ".join(group.name for group in self.patterns.concept_groups),
            )
        return None

    def needs_columns(self, tables: Sequence[CatalogTable]) -> bool:
        """
        True unless some table's name outranks any concept match.

        When it returns False, column metadata cannot change what ``resolve``
        picks and the catalog-wide column scan can be skipped.
        """
        concept_rank = self.patterns.concept_match_rank
        return not any(
            pattern.rank < concept_rank and pattern.matches(table.name)
            for table in tables
            for pattern in self._name_patterns
        )

    def covers_concepts(self, columns: Sequence[CatalogColumn]) -> bool:
        """True when every concept group is matched by at least one column."""
        if not self.patterns.concept_groups:
            return False
        normalized = [normalize_name(column.name) for column in columns]
        return all(
            any(fragment in name for name in normalized for fragment in group.fragments)
            for group in self.patterns.concept_groups
        )

    def rank(
        self,
        tables: Sequence[CatalogTable],
        columns_by_table: Optional[Mapping[CatalogTable, Sequence[CatalogColumn]]] = None,
    ) -> List[TableMatch]:
        """All candidates, best first."""
        columns_by_table = columns_by_table or {}
        matches = []
        for table in tables:
            found = self.match(table, columns_by_table.get(table))
            if found is not None:
                matches.append(found)
        return sorted(matches, key=lambda m: m.sort_key)

    def resolve(
        self,
        tables: Sequence[CatalogTable],
        columns_by_table: Optional[Mapping[CatalogTable, Sequence[CatalogColumn]]] = None,
    ) -> CatalogTable:
        """
        Pick the single best table.

        Args:
            tables: Base tables from the catalog
            columns_by_table: Optional columns per table, enabling concept matching

        Returns:
            The lowest-ranked candidate

        Raises:
            TableNotFoundError: If no table is a candidate
        """
        candidates = self.rank(tables, columns_by_table)
        log_operation(logger, "table_candidates_ranked", table_count=len(tables), candidate_count=len(candidates))

        if not candidates:
            raise TableNotFoundError()

        best = candidates[0]
        log_operation(
            logger,
            "table_resolved",
            table=best.table.qualified_name,
            rank=best.rank,
            reason=best.reason,
            runners_up=[m.table.qualified_name for m in candidates[1:4]],
        )
        return best.table
