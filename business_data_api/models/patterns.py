"""Keyword tables driving table and column discovery.

The resolver and classifier only interpret these tables; changing what counts
as a "business written" table or a date column means passing a different
``DiscoveryPatterns`` instance, not editing the matching code.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class TableNamePattern:
    """A table-name rule and the rank a match earns (lower is better)."""
    rank: int
    label: str
    regex: str

    def matches(self, table_name: str) -> bool:
        return re.search(self.regex, table_name, re.IGNORECASE) is not None


@dataclass(frozen=True)
class ConceptGroup:
    """Normalised name fragments that identify one column concept."""
    name: str
    fragments: Tuple[str, ...]


@dataclass(frozen=True)
class DiscoveryPatterns:
    """Every keyword list used by discovery."""

    table_name_patterns: Tuple[TableNamePattern, ...] = (
        TableNamePattern(1, "business written (exact)", r"^business[\s_-]*written$"),
        TableNamePattern(2, "business written", r"business[\s_-]?written"),
        TableNamePattern(3, "business ... written", r"business.*written"),
        TableNamePattern(4, "loan", r"loan"),
        TableNamePattern(5, "policy", r"policy"),
        TableNamePattern(6, "transaction", r"transaction"),
        TableNamePattern(6, "premium", r"premium"),
        TableNamePattern(6, "commission", r"commission"),
    )

    # A table whose columns cover every group is a candidate regardless of its name
    concept_groups: Tuple[ConceptGroup, ...] = (
        ConceptGroup("loan identifier", ("loanid", "loanno", "loannumber", "loanref")),
        ConceptGroup("client identifier", ("clientid", "clientno", "clientnumber", "clientref", "customerid", "borrowerid")),
        ConceptGroup("premium or commission", ("premium", "commission")),
    )
    concept_match_rank: int = 7

    date_name_keywords: Tuple[str, ...] = ("date", "written", "created", "time")
    # matched against name tokens, e.g. "txn_dt", "PostedOn", "as_of"
    date_name_aliases: Tuple[str, ...] = ("dt", "dte", "at", "on", "asof", "dob")
    temporal_type_keywords: Tuple[str, ...] = ("date", "time")
    # SQL Server "timestamp" is a row version, not a point in time
    non_temporal_types: Tuple[str, ...] = ("timestamp", "rowversion")

    key_column_vocabulary: Tuple[str, ...] = (
        "date", "loan", "client", "premium", "amendment", "admin", "fee",
        "interest", "commission", "financed", "income", "amount", "policy",
        "user", "source",
    )


DEFAULT_PATTERNS = DiscoveryPatterns()

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_TOKEN_BOUNDARY = re.compile(r"[^0-9A-Za-z]+|(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def normalize_name(name: str) -> str:
    """Lower-case a name and drop separators: ``"Loan ID"`` -> ``"loanid"``."""
    return _NON_ALNUM.sub("", name.lower())


def name_tokens(name: str) -> List[str]:
    """Split a name on separators and camel-case boundaries, lower-cased."""
    return [token.lower() for token in _TOKEN_BOUNDARY.split(name) if token]
