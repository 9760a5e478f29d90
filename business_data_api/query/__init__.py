"""SQL generation for the data query."""

from .builder import QueryBuilder, BoundQuery, quote_identifier

__all__ = ["QueryBuilder", "BoundQuery", "quote_identifier"]
