"""Conversion of raw driver rows into JSON-safe records."""

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, List

from .data_models import RecordRow


def format_cell(value: Any) -> Any:
    """
    Normalise one cell value.

    Dates and datetimes become ``YYYY-MM-DD`` (UTC calendar date, time of day
    dropped); naive datetimes are taken to be UTC already. Times of day become
    ``HH:MM:SS`` strings. Binary values (rowversion, varbinary) become
    ``0x``-prefixed upper-case hex. Everything else, ``None`` included, is
    returned as is.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    return value


class ResultFormatter:
    """Formats result rows for the HTTP response."""

    def format(self, rows: Iterable[RecordRow]) -> List[RecordRow]:
        """Return new row dicts with date/time cells normalised; input rows are untouched."""
        return [
            {column: format_cell(value) for column, value in row.items()}
            for row in rows
        ]
