"""Business data API: date-range reads over a heuristically discovered table."""

__version__ = "0.1.0"
