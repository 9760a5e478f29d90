"""HTTP surface of the business data API."""

from .app import create_app

__all__ = ["create_app"]
