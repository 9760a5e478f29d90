"""Configuration for the business data API."""

from .settings import ServerConfig, ConnectionStrategy

__all__ = ["ServerConfig", "ConnectionStrategy"]
