"""Database access: connection lifecycle, statement execution, catalog reads."""

from .connection import (
    ConnectionManager,
    initialize_connection_manager,
    get_connection_manager,
    shutdown_connection_manager,
)
from .sql_client import SqlClient
from .catalog import MetadataCatalogReader

__all__ = [
    "ConnectionManager",
    "initialize_connection_manager",
    "get_connection_manager",
    "shutdown_connection_manager",
    "SqlClient",
    "MetadataCatalogReader",
]
