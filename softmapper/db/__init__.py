"""
SoftMapper Database — async connection layer for mappers.

Provides:
- MapperDatabase: Connection manager with transaction support
- SQLite driver (default), Postgres/MySQL adapters
- Named-placeholder statement compilation (PreparedStatement)
- Module-level accessors for the default database
"""

from .engine import (
    MapperDatabase,
    get_database,
    configure_database,
    set_database,
    reset_databases,
)

from .statements import PreparedStatement, compile_statement

# Backend adapters
from .backends import (
    DatabaseAdapter,
    AdapterCapabilities,
    SQLiteAdapter,
    PostgresAdapter,
    MySQLAdapter,
)

# Re-export fault types for convenience
from ..faults.domains import (
    DatabaseConnectionFault,
    QueryFault,
    BindingMismatchFault,
)

__all__ = [
    "MapperDatabase",
    "PreparedStatement",
    "compile_statement",
    "DatabaseConnectionFault",
    "QueryFault",
    "BindingMismatchFault",
    "get_database",
    "configure_database",
    "set_database",
    "reset_databases",
    # Backends
    "DatabaseAdapter",
    "AdapterCapabilities",
    "SQLiteAdapter",
    "PostgresAdapter",
    "MySQLAdapter",
]
