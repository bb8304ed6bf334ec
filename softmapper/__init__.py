"""
SoftMapper - fluent async query builder and lightweight ORM

Complete integration of:
- Mappers: chained query building over a structured clause list
- Lifecycle: automatic timestamps and soft deletes
- Relations: has_one / has_many / belongs_to / belongs_to_many with
  eager and lazy loading and pivot attach/detach/sync
- Database: async SQLite, PostgreSQL and MySQL backends
- Faults: Structured error handling with fault domains
- Config: layered YAML / JSON / .env / environment configuration
"""

__version__ = "0.1.0"

# ============================================================================
# Mappers
# ============================================================================

from .models import (
    Mapper,
    MapperMeta,
    MapperRegistry,
    Record,
    QueryState,
    Relation,
    HasOne,
    HasMany,
    BelongsTo,
    BelongsToMany,
    relationship,
    query_scope,
    pivot_table_name,
)

# ============================================================================
# Database
# ============================================================================

from .db import (
    MapperDatabase,
    PreparedStatement,
    get_database,
    configure_database,
    set_database,
)

# ============================================================================
# Config & Faults
# ============================================================================

from .config import ConfigLoader

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigInvalidFault,
    MapperFault,
    DatabaseConnectionFault,
    QueryFault,
    BindingMismatchFault,
    MapperNotFoundFault,
    RelationNotFoundFault,
    RelationDeclarationFault,
    ScopeNotFoundFault,
)

__all__ = [
    # Mappers
    "Mapper",
    "MapperMeta",
    "MapperRegistry",
    "Record",
    "QueryState",
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "relationship",
    "query_scope",
    "pivot_table_name",
    # Database
    "MapperDatabase",
    "PreparedStatement",
    "get_database",
    "configure_database",
    "set_database",
    # Config
    "ConfigLoader",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigInvalidFault",
    "MapperFault",
    "DatabaseConnectionFault",
    "QueryFault",
    "BindingMismatchFault",
    "MapperNotFoundFault",
    "RelationNotFoundFault",
    "RelationDeclarationFault",
    "ScopeNotFoundFault",
]
