"""
SoftMapper Faults - typed fault signals for the mapper and its database layer.

Exceptions raised by SoftMapper are structured faults: each carries a stable
code, a domain, a severity and free-form metadata, so callers can log or
branch on them without parsing messages.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain enumeration
- Severity: Severity levels
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
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
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Config
    "ConfigFault",
    "ConfigInvalidFault",

    # Mapper / database
    "MapperFault",
    "DatabaseConnectionFault",
    "QueryFault",
    "BindingMismatchFault",
    "MapperNotFoundFault",
    "RelationNotFoundFault",
    "RelationDeclarationFault",
    "ScopeNotFoundFault",
]
