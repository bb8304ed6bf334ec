"""
SoftMapper Faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- MODEL faults (connection, statements, bindings, declarations)
"""

from typing import Any, Optional, Sequence
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid config value for '{key}': {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MODEL Faults (Mapper / Database)
# ============================================================================

class MapperFault(Fault):
    """Base class for mapper and database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class DatabaseConnectionFault(MapperFault):
    """Database connection failed."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )


class QueryFault(MapperFault):
    """Statement was rejected by the backend, or could not be built."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{model}' ({operation}) failed: {reason}",
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class BindingMismatchFault(MapperFault):
    """Statement references placeholders that have no bound value."""

    def __init__(self, missing: Sequence[str], sql: str, **kwargs):
        names = ", ".join(f":{name}" for name in missing)
        super().__init__(
            code="BINDING_MISMATCH",
            message=f"No value bound for placeholder(s) {names}",
            metadata={"missing": list(missing), "sql": sql[:200], **kwargs.get("metadata", {})},
        )


class MapperNotFoundFault(MapperFault):
    """Mapper class not found in the registry."""

    def __init__(self, model_name: str, **kwargs):
        super().__init__(
            code="MAPPER_NOT_FOUND",
            message=f"Mapper '{model_name}' not found in MapperRegistry",
            metadata={"model": model_name, **kwargs.get("metadata", {})},
        )


class RelationNotFoundFault(MapperFault):
    """Relation name is not declared on the mapper."""

    def __init__(self, model_name: str, relation: str, **kwargs):
        super().__init__(
            code="RELATION_NOT_FOUND",
            message=f"No relation '{relation}' declared on '{model_name}'",
            metadata={"model": model_name, "relation": relation, **kwargs.get("metadata", {})},
        )


class RelationDeclarationFault(MapperFault):
    """Relation is declared incorrectly or used for the wrong operation."""

    def __init__(self, model_name: str, relation: str, reason: str, **kwargs):
        super().__init__(
            code="RELATION_INVALID",
            message=f"Relation '{relation}' on '{model_name}': {reason}",
            metadata={"model": model_name, "relation": relation, "reason": reason, **kwargs.get("metadata", {})},
        )


class ScopeNotFoundFault(MapperFault):
    """Query scope name is not registered on the mapper."""

    def __init__(self, model_name: str, scope: str, **kwargs):
        super().__init__(
            code="SCOPE_NOT_FOUND",
            message=f"No scope '{scope}' registered on '{model_name}'",
            metadata={"model": model_name, "scope": scope, **kwargs.get("metadata", {})},
        )
