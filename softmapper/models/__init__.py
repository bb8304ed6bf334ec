"""
SoftMapper Models — fluent mappers, query state and relationships.

Public API:
    from softmapper.models import Mapper, relationship, query_scope
"""

from .base import Mapper, MapperMeta, query_scope
from .query import Predicate, QueryState, placeholder_name
from .record import Record
from .registry import MapperRegistry
from .relations import (
    Relation,
    HasOne,
    HasMany,
    BelongsTo,
    BelongsToMany,
    relationship,
    pivot_table_name,
)

__all__ = [
    "Mapper",
    "MapperMeta",
    "MapperRegistry",
    "query_scope",
    "relationship",
    "Record",
    "QueryState",
    "Predicate",
    "placeholder_name",
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "pivot_table_name",
]
