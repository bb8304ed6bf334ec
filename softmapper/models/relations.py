"""
SoftMapper Relations — relationship declarations, loaders and pivot writes.

Relations are declared as methods decorated with ``@relationship``, each
returning exactly one of ``has_one``/``has_many``/``belongs_to``/
``belongs_to_many``:

    class Post(Mapper):
        table = "posts"

        @relationship
        def user(self):
            return self.belongs_to("User", "user_id", "id")

        @relationship
        def tags(self):
            return self.belongs_to_many("Tag", "post_tag", "post_id", "tag_id")

The declaring method runs once per concrete mapper class; the resulting
``Relation`` is cached on the class (see ``Mapper.relations()``) and
calling ``post.tags()`` returns that cached declaration.

Related mappers may be given as classes or as registered class names.
Keys left out default to ``<lowercased class name>_id`` and the mapper's
primary key. A pivot table left out defaults to both table names sorted
and joined with ``_``, so either side of a many-to-many pair resolves to
the same pivot.
"""

from __future__ import annotations

import functools
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Type,
    Union,
    TYPE_CHECKING,
)

from ..faults.domains import RelationDeclarationFault
from .query import QueryState
from .registry import MapperRegistry

if TYPE_CHECKING:
    from ..db.engine import MapperDatabase
    from .base import Mapper

logger = logging.getLogger("softmapper.models")

__all__ = [
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "relationship",
    "pivot_table_name",
    "default_key",
]

MapperRef = Union[str, "Type[Mapper]"]


def default_key(ref: MapperRef) -> str:
    """``User`` → ``user_id``."""
    name = ref if isinstance(ref, str) else ref.__name__
    return f"{name.lower()}_id"


def pivot_table_name(first_table: str, second_table: str) -> str:
    """Pivot name for two tables, independent of argument order."""
    return "_".join(sorted((first_table, second_table)))


# ── Declarations ─────────────────────────────────────────────────────────────


class Relation:
    """
    Base relationship declaration.

    Attributes:
        owner: Mapper class declaring the relation
        related: Related mapper class or registered class name
        name: Relation (method) name, set when the declaration is collected
    """

    kind: str = ""

    def __init__(self, owner: Type[Mapper], related: MapperRef):
        self.owner = owner
        self.related = related
        self.name: Optional[str] = None

    @property
    def related_cls(self) -> Type[Mapper]:
        return MapperRegistry.resolve(self.related)

    def _related_mapper(self, db: Optional[MapperDatabase]) -> Mapper:
        return self.related_cls(db=db)

    async def load(self, record: Mapping[str, Any], db: Optional[MapperDatabase] = None) -> Any:
        """Fetch the related value(s) for one owner record."""
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        """Plain-dict view of the declaration (for inspection and logs)."""
        related = self.related if isinstance(self.related, str) else self.related.__name__
        return {"kind": self.kind, "name": self.name, "related": related}

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.describe().items() if k != "kind")
        return f"<{type(self).__name__} {fields}>"


class HasOne(Relation):
    """One related row holding this mapper's key (``users.id`` ← ``user_profiles.user_id``)."""

    kind = "has_one"

    def __init__(
        self,
        owner: Type[Mapper],
        related: MapperRef,
        foreign_key: Optional[str] = None,
        local_key: Optional[str] = None,
    ):
        super().__init__(owner, related)
        self.foreign_key = foreign_key or default_key(owner)
        self.local_key = local_key or owner.primary_key

    def _query(self, record: Mapping[str, Any], db: Optional[MapperDatabase]) -> Optional[Mapper]:
        key = record.get(self.local_key)
        if key is None:
            return None
        return self._related_mapper(db).all().where([(self.foreign_key, "=", key)])

    async def load(self, record, db=None):
        query = self._query(record, db)
        if query is None:
            return None
        return await query.first()

    def describe(self) -> Dict[str, Any]:
        return {**super().describe(), "foreign_key": self.foreign_key, "local_key": self.local_key}


class HasMany(HasOne):
    """All related rows holding this mapper's key."""

    kind = "has_many"

    async def load(self, record, db=None):
        query = self._query(record, db)
        if query is None:
            return []
        return await query.get_all()


class BelongsTo(Relation):
    """Inverse side: this row holds the related row's key (``posts.user_id`` → ``users.id``)."""

    kind = "belongs_to"

    def __init__(
        self,
        owner: Type[Mapper],
        related: MapperRef,
        foreign_key: Optional[str] = None,
        owner_key: Optional[str] = None,
    ):
        super().__init__(owner, related)
        self.foreign_key = foreign_key or default_key(related)
        self._owner_key = owner_key

    @property
    def owner_key(self) -> str:
        return self._owner_key or self.related_cls.primary_key

    async def load(self, record, db=None):
        key = record.get(self.foreign_key)
        if key is None:
            return None
        related = self._related_mapper(db)
        if self.owner_key == related.primary_key:
            return await related.find(key)
        return await related.all().where([(self.owner_key, "=", key)]).first()

    def describe(self) -> Dict[str, Any]:
        return {**super().describe(), "foreign_key": self.foreign_key, "owner_key": self.owner_key}


class BelongsToMany(Relation):
    """Many-to-many through a pivot table."""

    kind = "belongs_to_many"

    def __init__(
        self,
        owner: Type[Mapper],
        related: MapperRef,
        pivot_table: Optional[str] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        parent_key: Optional[str] = None,
        related_key: Optional[str] = None,
    ):
        super().__init__(owner, related)
        self._pivot_table = pivot_table
        self.foreign_pivot_key = foreign_pivot_key or default_key(owner)
        self.related_pivot_key = related_pivot_key or default_key(related)
        self.parent_key = parent_key or owner.primary_key
        self._related_key = related_key

    @property
    def pivot_table(self) -> str:
        return self._pivot_table or pivot_table_name(self.owner.table, self.related_cls.table)

    @property
    def related_key(self) -> str:
        return self._related_key or self.related_cls.primary_key

    def select_sql(self) -> str:
        related_table = self.related_cls.table
        pivot = self.pivot_table
        return (
            f"SELECT {related_table}.* FROM {related_table} "
            f"INNER JOIN {pivot} ON {related_table}.{self.related_key} = {pivot}.{self.related_pivot_key} "
            f"WHERE {pivot}.{self.foreign_pivot_key} = :parent_id"
        )

    async def load(self, record, db=None):
        key = record.get(self.parent_key)
        if key is None:
            return []
        return await self._related_mapper(db).raw(self.select_sql(), {"parent_id": key})

    # ── Pivot writes ─────────────────────────────────────────────────

    async def attach(
        self,
        db: MapperDatabase,
        parent_id: Any,
        related_id: Any,
        pivot_data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Insert one pivot row linking ``parent_id`` to ``related_id``."""
        state = QueryState(self.pivot_table)
        state.start("insert")
        state.add_insert_column(self.foreign_pivot_key, parent_id)
        state.add_insert_column(self.related_pivot_key, related_id)
        for column, value in (pivot_data or {}).items():
            state.add_insert_column(column, value)
        sql, bindings = state.render()
        await db.execute(sql, bindings)
        return True

    async def detach(self, db: MapperDatabase, parent_id: Any, related_id: Any = None) -> bool:
        """Delete pivot rows of ``parent_id`` (only the ``related_id`` one if given)."""
        conditions = [(self.foreign_pivot_key, "=", parent_id)]
        if related_id is not None:
            conditions.append((self.related_pivot_key, "=", related_id))
        state = QueryState(self.pivot_table)
        state.start("delete")
        state.add_where(conditions)
        sql, bindings = state.render()
        await db.execute(sql, bindings)
        return True

    async def sync(self, db: MapperDatabase, parent_id: Any, related_ids: Iterable[Any]) -> bool:
        """Make ``related_ids`` the exact pivot set of ``parent_id``, atomically."""
        async with db.transaction():
            await self.detach(db, parent_id)
            for related_id in related_ids:
                await self.attach(db, parent_id, related_id)
        return True

    def describe(self) -> Dict[str, Any]:
        return {
            **super().describe(),
            "pivot_table": self.pivot_table,
            "foreign_pivot_key": self.foreign_pivot_key,
            "related_pivot_key": self.related_pivot_key,
            "parent_key": self.parent_key,
            "related_key": self.related_key,
        }


# ── @relationship ────────────────────────────────────────────────────────────


class relationship:
    """
    Mark a mapper method as a relationship declaration.

    Accessing the method returns a zero-argument callable yielding the
    cached ``Relation`` of the concrete mapper class.
    """

    def __init__(self, fn: Callable[[Any], Relation]):
        self.fn = fn
        self.name = fn.__name__
        functools.update_wrapper(self, fn)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type) -> Callable[[], Relation]:
        mapper_cls = owner if instance is None else type(instance)

        def accessor() -> Relation:
            return mapper_cls.relations()[self.name]

        accessor.__name__ = self.name
        accessor.__doc__ = self.fn.__doc__
        return accessor

    def declare(self, mapper_cls: Type[Mapper]) -> Relation:
        """Run the declaring method against ``mapper_cls``."""
        rel = self.fn(mapper_cls)
        if not isinstance(rel, Relation):
            raise RelationDeclarationFault(
                mapper_cls.__name__,
                self.name,
                "declaring method must return has_one(), has_many(), belongs_to() or belongs_to_many()",
            )
        rel.name = self.name
        return rel


def collect_relations(mapper_cls: Type[Mapper]) -> Dict[str, Relation]:
    """Declare every ``@relationship`` visible on ``mapper_cls`` (subclass wins)."""
    seen: Dict[str, relationship] = {}
    for klass in reversed(mapper_cls.__mro__):
        for attr, value in vars(klass).items():
            if isinstance(value, relationship):
                seen[attr] = value
            elif attr in seen:
                del seen[attr]
    relations = {name: decl.declare(mapper_cls) for name, decl in seen.items()}
    logger.debug(f"Relations declared on {mapper_cls.__name__}: {sorted(relations)}")
    return relations


def group_by_kind(relations: Iterable[Relation]) -> Dict[str, List[Relation]]:
    grouped: Dict[str, List[Relation]] = {}
    for rel in relations:
        grouped.setdefault(rel.kind, []).append(rel)
    return grouped
