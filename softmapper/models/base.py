"""
SoftMapper Mapper Base — fluent query builder and lightweight ORM.

Usage:
    from softmapper import Mapper, relationship, query_scope

    class Post(Mapper):
        table = "posts"
        soft_deletes = True

        @relationship
        def user(self):
            return self.belongs_to("User", "user_id", "id")

        @relationship
        def tags(self):
            return self.belongs_to_many("Tag", "post_tag", "post_id", "tag_id")

        @query_scope
        def published(self):
            return self.where([("status", "=", "published")])

Builder calls mutate the mapper's query state and return the mapper;
calls that reach the database are coroutines:

    posts = await Post().all().where([("views", ">", 100)]).order_by("id", "DESC").limit(10).get_all()
    post = await Post().find(1)
    total = await Post().all().apply_scope("published").count()

    post = Post()
    post.columns = {"title": "Hello", "user_id": 1}
    await post.insert()
    new_id = post.last_insert_id()

    await Post().delete().where([("id", "=", new_id)]).execute()        # soft delete
    await Post().restore().where([("id", "=", new_id)]).execute()
    rows = await Post().only_trashed().all().get_all()

One mapper instance serves one query chain at a time; the query state is
not shared between instances and is not safe for concurrent use.
"""

from __future__ import annotations

import datetime
import inspect
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
    TYPE_CHECKING,
)

from ..faults.domains import (
    QueryFault,
    RelationDeclarationFault,
    RelationNotFoundFault,
    ScopeNotFoundFault,
)
from .query import Predicate, QueryState
from .record import Record, to_records
from .registry import MapperRegistry
from .relations import (
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasOne,
    Relation,
    collect_relations,
    group_by_kind,
)

if TYPE_CHECKING:
    from ..db.engine import MapperDatabase

logger = logging.getLogger("softmapper.models")

__all__ = ["Mapper", "MapperMeta", "query_scope"]

Condition = Sequence[Any]
ScopeFn = Callable[..., Any]
ChunkCallback = Callable[[List[Record]], Union[Any, Awaitable[Any]]]

_READ_PREFIXES = ("SELECT", "WITH", "PRAGMA", "SHOW", "EXPLAIN", "VALUES")


def query_scope(fn: Optional[ScopeFn] = None, *, name: Optional[str] = None):
    """
    Declare a mapper method as a named query scope.

    Usage:
        @query_scope
        def published(self):
            return self.where([("status", "=", "published")])

        @query_scope(name="popular")
        def min_views(self, views=100):
            return self.where([("views", ">=", views)])
    """

    def decorator(func: ScopeFn) -> ScopeFn:
        func._softmapper_scope = name or func.__name__
        return func

    if fn is not None:
        return decorator(fn)
    return decorator


# ── Mapper Metaclass ─────────────────────────────────────────────────────────


class MapperMeta(type):
    """
    Metaclass for SoftMapper mappers.

    Handles:
    - Default table name (lowercased class name)
    - Scope registry collection (``@query_scope`` methods)
    - Meta class parsing (``abstract``)
    - Mapper registration
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> MapperMeta:
        # Don't process the base Mapper class itself
        parents = [b for b in bases if isinstance(b, MapperMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        meta_class = namespace.pop("Meta", None)
        abstract = bool(getattr(meta_class, "abstract", False))

        if not namespace.get("table") and not abstract:
            inherited = next((p.table for p in parents if p.table), "")
            namespace["table"] = inherited or name.lower()

        # Inherit scopes from parents, then collect new ones
        scopes: Dict[str, ScopeFn] = {}
        for parent in parents:
            scopes.update(parent._scopes)
        for value in namespace.values():
            scope_name = getattr(value, "_softmapper_scope", None)
            if scope_name:
                scopes[scope_name] = value

        cls = super().__new__(mcs, name, bases, namespace)
        cls._scopes = scopes
        cls._relation_cache = None
        cls._abstract = abstract

        if not abstract:
            MapperRegistry.register(cls)

        return cls


# ── Mapper ───────────────────────────────────────────────────────────────────


class Mapper(metaclass=MapperMeta):
    """
    Base class of every table mapper.

    Class attributes:
        table: Table name (defaults to the lowercased class name)
        primary_key: Primary key column, ``"id"`` by default
        timestamps: Stamp ``CREATED_AT``/``UPDATED_AT`` on writes
        soft_deletes: ``delete()`` stamps ``DELETED_AT`` instead of removing rows

    Instance attributes:
        columns: Column values used by ``insert()``/``update()``;
                 ``find()`` fills it from the fetched row
        query: The ``QueryState`` of the current chain
        db: Database handle for this instance (falls back to the class,
            the registry, then the configured default database)
    """

    table: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"
    timestamps: ClassVar[bool] = True
    soft_deletes: ClassVar[bool] = False

    CREATED_AT: ClassVar[str] = "created_at"
    UPDATED_AT: ClassVar[str] = "updated_at"
    DELETED_AT: ClassVar[str] = "deleted_at"

    _db: ClassVar[Optional[MapperDatabase]] = None
    _scopes: ClassVar[Dict[str, ScopeFn]] = {}
    _relation_cache: ClassVar[Optional[Dict[str, Relation]]] = None
    _abstract: ClassVar[bool] = True

    def __init__(
        self,
        db: Optional[MapperDatabase] = None,
        columns: Optional[Mapping[str, Any]] = None,
    ):
        self.db = db
        self.columns: Dict[str, Any] = dict(columns or {})
        self.query = QueryState(self.table)
        self._last_insert_id: Optional[Any] = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} table={self.table!r} kind={self.query.kind!r}>"

    # ── Database resolution ──────────────────────────────────────────

    @classmethod
    def use_database(cls, db: Optional[MapperDatabase]) -> None:
        """Bind a database to this mapper class (and its subclasses)."""
        cls._db = db

    def _get_db(self) -> MapperDatabase:
        """Get database connection."""
        db = self.db or type(self)._db or MapperRegistry.get_database()
        if db is None:
            from ..db.engine import get_database
            db = get_database()
        return db

    # ── Builder surface ──────────────────────────────────────────────

    def all(self) -> Mapper:
        """Start ``SELECT * FROM table``."""
        self.query.start("select")
        return self

    def select(
        self,
        columns: Optional[Sequence[str]] = None,
        aggregate: Optional[str] = None,
        aggregate_arg: Optional[str] = None,
    ) -> Mapper:
        """
        Start a SELECT of ``columns`` and/or ``aggregate(aggregate_arg)``.

        Columns selected by an earlier ``select()`` on this mapper are
        kept; new ones are appended after them.
        """
        self.query.start("select", keep_columns=True)
        self.query.selected_columns.extend(columns or [])
        if aggregate:
            arg = "*" if aggregate_arg is None else aggregate_arg
            self.query.aggregate = f"{aggregate}({arg})"
        return self

    def _ensure_started(self) -> None:
        if not self.query.is_started:
            self.query.start("select")

    def where(self, conditions: Sequence[Condition]) -> Mapper:
        """
        Add ``(column, operator, value[, conjunction])`` conditions.

        Conditions of one call are joined by their conjunction (``AND`` by
        default); separate calls are ANDed together.
        """
        self._ensure_started()
        self.query.add_where(conditions)
        return self

    def having(self, conditions: Sequence[Condition]) -> Mapper:
        self._ensure_started()
        self.query.add_having(conditions)
        return self

    def order_by(self, column: str, direction: str = "ASC") -> Mapper:
        self._ensure_started()
        self.query.orders.append(f"{column} {direction}")
        return self

    def limit(self, n: int) -> Mapper:
        self._ensure_started()
        self.query.limit = n
        return self

    def offset(self, n: int) -> Mapper:
        self._ensure_started()
        self.query.offset = n
        return self

    def group_by(self, column: str) -> Mapper:
        self._ensure_started()
        self.query.groups.append(column)
        return self

    def _where_list(self, column: str, values: Sequence[Any], keyword: str) -> Mapper:
        if not values:
            return self
        self._ensure_started()
        phs = [self.query.bind(f"{column}_{i}", v) for i, v in enumerate(values)]
        self.query.add_where_raw(f"{column} {keyword} ({', '.join(':' + p for p in phs)})")
        return self

    def where_in(self, column: str, values: Sequence[Any]) -> Mapper:
        """``column IN (...)``; an empty ``values`` leaves the chain untouched."""
        return self._where_list(column, values, "IN")

    def where_not_in(self, column: str, values: Sequence[Any]) -> Mapper:
        return self._where_list(column, values, "NOT IN")

    def where_between(self, column: str, start: Any, end: Any) -> Mapper:
        self._ensure_started()
        lo = self.query.bind(f"{column}_start", start)
        hi = self.query.bind(f"{column}_end", end)
        self.query.add_where_raw(f"{column} BETWEEN :{lo} AND :{hi}")
        return self

    def where_null(self, column: str) -> Mapper:
        self._ensure_started()
        self.query.add_where_raw(f"{column} IS NULL")
        return self

    def where_not_null(self, column: str) -> Mapper:
        self._ensure_started()
        self.query.add_where_raw(f"{column} IS NOT NULL")
        return self

    def join(
        self,
        table: str,
        first: str,
        operator: str,
        second: str,
        join_type: str = "INNER",
    ) -> Mapper:
        self._ensure_started()
        self.query.joins.append(f"{join_type} JOIN {table} ON {first} {operator} {second}")
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> Mapper:
        return self.join(table, first, operator, second, "LEFT")

    def right_join(self, table: str, first: str, operator: str, second: str) -> Mapper:
        return self.join(table, first, operator, second, "RIGHT")

    def distinct(self) -> Mapper:
        self._ensure_started()
        self.query.distinct = True
        return self

    # ── Chain modifiers ──────────────────────────────────────────────

    def with_trashed(self) -> Mapper:
        """Include soft-deleted rows in this chain."""
        self.query.include_trashed = True
        return self

    def only_trashed(self) -> Mapper:
        """Return only soft-deleted rows in this chain."""
        self.query.only_trashed = True
        return self

    def with_(self, *names: Union[str, Iterable[str]]) -> Mapper:
        """Eager-load the named relations after ``get_all()``."""
        for item in names:
            for name in ([item] if isinstance(item, str) else item):
                self._relation(name)
                if name not in self.query.eager:
                    self.query.eager.append(name)
        return self

    def _finish(self) -> None:
        self.query.clear_modifiers()

    # ── Rendering ────────────────────────────────────────────────────

    def _soft_delete_filter(self) -> Optional[List[Predicate]]:
        if not self.soft_deletes:
            return None
        column = self.DELETED_AT
        if self.query.has_joins:
            column = f"{self.table}.{column}"
        if self.query.only_trashed:
            return [Predicate(f"{column} IS NOT NULL")]
        if self.query.include_trashed:
            return None
        return [Predicate(f"{column} IS NULL")]

    def _select_filter(self) -> Optional[List[Predicate]]:
        self._ensure_started()
        if self.query.kind != "select":
            raise QueryFault(
                model=self.__class__.__name__,
                operation="select",
                reason=f"Current chain is a {self.query.kind.upper()} statement, not a SELECT",
            )
        return self._soft_delete_filter()

    def to_sql(self) -> Tuple[str, Dict[str, Any]]:
        """
        Statement text and bindings as they would be executed now.

        SELECT chains include the soft-delete filter.
        """
        extra = self._soft_delete_filter() if self.query.kind == "select" else None
        return self.query.render(extra)

    @property
    def sql(self) -> str:
        return self.to_sql()[0]

    # ── Execution surface ────────────────────────────────────────────

    async def get(self) -> Optional[Record]:
        """Next matching row, or None."""
        try:
            sql, bindings = self.query.render(self._select_filter())
            logger.debug(f"{self.__class__.__name__}.get: {sql}")
            row = await self._get_db().fetch_one(sql, bindings)
        finally:
            self._finish()
        return Record(row) if row is not None else None

    async def get_all(self) -> List[Record]:
        """All matching rows, with eager-loaded relations attached."""
        eager = list(self.query.eager)
        try:
            sql, bindings = self.query.render(self._select_filter())
            logger.debug(f"{self.__class__.__name__}.get_all: {sql}")
            rows = to_records(await self._get_db().fetch_all(sql, bindings))
        finally:
            self._finish()
        for name in eager:
            for record in rows:
                await self.load_relation(name, record)
        return rows

    async def execute(self) -> bool:
        """Run the built INSERT/UPDATE/DELETE statement."""
        try:
            sql, bindings = self.to_sql()
            logger.debug(f"{self.__class__.__name__}.execute: {sql}")
            await self._get_db().execute(sql, bindings)
        finally:
            self._finish()
        return True

    async def first(self) -> Optional[Record]:
        return await self.limit(1).get()

    async def count(self) -> int:
        """Number of rows the current SELECT chain matches."""
        try:
            sql, bindings = self.query.render_count(self._select_filter())
            value = await self._get_db().fetch_val(sql, bindings)
        finally:
            self._finish()
        return int(value) if value is not None else 0

    async def exists(self) -> bool:
        return await self.count() > 0

    async def pluck(self, column: str) -> List[Any]:
        """Values of one column across all matching rows."""
        try:
            extra = self._select_filter()
            state = self.query.copy()
            state.selected_columns = [column]
            state.aggregate = None
            sql, bindings = state.render(extra)
            rows = await self._get_db().fetch_all(sql, bindings)
        finally:
            self._finish()
        return [next(iter(row.values())) for row in rows]

    async def chunk(self, size: int, fn: ChunkCallback) -> int:
        """
        Feed matching rows to ``fn`` in pages of ``size``.

        ``fn`` may be a plain function or a coroutine function. Paging stops
        at the first empty or short page, or when ``fn`` returns ``False``.
        Order the chain by a stable key; rows changing between pages can
        otherwise be skipped or repeated.

        Returns:
            Number of pages handed to ``fn``
        """
        if size < 1:
            raise QueryFault(
                model=self.__class__.__name__,
                operation="chunk",
                reason=f"Chunk size must be at least 1, got {size}",
            )
        chunks = 0
        try:
            extra = self._select_filter()
            db = self._get_db()
            page = 0
            while True:
                state = self.query.copy()
                state.limit = size
                state.offset = page * size
                sql, bindings = state.render(extra)
                rows = to_records(await db.fetch_all(sql, bindings))
                if not rows:
                    break
                result = fn(rows)
                if inspect.isawaitable(result):
                    result = await result
                chunks += 1
                if result is False or len(rows) < size:
                    break
                page += 1
        finally:
            self._finish()
        return chunks

    async def raw(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Record]:
        """
        Run literal SQL with named ``:placeholder`` bindings.

        Statements that produce rows return them; any other statement is
        executed and yields an empty list.
        """
        db = self._get_db()
        head = sql.lstrip().upper()
        if head.startswith(_READ_PREFIXES) or " RETURNING " in head:
            return to_records(await db.fetch_all(sql, params or {}))
        await db.execute(sql, params or {})
        return []

    async def find(self, id: Any) -> Optional[Record]:
        """Row whose primary key equals ``id``; fills ``columns`` when found."""
        row = await self.all().where([(self.primary_key, "=", id)]).get()
        if row is not None:
            self.columns = dict(row)
        return row

    # ── Lifecycle ────────────────────────────────────────────────────

    @staticmethod
    def fresh_timestamp() -> str:
        return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _require_columns(self, operation: str) -> None:
        if not self.columns:
            raise QueryFault(
                model=self.__class__.__name__,
                operation=operation,
                reason="No columns set; assign mapper.columns first",
            )

    async def insert(self) -> bool:
        """
        Insert ``columns`` as a new row.

        With timestamps enabled, ``CREATED_AT``/``UPDATED_AT`` are stamped
        unless already set. The new identifier is kept for
        ``last_insert_id()``.
        """
        self._require_columns("insert")
        if self.timestamps:
            now = self.fresh_timestamp()
            for column in (self.CREATED_AT, self.UPDATED_AT):
                if self.columns.get(column) is None:
                    self.columns[column] = now
        self.query.start("insert")
        for column, value in self.columns.items():
            self.query.add_insert_column(column, value)
        try:
            sql, bindings = self.query.render()
            logger.debug(f"{self.__class__.__name__}.insert: {sql}")
            self._last_insert_id = await self._get_db().execute_insert(
                sql, bindings, self.primary_key
            )
        finally:
            self._finish()
        return True

    def _start_update(self, values: Mapping[str, Any]) -> Mapper:
        self.query.start("update")
        for column, value in values.items():
            self.query.add_set(column, value)
        self.query.update_pending = True
        return self

    def update(self) -> Mapper:
        """
        Start ``UPDATE table SET col = :UP_col, ...`` from ``columns``.

        Chain ``where(...)`` and await ``execute()`` to run it.
        """
        self._require_columns("update")
        if self.timestamps and self.columns.get(self.UPDATED_AT) is None:
            self.columns[self.UPDATED_AT] = self.fresh_timestamp()
        return self._start_update(self.columns)

    def delete(self, force: bool = False) -> Mapper:
        """
        Start a DELETE, or a soft delete when ``soft_deletes`` is on.

        A soft delete stamps ``DELETED_AT`` (and ``UPDATED_AT``) and leaves
        ``columns`` untouched; ``force=True`` always removes the row.
        """
        if self.soft_deletes and not force:
            now = self.fresh_timestamp()
            values = {self.DELETED_AT: now}
            if self.timestamps:
                values[self.UPDATED_AT] = now
            return self._start_update(values)
        self.query.start("delete")
        return self

    def restore(self) -> Mapper:
        """Start an update clearing ``DELETED_AT``."""
        values: Dict[str, Any] = {self.DELETED_AT: None}
        if self.timestamps:
            values[self.UPDATED_AT] = self.fresh_timestamp()
        return self._start_update(values)

    async def insert_many(self, records: Sequence[Mapping[str, Any]]) -> bool:
        """
        Insert every record inside one transaction.

        Returns False (after rolling back) if any insert raises, and for
        an empty ``records``.
        """
        if not records:
            return False
        db = self._get_db()
        try:
            async with db.transaction():
                for values in records:
                    row = type(self)(db=db, columns=values)
                    await row.insert()
                    self._last_insert_id = row.last_insert_id()
        except Exception:
            logger.exception(
                f"{self.__class__.__name__}.insert_many failed; transaction rolled back"
            )
            return False
        return True

    async def update_or_create(
        self,
        match: Mapping[str, Any],
        values: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Update the row matching ``match`` with ``values``, or insert both merged."""
        conditions = [(column, "=", value) for column, value in match.items()]
        existing = await type(self)(db=self.db).all().where(conditions).first()
        self.columns = {**match, **(values or {})}
        if existing is not None:
            return await self.update().where(conditions).execute()
        return await self.insert()

    def last_insert_id(self) -> Optional[Any]:
        """Identifier of the row created by the last ``insert()``."""
        return self._last_insert_id

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> bool:
        return await self._get_db().begin()

    async def commit(self) -> bool:
        return await self._get_db().commit()

    async def rollback(self) -> bool:
        return await self._get_db().rollback()

    def transaction(self):
        """
        Async context manager around a transaction on this mapper's database.

        Usage:
            async with Post().transaction():
                ...
        """
        return self._get_db().transaction()

    # ── Scopes ───────────────────────────────────────────────────────

    @classmethod
    def scope(cls, name: str, fn: ScopeFn) -> None:
        """Register ``fn(mapper, *args, **kwargs)`` as scope ``name`` of this class."""
        if "_scopes" not in cls.__dict__:
            cls._scopes = dict(cls._scopes)
        cls._scopes[name] = fn

    def apply_scope(self, name: str, *args: Any, **kwargs: Any) -> Mapper:
        fn = type(self)._scopes.get(name)
        if fn is None:
            raise ScopeNotFoundFault(self.__class__.__name__, name)
        result = fn(self, *args, **kwargs)
        return self if result is None else result

    # ── Relationship declarations ────────────────────────────────────

    @classmethod
    def has_one(cls, related, foreign_key: Optional[str] = None, local_key: Optional[str] = None) -> HasOne:
        return HasOne(cls, related, foreign_key, local_key)

    @classmethod
    def has_many(cls, related, foreign_key: Optional[str] = None, local_key: Optional[str] = None) -> HasMany:
        return HasMany(cls, related, foreign_key, local_key)

    @classmethod
    def belongs_to(cls, related, foreign_key: Optional[str] = None, owner_key: Optional[str] = None) -> BelongsTo:
        return BelongsTo(cls, related, foreign_key, owner_key)

    @classmethod
    def belongs_to_many(
        cls,
        related,
        pivot_table: Optional[str] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        parent_key: Optional[str] = None,
        related_key: Optional[str] = None,
    ) -> BelongsToMany:
        return BelongsToMany(
            cls, related, pivot_table, foreign_pivot_key, related_pivot_key, parent_key, related_key
        )

    @classmethod
    def relations(cls) -> Dict[str, Relation]:
        """Relation name → declaration, computed once per class."""
        cache = cls.__dict__.get("_relation_cache")
        if cache is None:
            cache = collect_relations(cls)
            cls._relation_cache = cache
        return cache

    @classmethod
    def relationships(cls) -> Dict[str, List[Relation]]:
        """Declarations grouped by kind (``has_many`` → [...])."""
        return group_by_kind(cls.relations().values())

    @classmethod
    def relationship_of_kind(cls, kind: str) -> Optional[Relation]:
        """First declared relation of ``kind``, or None."""
        found = cls.relationships().get(kind)
        return found[0] if found else None

    def _relation(self, name: str) -> Relation:
        rel = type(self).relations().get(name)
        if rel is None:
            raise RelationNotFoundFault(self.__class__.__name__, name)
        return rel

    def _pivot_relation(self, name: str) -> BelongsToMany:
        rel = self._relation(name)
        if not isinstance(rel, BelongsToMany):
            raise RelationDeclarationFault(
                self.__class__.__name__,
                name,
                f"pivot operations need a belongs_to_many relation, not {rel.kind}",
            )
        return rel

    # ── Relationship loading & pivots ────────────────────────────────

    async def load_relation(self, name: str, record: Dict[str, Any]) -> Any:
        """Load relation ``name`` for ``record`` and attach it under ``name``."""
        value = await self._relation(name).load(record, self._get_db())
        record[name] = value
        return value

    async def attach(
        self,
        id: Any,
        related_id: Any,
        relation_name: str,
        pivot_data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        rel = self._pivot_relation(relation_name)
        return await rel.attach(self._get_db(), id, related_id, pivot_data)

    async def detach(self, id: Any, relation_name: str, related_id: Any = None) -> bool:
        rel = self._pivot_relation(relation_name)
        return await rel.detach(self._get_db(), id, related_id)

    async def sync(self, id: Any, related_ids: Iterable[Any], relation_name: str) -> bool:
        rel = self._pivot_relation(relation_name)
        return await rel.sync(self._get_db(), id, list(related_ids))
