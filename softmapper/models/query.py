"""
SoftMapper Query State — structured clause accumulator behind every mapper.

Builder calls on a ``Mapper`` record typed clause nodes here; the text of
the statement is produced only when it is executed or inspected, always in
canonical clause order:

    SELECT [DISTINCT] cols FROM table [JOIN ...] [WHERE ...] [GROUP BY ...]
        [HAVING ...] [ORDER BY ...] [LIMIT n] [OFFSET n]

Values never enter the text: each one is bound under a named ``:placeholder``
derived from its column (``posts.user_id`` → ``:posts_user_id``). A name that
is already bound in the same statement gets a numeric suffix
(``:status``, ``:status_2``).

Usage:
    state = QueryState("posts")
    state.start("select")
    state.add_where([("status", "=", "published"), ("views", ">", 10)])
    state.orders.append("created_at DESC")
    sql, bindings = state.render()
    # sql = 'SELECT * FROM posts WHERE status = :status AND views > :views ORDER BY created_at DESC'
    # bindings = {'status': 'published', 'views': 10}
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..faults.domains import QueryFault

__all__ = [
    "Predicate",
    "QueryState",
    "placeholder_name",
]

_NON_WORD_RE = re.compile(r"\W")

STATEMENT_KINDS = ("select", "insert", "update", "delete")


def placeholder_name(column: str) -> str:
    """Derive a bindable placeholder name from a column expression."""
    name = _NON_WORD_RE.sub("_", column.strip())
    if not name or name[0].isdigit():
        name = f"p_{name}"
    return name


@dataclass
class Predicate:
    """
    One rendered condition plus the keyword joining it to the next one.

    ``text`` holds column and operator verbatim and values only as
    ``:placeholder`` references.
    """

    text: str
    conjunction: str = "AND"


def _render_group(group: Sequence[Predicate]) -> str:
    parts: List[str] = []
    for i, pred in enumerate(group):
        parts.append(pred.text)
        if i < len(group) - 1:
            parts.append(pred.conjunction)
    return " ".join(parts)


def _render_groups(groups: Sequence[Sequence[Predicate]]) -> str:
    groups = [g for g in groups if g]
    if len(groups) == 1:
        return _render_group(groups[0])
    return " AND ".join(
        f"({_render_group(g)})" if len(g) > 1 else _render_group(g)
        for g in groups
    )


@dataclass
class QueryState:
    """
    Mutable per-chain accumulator of clause nodes and bindings.

    ``wheres``/``havings`` hold one predicate group per builder call; groups
    are ANDed together. ``sets`` holds ``(column, placeholder)`` pairs of an
    UPDATE, ``insert_columns`` the ``(column, placeholder)`` pairs of an
    INSERT.
    """

    table: str
    kind: Optional[str] = None
    selected_columns: List[str] = field(default_factory=list)
    aggregate: Optional[str] = None
    distinct: bool = False
    joins: List[str] = field(default_factory=list)
    wheres: List[List[Predicate]] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    havings: List[List[Predicate]] = field(default_factory=list)
    orders: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    sets: List[Tuple[str, str]] = field(default_factory=list)
    insert_columns: List[Tuple[str, str]] = field(default_factory=list)
    bindings: Dict[str, Any] = field(default_factory=dict)
    update_pending: bool = False

    # Per-chain modifiers; survive start(), cleared by clear_modifiers()
    include_trashed: bool = False
    only_trashed: bool = False
    eager: List[str] = field(default_factory=list)

    # ── Chain control ────────────────────────────────────────────────

    def start(self, kind: str, *, keep_columns: bool = False) -> None:
        """Reset every clause for a new statement of ``kind``."""
        if kind not in STATEMENT_KINDS:
            raise ValueError(f"Unknown statement kind: {kind!r}")
        kept = self.selected_columns if keep_columns else []
        self.kind = kind
        self.selected_columns = kept
        self.aggregate = None
        self.distinct = False
        self.joins = []
        self.wheres = []
        self.groups = []
        self.havings = []
        self.orders = []
        self.limit = None
        self.offset = None
        self.sets = []
        self.insert_columns = []
        self.bindings = {}
        self.update_pending = False

    def clear_modifiers(self) -> None:
        self.include_trashed = False
        self.only_trashed = False
        self.eager = []

    def copy(self) -> "QueryState":
        return copy.deepcopy(self)

    # ── Bindings ─────────────────────────────────────────────────────

    def bind(self, name: str, value: Any) -> str:
        """Bind ``value`` under a free placeholder derived from ``name``."""
        base = placeholder_name(name)
        candidate = base
        n = 2
        while candidate in self.bindings:
            candidate = f"{base}_{n}"
            n += 1
        self.bindings[candidate] = value
        return candidate

    # ── Clause nodes ─────────────────────────────────────────────────

    def _conditions(self, conditions: Sequence[Sequence[Any]]) -> List[Predicate]:
        group: List[Predicate] = []
        for cond in conditions:
            if len(cond) not in (3, 4):
                raise QueryFault(
                    model=self.table,
                    operation="where",
                    reason=f"Condition must be (column, operator, value[, conjunction]), got {cond!r}",
                )
            column, operator, value = cond[0], cond[1], cond[2]
            conjunction = cond[3] if len(cond) == 4 and cond[3] else "AND"
            ph = self.bind(column, value)
            group.append(Predicate(f"{column} {operator} :{ph}", str(conjunction).upper()))
        return group

    def add_where(self, conditions: Sequence[Sequence[Any]]) -> None:
        group = self._conditions(conditions)
        if group:
            self.wheres.append(group)

    def add_having(self, conditions: Sequence[Sequence[Any]]) -> None:
        group = self._conditions(conditions)
        if group:
            self.havings.append(group)

    def add_where_raw(self, text: str) -> None:
        self.wheres.append([Predicate(text)])

    def add_set(self, column: str, value: Any) -> None:
        ph = self.bind(f"UP_{column}", value)
        self.sets.append((column, ph))

    def add_insert_column(self, column: str, value: Any) -> None:
        ph = self.bind(column, value)
        self.insert_columns.append((column, ph))

    # ── Rendering ────────────────────────────────────────────────────

    def render(self, extra_wheres: Optional[Sequence[Predicate]] = None) -> Tuple[str, Dict[str, Any]]:
        """
        Render the statement text and its bindings.

        ``extra_wheres`` are ANDed onto the WHERE clause for this rendering
        only (the soft-delete filter uses this).

        Raises:
            QueryFault: no statement has been started
        """
        wheres = list(self.wheres)
        if extra_wheres:
            wheres.extend([p] for p in extra_wheres)

        if self.kind == "select":
            parts = [self._select_head(), f"FROM {self.table}"]
            parts.extend(self.joins)
            if wheres:
                parts.append(f"WHERE {_render_groups(wheres)}")
            if self.groups:
                parts.append(f"GROUP BY {', '.join(self.groups)}")
            if self.havings:
                parts.append(f"HAVING {_render_groups(self.havings)}")
            if self.orders:
                parts.append(f"ORDER BY {', '.join(self.orders)}")
            if self.limit is not None:
                parts.append(f"LIMIT {self.limit}")
            if self.offset is not None:
                parts.append(f"OFFSET {self.offset}")
        elif self.kind == "insert":
            cols = ", ".join(c for c, _ in self.insert_columns)
            phs = ", ".join(f":{p}" for _, p in self.insert_columns)
            parts = [f"INSERT INTO {self.table} ({cols}) VALUES ({phs})"]
        elif self.kind == "update":
            sets = ", ".join(f"{c} = :{p}" for c, p in self.sets)
            parts = [f"UPDATE {self.table} SET {sets}"]
            if wheres:
                parts.append(f"WHERE {_render_groups(wheres)}")
        elif self.kind == "delete":
            parts = [f"DELETE FROM {self.table}"]
            if wheres:
                parts.append(f"WHERE {_render_groups(wheres)}")
        else:
            raise QueryFault(
                model=self.table,
                operation="render",
                reason="No statement started; call all(), select(), insert(), update() or delete() first",
            )
        return " ".join(parts), dict(self.bindings)

    def render_count(self, extra_wheres: Optional[Sequence[Predicate]] = None) -> Tuple[str, Dict[str, Any]]:
        """Render ``COUNT(*)`` over this SELECT, ignoring order and paging."""
        state = self.copy()
        state.orders = []
        state.limit = None
        state.offset = None
        if state.groups or state.distinct:
            inner, bindings = state.render(extra_wheres)
            return f"SELECT COUNT(*) AS aggregate FROM ({inner}) AS sm_count", bindings
        state.selected_columns = []
        state.aggregate = "COUNT(*) AS aggregate"
        return state.render(extra_wheres)

    def _select_head(self) -> str:
        head = "SELECT DISTINCT" if self.distinct else "SELECT"
        if self.selected_columns:
            cols = ", ".join(self.selected_columns)
            if self.aggregate:
                cols = f"{cols}, {self.aggregate}"
        elif self.aggregate:
            cols = self.aggregate
        else:
            cols = "*"
        return f"{head} {cols}"

    @property
    def has_joins(self) -> bool:
        return bool(self.joins)

    @property
    def is_started(self) -> bool:
        return self.kind is not None
