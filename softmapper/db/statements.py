"""
SoftMapper Prepared Statements — named placeholder compilation.

Statements built by the mapper (and passed to ``raw()``) use named
``:name`` placeholders. Each backend driver expects its own param style,
so a statement is compiled once per (sql, style) into native text plus
the ordered list of placeholder names; binding a mapping then yields the
positional parameter list the driver wants.

    stmt = compile_statement("SELECT * FROM posts WHERE id = :id", "numeric")
    stmt.text            # 'SELECT * FROM posts WHERE id = $1'
    stmt.bind({"id": 7}) # [7]

Compilation is string-literal safe (``':x'`` inside quotes is left alone)
and skips PostgreSQL ``::type`` casts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Tuple

from ..faults.domains import BindingMismatchFault

__all__ = ["PreparedStatement", "compile_statement"]

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass(frozen=True)
class PreparedStatement:
    """Statement compiled to a backend's native placeholder style."""

    sql: str
    text: str
    names: Tuple[str, ...]
    style: str

    def bind(self, bindings: Optional[Mapping[str, Any]] = None) -> List[Any]:
        """
        Resolve named bindings to the positional list for this statement.

        Bindings that the statement does not reference are ignored.

        Raises:
            BindingMismatchFault: a placeholder has no bound value
        """
        bindings = bindings or {}
        missing = [name for name in dict.fromkeys(self.names) if name not in bindings]
        if missing:
            raise BindingMismatchFault(missing, self.sql)
        return [bindings[name] for name in self.names]


def _placeholder(style: str, index: int) -> str:
    if style == "numeric":
        return f"${index}"
    if style == "format":
        return "%s"
    return "?"


@lru_cache(maxsize=512)
def compile_statement(sql: str, style: str = "qmark") -> PreparedStatement:
    """
    Compile ``:name`` placeholders into the given param style.

    Args:
        sql: Statement text with named placeholders
        style: ``qmark`` (?), ``format`` (%s) or ``numeric`` ($1)
    """
    out: List[str] = []
    names: List[str] = []
    in_string = False
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch == "'":
            # Escaped quote inside a literal
            if in_string and i + 1 < n and sql[i + 1] == "'":
                out.append("''")
                i += 2
                continue
            in_string = not in_string
            out.append(ch)
        elif ch == "%" and style == "format":
            out.append("%%")
        elif ch == ":" and not in_string:
            if i + 1 < n and sql[i + 1] == ":":
                out.append("::")
                i += 2
                continue
            match = _IDENT_RE.match(sql, i + 1)
            if match is None:
                out.append(ch)
            else:
                names.append(match.group(0))
                out.append(_placeholder(style, len(names)))
                i = match.end()
                continue
        else:
            out.append(ch)
        i += 1
    return PreparedStatement(sql=sql, text="".join(out), names=tuple(names), style=style)
