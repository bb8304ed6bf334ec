"""
SoftMapper Record — a fetched row.

Rows come back from the backend as ordered column → value mappings.
``Record`` keeps that shape (it is a plain ``dict``) and adds attribute
access, so both ``row["title"]`` and ``row.title`` work. Relationship
loaders attach their results under the relation name.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

__all__ = ["Record", "to_records"]


class Record(dict):
    """Ordered column → value mapping with attribute access."""

    __slots__ = ()

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(
                f"{type(self).__name__!s} has no column or relation {name!r}"
            ) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"Record({dict.__repr__(self)})"

    def to_dict(self, *, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
        """Plain dict copy, optionally without some keys."""
        exclude_set = set(exclude or ())
        return {k: v for k, v in self.items() if k not in exclude_set}


def to_records(rows: Iterable[Mapping[str, Any]]) -> List[Record]:
    return [Record(row) for row in rows]
