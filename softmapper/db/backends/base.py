"""
SoftMapper DB Backend — Base Adapter Interface.

All database backends must implement this interface. The ``MapperDatabase``
engine delegates to the appropriate adapter based on the connection URL.

Adapters receive statements already compiled to their native placeholder
style (see ``softmapper.db.statements``) together with a positional
parameter list. Each adapter owns exactly one live connection.

This interface abstracts differences between SQLite, PostgreSQL, and MySQL:
- Parameter placeholder style (?, %s, $1)
- Transaction semantics
- Last-inserted-identifier retrieval
- RETURNING clause support
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger("softmapper.db.backends")

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "validate_savepoint_name",
]

# Savepoint names are interpolated into SQL text
_SP_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_savepoint_name(name: str) -> str:
    if not _SP_NAME_RE.match(name):
        raise ValueError(f"Invalid savepoint name: {name!r}")
    return name


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_returning: bool = False
    supports_savepoints: bool = True
    param_style: str = "qmark"  # qmark (?) | format (%s) | numeric ($1)
    name: str = "base"


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    All backends must implement these methods. The ``MapperDatabase``
    engine uses this interface to execute statements and manage
    transactions.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open a connection to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute a statement with no result set. Returns a cursor-like object."""
        ...

    @abstractmethod
    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute and return all rows as dicts."""
        ...

    @abstractmethod
    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute and return one row as dict, or None."""
        ...

    @abstractmethod
    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute and return a scalar value."""
        ...

    # ── Transaction management ───────────────────────────────────────

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    async def savepoint(self, name: str) -> None:
        """Create a savepoint."""
        await self.execute(f'SAVEPOINT "{validate_savepoint_name(name)}"')

    async def release_savepoint(self, name: str) -> None:
        """Release (commit) a savepoint."""
        await self.execute(f'RELEASE SAVEPOINT "{validate_savepoint_name(name)}"')

    async def rollback_to_savepoint(self, name: str) -> None:
        """Rollback to a savepoint."""
        await self.execute(f'ROLLBACK TO SAVEPOINT "{validate_savepoint_name(name)}"')

    # ── Identifiers ──────────────────────────────────────────────────

    def last_insert_id(self, cursor: Any) -> Optional[int]:
        """Extract last inserted ID from cursor."""
        if hasattr(cursor, "lastrowid"):
            return cursor.lastrowid
        return None

    @property
    def in_transaction(self) -> bool:
        return False

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is connected."""
        return False

    @property
    def dialect(self) -> str:
        """Return the SQL dialect name."""
        return self.capabilities.name
