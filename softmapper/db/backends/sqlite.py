"""
SoftMapper DB Backend — SQLite adapter via aiosqlite.

This is the default backend. It wraps a single aiosqlite connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from .base import (
    DatabaseAdapter,
    AdapterCapabilities,
)

logger = logging.getLogger("softmapper.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    Features:
    - WAL journal mode for file databases
    - Foreign key enforcement
    - Autocommit outside explicit transactions
    - Savepoint-based nested transactions
    """

    capabilities = AdapterCapabilities(
        supports_returning=False,
        supports_savepoints=True,
        param_style="qmark",
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self._in_transaction = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._connection = await aiosqlite.connect(db_path, **options)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            self._in_transaction = False
            logger.info("SQLite disconnected")

    async def _query(self, sql: str, params: Optional[Sequence[Any]]) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected")
        return await self._connection.execute(sql, params or [])

    async def _autocommit(self, cursor: Any = None) -> None:
        # Row-returning DML (INSERT ... RETURNING) opens an implicit transaction
        if not self._in_transaction and self._connection.in_transaction:
            if cursor is not None:
                await cursor.fetchall()
            await self._connection.commit()

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        cursor = await self._query(sql, params)
        await self._autocommit()
        return cursor

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        cursor = await self._query(sql, params)
        rows = await cursor.fetchall()
        await self._autocommit()
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        cursor = await self._query(sql, params)
        row = await cursor.fetchone()
        await self._autocommit(cursor)
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        cursor = await self._query(sql, params)
        row = await cursor.fetchone()
        await self._autocommit(cursor)
        if row is None:
            return None
        return row[0]

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        await self._connection.execute("BEGIN")
        self._in_transaction = True

    async def commit(self) -> None:
        await self._connection.commit()
        self._in_transaction = False

    async def rollback(self) -> None:
        await self._connection.rollback()
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def dialect(self) -> str:
        return "sqlite"

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
