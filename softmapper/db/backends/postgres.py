"""
SoftMapper DB Backend — PostgreSQL adapter via asyncpg.

Holds a single asyncpg connection so that transactions and inserted
identifiers always refer to the same session.

Requires asyncpg:
    pip install softmapper[postgres]
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    DatabaseAdapter,
    AdapterCapabilities,
)

logger = logging.getLogger("softmapper.db.backends.postgres")

__all__ = ["PostgresAdapter"]

# Try importing async postgres driver
try:
    import asyncpg
    _HAS_ASYNCPG = True
except ImportError:
    asyncpg = None  # type: ignore
    _HAS_ASYNCPG = False


class PostgresAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using a single asyncpg connection.

    Features:
    - ``$1, $2, ...`` parameters
    - ``INSERT ... RETURNING`` for inserted identifiers
    - Transaction management via asyncpg Transaction objects
    - Savepoint support with SQL injection prevention
    """

    capabilities = AdapterCapabilities(
        supports_returning=True,
        supports_savepoints=True,
        param_style="numeric",  # $1, $2, ...
        name="postgresql",
    )

    def __init__(self):
        self._conn: Any = None
        self._txn_obj: Any = None   # asyncpg Transaction object
        self._connected = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return

        if not _HAS_ASYNCPG:
            raise ImportError(
                "asyncpg is required for PostgreSQL support.\n"
                "Install: pip install softmapper[postgres]"
            )

        self._conn = await asyncpg.connect(url, **options)
        self._connected = True
        logger.info(f"PostgreSQL connected via asyncpg: {_mask_url(url)}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        if self._txn_obj is not None:
            logger.warning("PostgreSQL disconnecting with an open transaction; rolling back")
            await self._txn_obj.rollback()
            self._txn_obj = None
        await self._conn.close()
        self._conn = None
        self._connected = False
        logger.info("PostgreSQL disconnected")

    def _require(self) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected to PostgreSQL")
        return self._conn

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        conn = self._require()
        return await conn.execute(sql, *(params or []))

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        conn = self._require()
        rows = await conn.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        conn = self._require()
        row = await conn.fetchrow(sql, *(params or []))
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        conn = self._require()
        return await conn.fetchval(sql, *(params or []))

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        conn = self._require()
        self._txn_obj = conn.transaction()
        await self._txn_obj.start()

    async def commit(self) -> None:
        if self._txn_obj is not None:
            await self._txn_obj.commit()
            self._txn_obj = None

    async def rollback(self) -> None:
        if self._txn_obj is not None:
            await self._txn_obj.rollback()
            self._txn_obj = None

    def last_insert_id(self, cursor: Any) -> Optional[int]:
        # asyncpg status strings carry no identifier; inserts use RETURNING
        return None

    @property
    def in_transaction(self) -> bool:
        return self._txn_obj is not None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def dialect(self) -> str:
        return "postgresql"


def _mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    if "@" in url:
        parts = url.split("@", 1)
        pre = parts[0]
        if pre.count(":") > 1:
            scheme_user = pre.rsplit(":", 1)[0]
            return f"{scheme_user}:***@{parts[1]}"
    return url
