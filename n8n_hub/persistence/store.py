"""Async SQLite-backed key-value store for the hub's persisted blobs.

The hub keeps three independently versioned JSON blobs (instance list,
status map, unified workflow list) plus a migration marker. Each lives in one
row of ``kv_blobs``; encoding and decoding is the owning component's job.

Lifecycle:
    store = await KeyValueStore.open("n8n_hub.db")
    await store.set("key", "value")
    ...
    await store.close()
"""

from __future__ import annotations

import logging
import time

logger = logging.getLogger("n8n_hub.persistence.store")

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS kv_blobs (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""

_UPSERT = """
INSERT INTO kv_blobs (key, value, updated_at) VALUES (?, ?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
"""


class KeyValueStore:
    """One SQLite connection shared by every component of a hub process."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Open the SQLite connection and create the blob table."""
        import aiosqlite
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute(_CREATE_TABLE)
        await self._conn.commit()
        logger.info("KeyValueStore ready: %s", self._db_path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @classmethod
    async def open(cls, db_path: str) -> "KeyValueStore":
        """Factory: create + setup in one call."""
        store = cls(db_path)
        await store.setup()
        return store

    def _require_conn(self):
        if not self._conn:
            raise RuntimeError("KeyValueStore.setup() not called")
        return self._conn

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        conn = self._require_conn()
        async with conn.execute("SELECT value FROM kv_blobs WHERE key = ?", (key,)) as cur:
            row = await cur.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = self._require_conn()
        await conn.execute(_UPSERT, (key, value, time.time()))
        await conn.commit()

    async def delete(self, key: str) -> None:
        conn = self._require_conn()
        await conn.execute("DELETE FROM kv_blobs WHERE key = ?", (key,))
        await conn.commit()
