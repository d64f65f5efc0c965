"""Key-value storage backends for the series cache: Protocol, memory, SQLite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from market_insights.core.exceptions import CacheError

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheBackend(Protocol):
    """Minimal async key-value store holding JSON-encoded text."""

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def keys(self) -> list[str]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...


class MemoryCacheBackend:
    """Process-local dict backend, used in tests and as a no-disk option."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return sorted(self._data)


class SqliteCacheBackend:
    """SQLite implementation of the cache backend.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS series_cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )""",
            ],
        ),
    }

    def __init__(self, path: str) -> None:
        self._path = path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise CacheError(
                f"Failed to initialize SQLite cache: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying cache migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Key-Value Operations ---

    def _conn(self, operation: str, key: str | None = None) -> aiosqlite.Connection:
        if self._db is None:
            raise CacheError(
                "SQLite cache is not initialized",
                context={"operation": operation, "key": key},
            )
        return self._db

    async def get(self, key: str) -> str | None:
        db = self._conn("get", key)
        try:
            async with db.execute(
                "SELECT value FROM series_cache WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise CacheError(
                f"Failed to read cache entry: {e}",
                context={"operation": "get", "key": key},
            ) from e
        return row[0] if row is not None else None

    async def set(self, key: str, value: str) -> None:
        db = self._conn("set", key)
        try:
            await db.execute(
                """INSERT OR REPLACE INTO series_cache (key, value, updated_at)
                   VALUES (?, ?, datetime('now'))""",
                (key, value),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise CacheError(
                f"Failed to write cache entry: {e}",
                context={"operation": "set", "key": key},
            ) from e

    async def delete(self, key: str) -> None:
        db = self._conn("delete", key)
        try:
            await db.execute("DELETE FROM series_cache WHERE key = ?", (key,))
            await db.commit()
        except aiosqlite.Error as e:
            raise CacheError(
                f"Failed to delete cache entry: {e}",
                context={"operation": "delete", "key": key},
            ) from e

    async def keys(self) -> list[str]:
        db = self._conn("keys")
        try:
            async with db.execute("SELECT key FROM series_cache ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise CacheError(
                f"Failed to list cache keys: {e}",
                context={"operation": "keys"},
            ) from e
        return [row[0] for row in rows]
