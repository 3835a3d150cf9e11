"""Async SQLite store for summaries and daily digests (WAL mode)."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Type

import aiosqlite

from recap.errors import RecapError, StorageReadError, StorageWriteError
from recap.storage.migrations import apply_migrations
from recap.storage.models import Digest, Summary, parse_ts, format_ts, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DIGEST_LIMIT = 20
DEFAULT_BUSY_TIMEOUT = 30.0


class DatabaseManager:
    """Async SQLite manager owning the ``summaries`` and ``daily_digests`` tables.

    Every query error surfaces as :class:`StorageReadError` or
    :class:`StorageWriteError`; raw ``sqlite3`` errors never escape.

    Usage:
        db = DatabaseManager("data/recap.db")
        await db.initialize()
        # ... use db ...
        await db.close()
    """

    def __init__(
        self,
        db_path: str,
        cache_size_mb: int = 16,
        busy_timeout: Optional[float] = DEFAULT_BUSY_TIMEOUT,
    ):
        self.db_path = db_path
        self.cache_size_mb = cache_size_mb
        # Seconds a write waits on another process's lock before failing
        self.busy_timeout = busy_timeout if busy_timeout is not None else DEFAULT_BUSY_TIMEOUT
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, apply migrations, and configure pragmas."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Schema changes run synchronously before the async connection opens
        apply_migrations(self.db_path)

        self._conn = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute(f"PRAGMA cache_size=-{self.cache_size_mb * 1000}")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")

        logger.info("Database initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self, error_cls: Type[RecapError]) -> aiosqlite.Connection:
        if self._conn is None:
            raise error_cls("Database not initialized")
        return self._conn

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield the connection, translating sqlite failures to StorageReadError."""
        conn = self._connection(StorageReadError)
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageReadError(str(e)) from e

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Acquire write lock and run one atomic transaction."""
        conn = self._connection(StorageWriteError)
        async with self._write_lock:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    raise
            except sqlite3.Error as e:
                raise StorageWriteError(str(e)) from e

    # --- Summaries ---

    async def insert_summary(self, text: str, timestamp: Optional[datetime] = None) -> Summary:
        """Append a summary. This is the upstream writer's operation."""
        stored = format_ts(timestamp or utcnow())
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO summaries (text, timestamp) VALUES (?, ?)",
                (text, stored),
            )
            summary_id = cursor.lastrowid
        return Summary.from_row({"id": summary_id, "text": text, "timestamp": stored})

    async def get_summary(self, summary_id: int) -> Optional[Summary]:
        """Get a summary by ID."""
        async with self._reading() as conn:
            cursor = await conn.execute(
                "SELECT id, text, timestamp FROM summaries WHERE id = ?", (summary_id,)
            )
            row = await cursor.fetchone()
        return Summary.from_row(dict(row)) if row else None

    async def get_summaries(
        self,
        since: Optional[datetime] = None,
        after_id: Optional[int] = None,
    ) -> List[Summary]:
        """Summaries ordered by timestamp ascending (ties by id).

        ``since`` keeps rows with ``timestamp >= since``; ``after_id`` keeps
        rows with ``id > after_id``. With neither, every summary is returned.

        Timestamps are compared as instants via ``julianday()``, so rows an
        upstream writer stamped as ``2025-01-15 10:00:00`` order correctly
        against our own ``2025-01-15T08:00:00.000000``. Rows whose timestamp
        SQLite cannot read are always returned so that loading them fails.
        """
        conditions = []
        params: list = []
        if since is not None:
            conditions.append(
                "(julianday(timestamp) >= julianday(?) OR julianday(timestamp) IS NULL)"
            )
            params.append(format_ts(since))
        if after_id is not None:
            conditions.append("id > ?")
            params.append(after_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        async with self._reading() as conn:
            cursor = await conn.execute(
                f"SELECT id, text, timestamp FROM summaries {where} "
                "ORDER BY julianday(timestamp) ASC, id ASC",
                params,
            )
            rows = await cursor.fetchall()
        return [Summary.from_row(dict(r)) for r in rows]

    async def count_summaries(self) -> int:
        async with self._reading() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM summaries")
            row = await cursor.fetchone()
        return row[0] if row else 0

    # --- Digests ---

    async def get_last_digest(self) -> Optional[Digest]:
        """Most recently created digest, without its covered ids."""
        async with self._reading() as conn:
            cursor = await conn.execute(
                "SELECT id, text, timestamp FROM daily_digests "
                "ORDER BY julianday(timestamp) DESC, id DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        return Digest.from_row(dict(row)) if row else None

    async def get_max_covered_summary_id(self) -> Optional[int]:
        """Highest summary id folded into any digest, or None."""
        async with self._reading() as conn:
            cursor = await conn.execute("SELECT MAX(summary_id) FROM digest_summaries")
            row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else None

    async def insert_digest(
        self,
        text: str,
        summary_ids: Iterable[int],
        at: Optional[datetime] = None,
    ) -> Digest:
        """Persist a digest and its covered summary ids in one transaction.

        The timestamp is ``max(at, latest digest timestamp)`` so digest
        timestamps never decrease even if the wall clock steps back. ``at``
        defaults to now; the scheduler passes the time its pending set was
        read, so summaries written while the cycle runs stay at or after the
        new watermark.
        """
        ids = sorted(set(summary_ids))
        if not ids:
            raise StorageWriteError("Refusing to write a digest that covers no summaries")

        ts = at if at is not None else utcnow()
        if ts.tzinfo is not None:
            ts = ts.astimezone(timezone.utc).replace(tzinfo=None)

        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT timestamp FROM daily_digests "
                "ORDER BY julianday(timestamp) DESC, id DESC LIMIT 1"
            )
            row = await cursor.fetchone()
            last = parse_ts(row[0]) if row else None
            if last is not None and last > ts:
                ts = last

            cursor = await conn.execute(
                "INSERT INTO daily_digests (text, timestamp) VALUES (?, ?)",
                (text, format_ts(ts)),
            )
            digest_id = cursor.lastrowid
            await conn.executemany(
                "INSERT INTO digest_summaries (digest_id, summary_id) VALUES (?, ?)",
                [(digest_id, sid) for sid in ids],
            )

        logger.debug("Inserted digest %d covering %d summaries", digest_id, len(ids))
        return Digest(id=digest_id, text=text, timestamp=ts, covered_summary_ids=ids)

    async def get_covered_summary_ids(self, digest_id: int) -> List[int]:
        async with self._reading() as conn:
            cursor = await conn.execute(
                "SELECT summary_id FROM digest_summaries WHERE digest_id = ? ORDER BY summary_id",
                (digest_id,),
            )
            rows = await cursor.fetchall()
        return [r[0] for r in rows]

    async def get_digest(self, digest_id: int) -> Optional[Digest]:
        """Get a digest by ID, including its covered summary ids."""
        async with self._reading() as conn:
            cursor = await conn.execute(
                "SELECT id, text, timestamp FROM daily_digests WHERE id = ?", (digest_id,)
            )
            row = await cursor.fetchone()
        if not row:
            return None
        return Digest.from_row(dict(row), await self.get_covered_summary_ids(digest_id))

    async def get_digests(self, limit: int = DEFAULT_DIGEST_LIMIT) -> List[Digest]:
        """Most recent digests first, each with its covered summary ids."""
        async with self._reading() as conn:
            cursor = await conn.execute(
                "SELECT id, text, timestamp FROM daily_digests "
                "ORDER BY julianday(timestamp) DESC, id DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [
            Digest.from_row(dict(r), await self.get_covered_summary_ids(r["id"]))
            for r in rows
        ]

    # --- Maintenance ---

    async def vacuum(self) -> None:
        """Run VACUUM to reclaim space and defragment."""
        conn = self._connection(StorageWriteError)
        async with self._write_lock:
            try:
                await conn.execute("VACUUM")
            except sqlite3.Error as e:
                raise StorageWriteError(str(e)) from e

    async def integrity_check(self) -> bool:
        """Run integrity check on the database."""
        async with self._reading() as conn:
            cursor = await conn.execute("PRAGMA integrity_check")
            row = await cursor.fetchone()
        return row is not None and row[0] == "ok"

    async def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        stats: Dict[str, Any] = {}
        async with self._reading() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM summaries")
            row = await cursor.fetchone()
            stats["total_summaries"] = row[0] if row else 0

            cursor = await conn.execute("SELECT COUNT(*) FROM daily_digests")
            row = await cursor.fetchone()
            stats["total_digests"] = row[0] if row else 0

            cursor = await conn.execute(
                "SELECT COUNT(*) FROM summaries s WHERE NOT EXISTS "
                "(SELECT 1 FROM digest_summaries ds WHERE ds.summary_id = s.id)"
            )
            row = await cursor.fetchone()
            stats["uncovered_summaries"] = row[0] if row else 0

            cursor = await conn.execute(
                "SELECT page_count * page_size as size FROM pragma_page_count(), pragma_page_size()"
            )
            row = await cursor.fetchone()
            stats["db_size_bytes"] = row[0] if row else 0

        return stats
