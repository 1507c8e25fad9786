"""SQLite storage backend for TusStore.

Implements the StorageBackend protocol using two SQLite tables:

Tables:
    blobs(blob_id, size) — one row per blob, ``size`` is the committed length
    chunks(blob_id, start, data) — appended chunks keyed by their start offset

Each append runs in a single transaction: the ``UPDATE`` on ``blobs`` is
guarded by ``size = expected_offset`` and the chunk row is inserted in the
same transaction, so a chunk is either fully visible or not at all. Write
transactions always finish, even when the calling task is cancelled.

This backend is useful for single-node deployments where keeping
everything in one SQLite database simplifies operations and backups.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import aiosqlite

from tusstore.errors import AppendConflict, BackendError
from tusstore.storage.backend import check_range

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CREATE_BLOBS = """
CREATE TABLE IF NOT EXISTS blobs (
    blob_id TEXT PRIMARY KEY,
    size INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_CHUNKS = """
CREATE TABLE IF NOT EXISTS chunks (
    blob_id TEXT NOT NULL,
    start INTEGER NOT NULL,
    data BLOB NOT NULL,
    PRIMARY KEY (blob_id, start)
)
"""


class SQLiteStorageBackend:
    """Storage backend that persists blob chunks inside a SQLite database.

    A single connection is shared; an ``asyncio.Lock`` keeps one statement
    sequence (and therefore one transaction) in flight at a time.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite storage backend.

        Args:
            db_path: Path to the SQLite database file. Use ':memory:' for an
                in-memory database (useful in tests).
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the SQLite connection and create tables if they do not exist.

        Configures WAL mode and a 5-second busy timeout for concurrent access.
        """
        db = await aiosqlite.connect(self.db_path)
        self._db = db
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA synchronous=FULL")
        await db.execute("PRAGMA busy_timeout=5000")
        await db.execute(_CREATE_BLOBS)
        await db.execute(_CREATE_CHUNKS)
        await db.commit()
        logger.info("SQLite storage backend initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close the SQLite connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _ensure_db(self) -> aiosqlite.Connection:
        """Return the active database connection or raise."""
        if self._db is None:
            raise RuntimeError("SQLiteStorageBackend not initialized — call init() first")
        return self._db

    async def _fetch_size(self, db: aiosqlite.Connection, blob_id: str) -> int | None:
        async with db.execute("SELECT size FROM blobs WHERE blob_id = ?", (blob_id,)) as cursor:
            row = await cursor.fetchone()
        return None if row is None else row[0]


    async def _complete(self, work: Awaitable[T]) -> T:
        """Run a write transaction to completion even if the caller is cancelled.

        The transaction runs in its own task and holds the connection lock
        until it has committed or rolled back. A cancelled caller waits for
        that before the cancellation propagates, so the shared connection is
        never left inside an open transaction.
        """
        task = asyncio.ensure_future(work)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait([task])
            if not task.cancelled():
                task.exception()
            raise

    async def create_empty(self, blob_id: str) -> None:
        await self._complete(self._create_txn(self._ensure_db(), blob_id))

    async def _create_txn(self, db: aiosqlite.Connection, blob_id: str) -> None:
        async with self._lock:
            try:
                await db.execute("INSERT INTO blobs (blob_id, size) VALUES (?, 0)", (blob_id,))
                await db.commit()
            except aiosqlite.IntegrityError as e:
                await db.rollback()
                raise FileExistsError(f"Blob already exists: {blob_id}") from e
            except aiosqlite.Error as e:
                await db.rollback()
                raise BackendError(f"Cannot create blob {blob_id}: {e}") from e
            except BaseException:
                await db.rollback()
                raise

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        """Append a chunk in one transaction guarded by the expected size.

        The transaction is never abandoned half way: a cancelled caller
        returns only after it has committed or rolled back.

        Raises:
            FileNotFoundError: If the blob does not exist.
            AppendConflict: If the stored size differs from ``expected_offset``.
            BackendError: If the database fails.
        """
        await self._complete(
            self._append_txn(self._ensure_db(), blob_id, expected_offset, bytes(data))
        )

    async def _append_txn(
        self, db: aiosqlite.Connection, blob_id: str, expected_offset: int, data: bytes
    ) -> None:
        actual: int | None = None
        async with self._lock:
            try:
                cursor = await db.execute(
                    "UPDATE blobs SET size = size + ? WHERE blob_id = ? AND size = ?",
                    (len(data), blob_id, expected_offset),
                )
                updated = cursor.rowcount > 0
                if updated:
                    if data:
                        await db.execute(
                            "INSERT INTO chunks (blob_id, start, data) VALUES (?, ?, ?)",
                            (blob_id, expected_offset, data),
                        )
                    await db.commit()
                else:
                    await db.rollback()
                    actual = await self._fetch_size(db, blob_id)
            except aiosqlite.Error as e:
                await db.rollback()
                raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e
            except BaseException:
                await db.rollback()
                raise
        if not updated:
            if actual is None:
                raise FileNotFoundError(f"Blob not found: {blob_id}")
            raise AppendConflict(blob_id, expected_offset, actual)

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        """Assemble a byte range from the overlapping chunk rows.

        Raises:
            FileNotFoundError: If the blob does not exist.
            ValueError: If the range lies outside the blob.
            BackendError: If the chunk rows do not cover the range.
        """
        db = self._ensure_db()
        async with self._lock:
            size = await self._fetch_size(db, blob_id)
            if size is None:
                raise FileNotFoundError(f"Blob not found: {blob_id}")
            check_range(blob_id, size, start, length)
            end = start + length
            parts: list[bytes] = []
            async with db.execute(
                "SELECT start, data FROM chunks "
                "WHERE blob_id = ? AND start < ? AND start + length(data) > ? "
                "ORDER BY start",
                (blob_id, end, start),
            ) as cursor:
                async for chunk_start, chunk in cursor:
                    lo = max(start - chunk_start, 0)
                    hi = min(end - chunk_start, len(chunk))
                    parts.append(bytes(chunk[lo:hi]))
        data = b"".join(parts)
        if len(data) != length:
            raise BackendError(
                f"Blob {blob_id} is inconsistent: {len(data)} of {length} bytes "
                f"stored for range {start}+{length} (size {size})"
            )
        return data

    async def size(self, blob_id: str) -> int:
        db = self._ensure_db()
        async with self._lock:
            size = await self._fetch_size(db, blob_id)
        if size is None:
            raise FileNotFoundError(f"Blob not found: {blob_id}")
        return size

    async def exists(self, blob_id: str) -> bool:
        db = self._ensure_db()
        async with self._lock:
            return await self._fetch_size(db, blob_id) is not None

    async def delete(self, blob_id: str) -> None:
        """Delete a blob and its chunks. Silently succeeds if missing."""
        await self._complete(self._delete_txn(self._ensure_db(), blob_id))

    async def _delete_txn(self, db: aiosqlite.Connection, blob_id: str) -> None:
        async with self._lock:
            try:
                await db.execute("DELETE FROM chunks WHERE blob_id = ?", (blob_id,))
                await db.execute("DELETE FROM blobs WHERE blob_id = ?", (blob_id,))
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                raise BackendError(f"Cannot delete blob {blob_id}: {e}") from e
            except BaseException:
                await db.rollback()
                raise
