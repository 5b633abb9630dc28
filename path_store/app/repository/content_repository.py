import sqlite3
from datetime import datetime, timezone
from typing import Callable, Optional

from path_store import config
from path_store.app.errors import (
    BadRequestError,
    EntryConflictError,
    EntryNotFoundError,
    IncompleteWriteError,
    StoreError,
)
from path_store.app.models.content_entry import ContentEntry, format_timestamp
from path_store.db import ConnectionPool
from path_store.logger_config import setup_logger

logger = setup_logger()

SELECT_ENTRY = '''
    SELECT id, path, content_type, length(content) AS length,
           created_at, updated_at, accessed_at
    FROM content
    WHERE path = ?
'''

INSERT_PLACEHOLDER = '''
    INSERT INTO content (path, content, content_type, created_at, updated_at)
    VALUES (?, zeroblob(?), ?, ?, ?)
'''


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlobReader:
    """Read-only cursor over one entry's payload.

    Holds a pooled connection and a read transaction until `close`, so the
    entry cannot change underneath a response that is still streaming.
    """

    def __init__(self, store: "ContentStore", conn: sqlite3.Connection, blob, entry: ContentEntry):
        self._store = store
        self._conn = conn
        self._blob = blob
        self.entry = entry
        self._closed = False

    def read(self, size: int = config.CHUNK_SIZE) -> bytes:
        try:
            return self._blob.read(size)
        except sqlite3.Error as e:
            raise StoreError(f"Reading {self.entry.path} failed: {e}") from e

    def close(self, touch: bool = False) -> None:
        """Release the blob handle and connection, optionally stamping accessed_at first."""
        if self._closed:
            return
        self._closed = True
        try:
            self._blob.close()
            self._conn.execute("COMMIT")
            if touch:
                self._store.touch_if_stale(self._conn, self.entry)
        finally:
            self._store.pool.put(self._conn)


class PendingWrite:
    """Second phase of a write: fill the zero-filled placeholder, then commit.

    Exactly `length` bytes must be written before `commit`; anything else
    rolls the whole row back.
    """

    def __init__(self, store: "ContentStore", conn: sqlite3.Connection, blob, path: str, length: int):
        self._store = store
        self._conn = conn
        self._blob = blob
        self.path = path
        self.length = length
        self.written = 0
        self._finished = False

    def write(self, chunk: bytes) -> None:
        if self.written + len(chunk) > self.length:
            raise IncompleteWriteError(self.path, self.length, self.written + len(chunk))
        try:
            self._blob.write(chunk)
        except sqlite3.Error as e:
            raise StoreError(f"Writing {self.path} failed: {e}") from e
        self.written += len(chunk)

    def commit(self) -> None:
        if self._finished:
            raise StoreError(f"Write to {self.path} already finished")
        if self.written != self.length:
            self.abort()
            raise IncompleteWriteError(self.path, self.length, self.written)
        try:
            self._blob.close()
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            self.abort()
            raise StoreError(f"Committing {self.path} failed: {e}") from e
        self._finished = True
        self._store.pool.put(self._conn)
        logger.debug(f"Blob written: path={self.path}, bytes={self.written}")

    def abort(self) -> None:
        if self._finished:
            return
        self._finished = True
        try:
            try:
                self._blob.close()
            except sqlite3.Error as e:
                logger.warning(f"Closing blob handle for {self.path} failed: {e}")
            self._conn.rollback()
            logger.info(f"Rolled back write to {self.path} after {self.written}/{self.length} bytes")
        finally:
            self._store.pool.put(self._conn)


class ContentStore:
    """Data access for the content table."""

    def __init__(self, pool: ConnectionPool, clock: Callable[[], datetime] = utcnow,
                 stale_after: int = config.STALE_AFTER_SECONDS):
        self.pool = pool
        self.clock = clock
        self.stale_after = stale_after

    def lookup(self, path: str) -> Optional[ContentEntry]:
        with self.pool.connection() as conn:
            try:
                row = conn.execute(SELECT_ENTRY, (path,)).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Looking up {path} failed: {e}") from e
        if row is None:
            return None
        return ContentEntry.from_row(row)

    def open_reader(self, path: str) -> BlobReader:
        conn = self.pool.get()
        try:
            conn.execute("BEGIN")
            row = conn.execute(SELECT_ENTRY, (path,)).fetchone()
            if row is None:
                raise EntryNotFoundError(path)
            entry = ContentEntry.from_row(row)
            blob = conn.blobopen("content", "content", entry.id, readonly=True)
        except sqlite3.Error as e:
            conn.rollback()
            self.pool.put(conn)
            raise StoreError(f"Opening {path} for reading failed: {e}") from e
        except BaseException:
            conn.rollback()
            self.pool.put(conn)
            raise
        return BlobReader(self, conn, blob, entry)

    def begin_create(self, path: str, content_type: str, length: int) -> PendingWrite:
        """First phase of a create: insert the row with a zero-filled placeholder."""
        return self._begin_write(path, content_type, length, replace=False)

    def begin_replace(self, path: str, content_type: str, length: int) -> PendingWrite:
        """Like begin_create, but swaps out an existing row and keeps its created_at."""
        return self._begin_write(path, content_type, length, replace=True)

    def _begin_write(self, path: str, content_type: str, length: int, replace: bool) -> PendingWrite:
        if length <= 0:
            raise BadRequestError(f"Content length must be positive, got {length}")
        if length > config.MAX_CONTENT_LENGTH:
            raise BadRequestError(f"Content length {length} exceeds {config.MAX_CONTENT_LENGTH}")

        now = format_timestamp(self.clock())
        conn = self.pool.get()
        try:
            conn.execute("BEGIN IMMEDIATE")
            created_at, updated_at = now, None
            if replace:
                row = conn.execute("SELECT created_at FROM content WHERE path = ?", (path,)).fetchone()
                if row is None:
                    raise EntryNotFoundError(path)
                conn.execute("DELETE FROM content WHERE path = ?", (path,))
                created_at, updated_at = row["created_at"], now
            cur = conn.execute(INSERT_PLACEHOLDER, (path, length, content_type, created_at, updated_at))
            blob = conn.blobopen("content", "content", cur.lastrowid)
        except sqlite3.IntegrityError as e:
            conn.rollback()
            self.pool.put(conn)
            raise EntryConflictError(path) from e
        except (sqlite3.Error, OverflowError, ValueError) as e:
            conn.rollback()
            self.pool.put(conn)
            raise StoreError(f"Allocating {length} bytes for {path} failed: {e}") from e
        except BaseException:
            conn.rollback()
            self.pool.put(conn)
            raise
        return PendingWrite(self, conn, blob, path, length)

    def is_stale(self, entry: ContentEntry) -> bool:
        age = self.clock() - entry.last_modified
        return age.total_seconds() > self.stale_after

    def touch_if_stale(self, conn: sqlite3.Connection, entry: ContentEntry) -> bool:
        """Stamp accessed_at on a stale entry. Best effort: failures are logged, not raised."""
        if not self.is_stale(entry):
            return False
        try:
            conn.execute(
                "UPDATE content SET accessed_at = ? WHERE path = ?",
                (format_timestamp(self.clock()), entry.path),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to set accessed_at for {entry.path}: {e}")
            return False
        return True

    def delete(self, path: str) -> None:
        with self.pool.connection() as conn:
            try:
                cur = conn.execute("DELETE FROM content WHERE path = ?", (path,))
            except sqlite3.Error as e:
                raise StoreError(f"Deleting {path} failed: {e}") from e
        if cur.rowcount == 0:
            raise EntryNotFoundError(path)
