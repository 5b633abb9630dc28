import sqlite3
import threading

from path_store.app.errors import SchemaError
from path_store.db import ConnectionPool
from path_store.logger_config import setup_logger

logger = setup_logger()

TABLE_NAME = "content"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE content (
        id INTEGER PRIMARY KEY,
        path TEXT NOT NULL UNIQUE,
        content BLOB NOT NULL,
        content_type TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT,
        accessed_at TEXT
    )
    """,
)


class SchemaInitializer:
    """Makes sure the content table exists, once per process.

    The done flag is only set after the table was seen or created
    successfully, so a failed attempt is retried by the next request.
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def ensure(self) -> bool:
        """Create the schema if needed. Returns True only for the call that created it."""
        if self._done:
            return False
        with self._lock:
            if self._done:
                return False
            with self.pool.connection() as conn:
                created = self._migrate(conn)
            self._done = True
            return created

    def _migrate(self, conn: sqlite3.Connection) -> bool:
        try:
            # IMMEDIATE takes the write lock up front, so other processes opening
            # the same fresh file wait here instead of racing the CREATE
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (TABLE_NAME,),
                ).fetchone()
                if row is not None:
                    conn.execute("COMMIT")
                    logger.debug("Schema already present")
                    return False
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
                conn.execute("COMMIT")
            except BaseException:
                conn.rollback()
                raise
        except sqlite3.Error as e:
            logger.error(f"Schema migration failed: {e}", exc_info=True)
            raise SchemaError(f"Schema migration failed: {e}") from e
        logger.info(f"Created table {TABLE_NAME}")
        return True
