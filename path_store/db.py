import queue
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List

from path_store import config
from path_store.logger_config import setup_logger

logger = setup_logger()


def open_connection(database_path: str, busy_timeout: float = config.BUSY_TIMEOUT_SECONDS) -> sqlite3.Connection:
    """Open a connection that may be handed between threadpool workers.

    Transactions are managed explicitly (BEGIN/COMMIT/ROLLBACK), so the
    driver's implicit transaction handling is turned off.
    """
    conn = sqlite3.connect(
        database_path,
        timeout=busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


class ConnectionPool:
    """Fixed-size pool of SQLite connections.

    Each request holds exactly one connection for its whole duration;
    `acquire` blocks until one is free.
    """

    def __init__(self, database_path: str, size: int = config.POOL_SIZE,
                 busy_timeout: float = config.BUSY_TIMEOUT_SECONDS):
        if size <= 0:
            raise ValueError("Pool size must be positive")
        self.database_path = database_path
        self.size = size
        self._idle: "queue.Queue[sqlite3.Connection]" = queue.Queue(maxsize=size)
        self._all: List[sqlite3.Connection] = []
        self._closed = False
        for _ in range(size):
            conn = open_connection(database_path, busy_timeout)
            self._all.append(conn)
            self._idle.put(conn)
        logger.info(f"Opened {size} connections to {database_path}")

    def get(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("Connection pool is closed")
        return self._idle.get()

    def put(self, conn: sqlite3.Connection) -> None:
        if self._closed:
            # Released after shutdown, e.g. a stream still running; the connection is already closed
            return
        if conn.in_transaction:
            # A caller bailed out mid-transaction; never hand that state to the next request
            logger.warning("Connection returned to pool with an open transaction, rolling back")
            conn.rollback()
        self._idle.put(conn)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get()
        try:
            yield conn
        finally:
            self.put(conn)

    def close(self) -> None:
        self._closed = True
        for conn in self._all:
            conn.close()
        logger.info(f"Closed connection pool for {self.database_path}")
