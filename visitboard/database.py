import sqlite3
import logging
import os
from contextlib import contextmanager

from .errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    username TEXT PRIMARY KEY,
    password TEXT,
    visited_count INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT,
    message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class Database:
    """Shared handle on the SQLite file.

    One instance lives for the whole process and is handed to the account
    store and the message log. Every unit of work gets its own short-lived
    connection, so concurrent requests never share a cursor or a
    transaction. ``timeout`` bounds how long a statement waits on a lock
    held by another writer before failing with StoreError.
    """

    def __init__(self, db_path: str = "users.db", timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout
        self.closed = False

    def _connect(self) -> sqlite3.Connection:
        if self.closed:
            raise StoreError("Database handle is closed")
        # Autocommit: single statements are atomic, transaction() opens explicit ones
        conn = sqlite3.connect(self.db_path, timeout=self.timeout,
                               isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_db(self):
        """Yield a connection for one statement-level unit of work"""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            logger.error(f"Database connect error ({self.db_path}): {e}")
            raise StoreError(str(e)) from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Yield a connection inside BEGIN IMMEDIATE; commit on success, roll back on error"""
        with self.get_db() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def init_db(self):
        """Create the tables if they do not exist yet"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self.get_db() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Database ready at {self.db_path}")

    def close(self):
        self.closed = True
        logger.info("Database handle closed")
