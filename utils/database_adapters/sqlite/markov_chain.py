#!/usr/bin/env python3
"""
MarkovChainSqliteAdapter - SQLite storage for the trigram chain

Single-file storage that needs no server, compatible with the
``markov_chain.db`` files written by the original chat bot. One connection
is shared by all callers and every statement runs under a process lock, so
concurrent upserts are serialized and readers never see a half-written batch.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager

from utils.database_adapters.base import ChainStoreAdapter
from utils.errors import ChainStoreError


class MarkovChainSqliteAdapter(ChainStoreAdapter):
    """SQLite adapter for the trigram chain store."""

    storage_type = "sqlite"
    placeholder = "?"
    storage_errors = (sqlite3.Error, ChainStoreError)
    insert_sql_template = (
        "INSERT OR IGNORE INTO {table} (prefix1, prefix2, suffix) VALUES ({ph}, {ph}, {ph})"
    )

    def __init__(self, environment="development", logger=None, db_config=None):
        """
        Initialize the SQLite adapter.

        Args:
            environment (str): Environment setting ('development', 'test', 'production')
            logger: Logger instance for logging database operations
            db_config (dict, optional): ``path`` (file or ":memory:") and
                optional ``table_name``
        """
        db_config = db_config or {}
        super().__init__(
            environment=environment,
            logger=logger,
            table_name=db_config.get("table_name", "markov_chain"),
        )
        self.db_path = str(db_config.get("path", "markov_chain.db"))
        self._lock = threading.RLock()
        self._conn = None
        self.is_available = False

        try:
            if self.db_path != ":memory:":
                directory = os.path.dirname(os.path.abspath(self.db_path))
                os.makedirs(directory, exist_ok=True)

            # Autocommit mode; transactions are opened explicitly
            self._conn = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False)
            self.is_available = self.setup_database()
        except (OSError, sqlite3.Error) as e:
            self._log_error("SQLite connection failed", e, path=self.db_path)
            self.is_available = False

        if self.is_available and self.logger:
            self.logger.info("Database connection established", extra={
                "metrics": {
                    "storage_type": self.storage_type,
                    "path": self.db_path,
                    "environment": self.environment,
                }
            })

    def is_usable(self):
        """
        Check if this adapter is usable.

        Returns:
            bool: True if the database file is open and the schema exists
        """
        return self.is_available and self._conn is not None

    def setup_database(self):
        """
        Create the chain table and its prefix indexes.

        Returns:
            bool: True if setup was successful, False otherwise
        """
        try:
            with self._lock:
                if self.db_path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.executescript(self._sql(
                    """
                    CREATE TABLE IF NOT EXISTS {table} (
                        prefix1 TEXT NOT NULL,
                        prefix2 TEXT NOT NULL,
                        suffix TEXT NOT NULL,
                        UNIQUE(prefix1, prefix2, suffix)
                    );
                    CREATE INDEX IF NOT EXISTS idx_{table}_prefix1 ON {table}(prefix1);
                    CREATE INDEX IF NOT EXISTS idx_{table}_prefix2 ON {table}(prefix2);
                    """
                ))
            if self.logger:
                self.logger.info("Database setup complete", extra={
                    "metrics": {"environment": self.environment, "table": self.table_name}
                })
            return True
        except sqlite3.Error as e:
            self._log_error("Error setting up database", e)
            return False

    @contextmanager
    def _cursor(self):
        if self._conn is None:
            raise ChainStoreError("SQLite connection is not open")
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
            finally:
                cur.close()

    @contextmanager
    def _write_cursor(self):
        if self._conn is None:
            raise ChainStoreError("SQLite connection is not open")
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE")
                yield cur
            except BaseException:
                if self._conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise
            else:
                try:
                    cur.execute("COMMIT")
                except sqlite3.Error:
                    if self._conn.in_transaction:
                        cur.execute("ROLLBACK")
                    raise
            finally:
                cur.close()

    def _storage_size(self, cur):
        cur.execute("PRAGMA page_count")
        page_count = cur.fetchone()[0]
        cur.execute("PRAGMA page_size")
        page_size = cur.fetchone()[0]
        return f"{page_count * page_size / 1024:.1f} kB"

    def close_connections(self):
        """Close the underlying SQLite connection."""
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
                if self.logger:
                    self.logger.info("Database connections closed")
            except sqlite3.Error as e:
                self._log_error("Error closing database connection", e)
            finally:
                self._conn = None
                self.is_available = False
