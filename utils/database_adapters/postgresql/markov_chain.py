#!/usr/bin/env python3
"""
MarkovChainPostgreSqlAdapter - PostgreSQL Database Adapter for the trigram chain

This module provides the PostgreSQL backend of the chain store. It handles:
- Database configuration loading
- Connection pooling
- Table and index creation
- Transactional upserts of (prefix1, prefix2, suffix) triples

Every chain operation itself (reads, statistics, transactions) is shared with
the SQLite backend through ChainStoreAdapter; this class only knows how to get
a connection and speak PostgreSQL.
"""

from contextlib import contextmanager

import psycopg2
from psycopg2 import pool

from utils.config_loader import load_config
from utils.database_adapters.base import ChainStoreAdapter
from utils.errors import ChainStoreError, ConfigurationError


class MarkovChainPostgreSqlAdapter(ChainStoreAdapter):
    """
    PostgreSQL adapter for the trigram chain store.

    Concurrent upserts of the same triple are serialized by the unique index:
    ``ON CONFLICT DO NOTHING`` makes the loser a no-op instead of an error.
    """

    storage_type = "postgresql"
    placeholder = "%s"
    storage_errors = (psycopg2.Error, ChainStoreError)
    insert_sql_template = (
        "INSERT INTO {table} (prefix1, prefix2, suffix) VALUES ({ph}, {ph}, {ph}) "
        "ON CONFLICT (prefix1, prefix2, suffix) DO NOTHING"
    )

    def __init__(self, environment="development", logger=None, db_config=None):
        """
        Initialize the PostgreSQL adapter.

        Args:
            environment (str): Environment setting ('development', 'test', 'production')
            logger: Logger instance for logging database operations
            db_config (dict, optional): PostgreSQL configuration dictionary
        """
        super().__init__(
            environment=environment,
            logger=logger,
            table_name=f"markov_{environment}_chain",
        )
        self.conn_pool = None
        self.is_available = False

        self.db_config = db_config or self.load_db_config()

        if self.db_config:
            self.table_name = self.db_config.get("table_name", self.table_name)
            self.is_available = self._initialize_connection_pool()
        else:
            if self.logger:
                self.logger.warning("No database configuration available, adapter will not be usable", extra={
                    "metrics": {"environment": self.environment}
                })

    def load_db_config(self):
        """
        Load the ``database.postgresql`` section of the project configuration.

        Returns:
            dict: Database configuration or None if it cannot be loaded
        """
        try:
            return load_config(self.environment, logger=self.logger)["database"]["postgresql"]
        except ConfigurationError as e:
            if self.logger:
                self.logger.warning(f"Error loading database config: {e}", extra={
                    "metrics": {"environment": self.environment}
                })
            return None

    def _initialize_connection_pool(self):
        """
        Initialize the database connection pool based on configuration.

        Returns:
            bool: True if connection pool was successfully initialized, False otherwise
        """
        required_params = ['host', 'dbname', 'user']
        for param in required_params:
            if param not in self.db_config:
                if self.logger:
                    self.logger.warning(f"Missing required database parameter: {param}")
                return False

        try:
            self.conn_pool = pool.ThreadedConnectionPool(
                self.db_config.get("min_connections", 1),
                self.db_config.get("max_connections", 10),
                host=self.db_config.get("host", "localhost"),
                port=self.db_config.get("port", 5432),
                dbname=self.db_config.get("dbname", "markov_chain"),
                user=self.db_config.get("user", "postgres"),
                password=self.db_config.get("password", ""),
            )
        except psycopg2.Error as e:
            if self.logger:
                self.logger.warning("Database connection failed", extra={
                    "metrics": {
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                })
            return False

        if not self.setup_database():
            return False

        if self.logger:
            self.logger.info("Database connection established", extra={
                "metrics": {
                    "storage_type": self.storage_type,
                    "host": self.db_config.get("host", "localhost"),
                    "port": self.db_config.get("port", 5432),
                    "dbname": self.db_config.get("dbname", "markov_chain"),
                    "environment": self.environment,
                }
            })
        return True

    def get_connection(self):
        """
        Get a connection from the pool.

        Returns:
            connection: Database connection or None if pool not available
        """
        if self.conn_pool:
            try:
                return self.conn_pool.getconn()
            except psycopg2.Error as e:
                if self.logger:
                    self.logger.error(f"Error getting connection from pool: {e}")
        return None

    def return_connection(self, conn):
        """
        Return a connection to the pool.

        Args:
            conn: The connection to return to the pool
        """
        if self.conn_pool and conn:
            try:
                self.conn_pool.putconn(conn)
            except psycopg2.Error as e:
                if self.logger:
                    self.logger.error(f"Error returning connection to pool: {e}")

    def is_usable(self):
        """
        Check if this adapter is usable (properly configured and connected).

        Returns:
            bool: True if the adapter can be used, False otherwise
        """
        return self.is_available and self.conn_pool is not None

    @contextmanager
    def _cursor(self):
        conn = self.get_connection()
        if not conn:
            raise ChainStoreError("No database connection available")
        try:
            # The connection block commits (or rolls back) the read
            # transaction so the connection goes back to the pool idle
            with conn, conn.cursor() as cur:
                yield cur
        finally:
            self.return_connection(conn)

    @contextmanager
    def _write_cursor(self):
        # Same transaction scoping as reads; row-level locking on the unique
        # index serializes competing writers
        with self._cursor() as cur:
            yield cur

    def setup_database(self):
        """
        Set up the chain table and its indexes.

        Returns:
            bool: True if setup was successful, False otherwise
        """
        try:
            with self._cursor() as cur:
                cur.execute(self._sql(
                    """
                    CREATE TABLE IF NOT EXISTS {table} (
                        prefix1 TEXT NOT NULL,
                        prefix2 TEXT NOT NULL,
                        suffix TEXT NOT NULL,
                        UNIQUE (prefix1, prefix2, suffix)
                    )
                    """
                ))
                cur.execute(self._sql(
                    "CREATE INDEX IF NOT EXISTS idx_{table}_prefix1 ON {table}(prefix1)"))
                cur.execute(self._sql(
                    "CREATE INDEX IF NOT EXISTS idx_{table}_prefix2 ON {table}(prefix2)"))

        except (psycopg2.Error, ChainStoreError) as e:
            self._log_error("Error setting up database", e)
            return False

        if self.logger:
            self.logger.info(
                f"Database setup complete for {self.environment} environment", extra={
                    "metrics": {"table": self.table_name}
                })
        return True

    def _storage_size(self, cur):
        cur.execute(
            "SELECT pg_size_pretty(pg_total_relation_size(%s))", (self.table_name,))
        return cur.fetchone()[0]

    def close_connections(self):
        """Close all connections in the pool."""
        if self.conn_pool:
            try:
                self.conn_pool.closeall()
                if self.logger:
                    self.logger.info("Database connections closed")
            except psycopg2.Error as e:
                if self.logger:
                    self.logger.error(f"Error closing database connections: {e}")
            finally:
                self.conn_pool = None
                self.is_available = False
