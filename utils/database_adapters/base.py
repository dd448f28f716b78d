#!/usr/bin/env python3
"""
Shared behaviour of the Markov chain store adapters.

A chain store holds one table of ``(prefix1, prefix2, suffix)`` triples with a
uniqueness constraint over the whole triple. Concrete adapters only supply
connection handling and their SQL dialect details; every read operation and
the graceful-degradation policy live here so both backends behave the same:

- reads never raise; a storage fault is logged and turned into a neutral
  result (empty list, ``None``, ``0``)
- standalone writes return ``False`` on a storage fault
- writes made through ``transaction()`` roll back as a whole and raise
  ``ChainStoreError``
"""

import random
from contextlib import contextmanager

from utils.errors import ChainStoreError


class ChainWriter:
    """
    Write handle bound to one open transaction.

    Obtained from ``ChainStoreAdapter.transaction()``; only valid inside the
    ``with`` block that produced it.
    """

    def __init__(self, cursor, insert_sql):
        self._cursor = cursor
        self._insert_sql = insert_sql
        self.inserted = 0

    def upsert_triple(self, prefix1, prefix2, suffix):
        """
        Insert the triple unless it already exists.

        Returns:
            bool: True if the triple was newly added
        """
        self._cursor.execute(self._insert_sql, (prefix1, prefix2, suffix))
        added = self._cursor.rowcount > 0
        if added:
            self.inserted += 1
        return added


class ChainStoreAdapter:
    """
    Base class for chain store backends.

    Subclasses set ``storage_type``, ``placeholder`` and ``storage_errors`` and
    implement ``_cursor()``, ``_write_cursor()``, ``setup_database()``,
    ``is_usable()`` and ``close_connections()``.
    """

    storage_type = None
    placeholder = "?"
    storage_errors = (Exception,)
    insert_sql_template = None

    def __init__(self, environment="development", logger=None, table_name="markov_chain"):
        self.environment = environment
        self.logger = logger
        self.table_name = table_name

    # ------------------------------------------------------------------ #
    # Backend hooks
    # ------------------------------------------------------------------ #
    def _cursor(self):
        """Context manager yielding a cursor inside a short read transaction."""
        raise NotImplementedError

    def _write_cursor(self):
        """Context manager yielding a cursor inside an exclusive write transaction."""
        raise NotImplementedError

    def _storage_size(self, cur):
        """Human readable size of the chain table, or None if unknown."""
        return None

    def setup_database(self):
        raise NotImplementedError

    def is_usable(self):
        raise NotImplementedError

    def close_connections(self):
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _sql(self, template):
        return template.format(table=self.table_name, ph=self.placeholder)

    def _log_error(self, message, error, **metrics):
        if self.logger:
            metrics.update({
                "error": str(error),
                "error_type": type(error).__name__,
                "storage_type": self.storage_type,
            })
            self.logger.error(f"{message}: {error}", extra={"metrics": metrics})

    def _read(self, operation, query, params=(), fetch="all", default=None):
        """
        Run a read query, degrading to ``default`` on any storage fault.
        """
        try:
            with self._cursor() as cur:
                cur.execute(self._sql(query), params)
                if fetch == "one":
                    return cur.fetchone()
                return cur.fetchall()
        except Exception as e:
            self._log_error(f"Error in {operation}", e, operation=operation)
            return default

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    @contextmanager
    def transaction(self):
        """
        Open one atomic write transaction.

        Yields:
            ChainWriter: handle whose ``upsert_triple`` runs inside the transaction

        Raises:
            ChainStoreError: on any storage fault; nothing written in the
                block is kept
        """
        try:
            with self._write_cursor() as cur:
                yield ChainWriter(cur, self._sql(self.insert_sql_template))
        except self.storage_errors as e:
            self._log_error("Chain transaction aborted", e)
            raise ChainStoreError(f"Chain transaction aborted: {e}") from e

    def upsert_triple(self, prefix1, prefix2, suffix):
        """
        Insert a single triple in its own transaction.

        Returns:
            bool: True if newly inserted, False for duplicates or storage faults
        """
        try:
            with self.transaction() as writer:
                return writer.upsert_triple(prefix1, prefix2, suffix)
        except ChainStoreError:
            return False

    def clear_chain(self):
        """
        Delete every chain entry.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            with self._write_cursor() as cur:
                cur.execute(self._sql("DELETE FROM {table}"))
        except self.storage_errors as e:
            self._log_error("Error clearing chain", e)
            return False

        if self.logger:
            self.logger.info("Chain cleared", extra={
                "metrics": {"environment": self.environment, "table": self.table_name}
            })
        return True

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def count_entries(self):
        """Number of stored triples."""
        row = self._read("count_entries", "SELECT COUNT(*) FROM {table}", fetch="one")
        return row[0] if row else 0

    def count_distinct_nodes(self):
        """Number of distinct (prefix1, prefix2) pairs."""
        row = self._read(
            "count_distinct_nodes",
            "SELECT COUNT(*) FROM (SELECT DISTINCT prefix1, prefix2 FROM {table}) AS nodes",
            fetch="one",
        )
        return row[0] if row else 0

    def sample_random_start(self, rng=None):
        """
        Pick a start node uniformly over all distinct (prefix1, prefix2) pairs.

        The draw happens here rather than in SQL: count the nodes, choose an
        index, then fetch the node at that offset in a stable ordering. The
        table only grows, so an index drawn from the count stays in range.

        Args:
            rng (random.Random, optional): Source of randomness

        Returns:
            tuple or None: (prefix1, prefix2), or None when the store is empty
        """
        rng = rng or random
        node_count = self.count_distinct_nodes()
        if node_count == 0:
            return None

        offset = rng.randrange(node_count)
        row = self._read(
            "sample_random_start",
            "SELECT DISTINCT prefix1, prefix2 FROM {table} "
            "ORDER BY prefix1, prefix2 LIMIT 1 OFFSET {ph}",
            (offset,),
            fetch="one",
        )
        return (row[0], row[1]) if row else None

    def continuations_of(self, prefix1, prefix2):
        """
        All suffixes recorded after the pair.

        Returns:
            list: suffix strings; empty for a dead end
        """
        rows = self._read(
            "continuations_of",
            "SELECT suffix FROM {table} WHERE prefix1 = {ph} AND prefix2 = {ph} ORDER BY suffix",
            (prefix1, prefix2),
            default=[],
        )
        return [row[0] for row in rows]

    def find_nodes_containing(self, word):
        """
        Distinct nodes where either prefix equals ``word``.

        The two halves of the union each hit a single-column index.

        Returns:
            list: (prefix1, prefix2) tuples
        """
        rows = self._read(
            "find_nodes_containing",
            "SELECT prefix1, prefix2 FROM {table} WHERE prefix1 = {ph} "
            "UNION "
            "SELECT prefix1, prefix2 FROM {table} WHERE prefix2 = {ph} "
            "ORDER BY prefix1, prefix2",
            (word, word),
            default=[],
        )
        return [(row[0], row[1]) for row in rows]

    def get_model_statistics(self):
        """
        Summary statistics about the stored chain.

        Returns:
            dict: Statistics, or {"error": message} if the store is unreachable
        """
        stats = {
            "storage_type": self.storage_type,
            "environment": self.environment,
            "table": self.table_name,
        }

        try:
            with self._cursor() as cur:
                cur.execute(self._sql("SELECT COUNT(*) FROM {table}"))
                stats["entries_count"] = cur.fetchone()[0]

                cur.execute(self._sql(
                    "SELECT COUNT(*) FROM (SELECT DISTINCT prefix1, prefix2 FROM {table}) AS nodes"))
                stats["nodes_count"] = cur.fetchone()[0]

                cur.execute(self._sql(
                    """
                    SELECT COUNT(*) FROM (
                        SELECT prefix1 AS word FROM {table}
                        UNION SELECT prefix2 FROM {table}
                        UNION SELECT suffix FROM {table}
                    ) AS words
                    """))
                stats["vocabulary_size"] = cur.fetchone()[0]

                cur.execute(self._sql(
                    """
                    SELECT AVG(continuations) FROM (
                        SELECT COUNT(*) AS continuations
                        FROM {table}
                        GROUP BY prefix1, prefix2
                    ) AS node_counts
                    """))
                avg = cur.fetchone()[0]
                stats["avg_continuations_per_node"] = float(avg) if avg is not None else 0.0

                cur.execute(self._sql(
                    """
                    SELECT prefix1, prefix2, COUNT(*) AS continuations
                    FROM {table}
                    GROUP BY prefix1, prefix2
                    ORDER BY continuations DESC, prefix1, prefix2
                    LIMIT 5
                    """))
                stats["top_nodes"] = [
                    {"prefix1": p1, "prefix2": p2, "continuations": count}
                    for p1, p2, count in cur.fetchall()
                ]

                stats["table_size"] = self._storage_size(cur)

            return stats

        except Exception as e:
            self._log_error("Error getting model statistics", e)
            return {"error": str(e)}
