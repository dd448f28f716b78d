#!/usr/bin/env python3
"""
Tests for the PostgreSQL chain store.

The connection pool is mocked, so these tests check the SQL issued and the
connection bookkeeping rather than a live server.
"""

import psycopg2
import pytest
from unittest.mock import MagicMock, patch

from utils.database_adapters.postgresql.markov_chain import MarkovChainPostgreSqlAdapter
from utils.errors import ChainStoreError

DB_CONFIG = {
    "host": "localhost",
    "port": 5432,
    "dbname": "markov_chain",
    "user": "postgres",
    "password": "secret",
}


@pytest.fixture
def mock_cursor():
    cursor = MagicMock()
    cursor.rowcount = 1
    return cursor


@pytest.fixture
def mock_connection(mock_cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = mock_cursor
    return conn


@pytest.fixture
def mock_pool(mock_connection):
    conn_pool = MagicMock()
    conn_pool.getconn.return_value = mock_connection
    return conn_pool


@pytest.fixture
def adapter(mock_logger, mock_pool, mock_cursor):
    """Adapter wired to the mocked pool, with setup calls cleared"""
    with patch('utils.database_adapters.postgresql.markov_chain.pool.ThreadedConnectionPool',
               return_value=mock_pool):
        store = MarkovChainPostgreSqlAdapter(
            environment="test", logger=mock_logger, db_config=DB_CONFIG)

    mock_cursor.reset_mock()
    mock_pool.reset_mock()
    return store


def executed_sql(cursor):
    return [call.args[0] for call in cursor.execute.call_args_list]


class TestInitialization:

    def test_setup_creates_table_and_indexes(self, mock_logger, mock_pool, mock_cursor):
        with patch('utils.database_adapters.postgresql.markov_chain.pool.ThreadedConnectionPool',
                   return_value=mock_pool) as pool_cls:
            store = MarkovChainPostgreSqlAdapter(
                environment="test", logger=mock_logger, db_config=DB_CONFIG)

        assert store.is_usable()
        assert store.table_name == "markov_test_chain"
        pool_cls.assert_called_once_with(
            1, 10, host="localhost", port=5432, dbname="markov_chain",
            user="postgres", password="secret")

        statements = " ".join(executed_sql(mock_cursor))
        assert "CREATE TABLE IF NOT EXISTS markov_test_chain" in statements
        assert "UNIQUE (prefix1, prefix2, suffix)" in statements
        assert "idx_markov_test_chain_prefix1" in statements
        assert "idx_markov_test_chain_prefix2" in statements
        mock_pool.putconn.assert_called()

    def test_missing_required_parameter(self, mock_logger):
        store = MarkovChainPostgreSqlAdapter(
            environment="test", logger=mock_logger, db_config={"host": "localhost"})

        assert store.is_usable() is False
        mock_logger.warning.assert_called()

    def test_connection_failure(self, mock_logger):
        with patch('utils.database_adapters.postgresql.markov_chain.pool.ThreadedConnectionPool',
                   side_effect=psycopg2.OperationalError("connection refused")):
            store = MarkovChainPostgreSqlAdapter(
                environment="test", logger=mock_logger, db_config=DB_CONFIG)

        assert store.is_usable() is False

    def test_setup_failure_makes_adapter_unusable(self, mock_logger, mock_pool, mock_cursor):
        mock_cursor.execute.side_effect = psycopg2.ProgrammingError("permission denied")

        with patch('utils.database_adapters.postgresql.markov_chain.pool.ThreadedConnectionPool',
                   return_value=mock_pool):
            store = MarkovChainPostgreSqlAdapter(
                environment="test", logger=mock_logger, db_config=DB_CONFIG)

        assert store.is_usable() is False
        mock_logger.error.assert_called()

    def test_loads_config_when_not_given(self, mock_logger):
        with patch('utils.database_adapters.postgresql.markov_chain.load_config',
                   return_value={"database": {"postgresql": {"host": "db"}}}) as loader:
            store = MarkovChainPostgreSqlAdapter(environment="production", logger=mock_logger)

        loader.assert_called_once_with("production", logger=mock_logger)
        # dbname/user missing from the loaded config
        assert store.is_usable() is False


class TestWrites:

    def test_upsert_new_triple(self, adapter, mock_cursor, mock_pool):
        mock_cursor.rowcount = 1

        assert adapter.upsert_triple("I", "like", "cats") is True

        sql, params = mock_cursor.execute.call_args.args
        assert "ON CONFLICT (prefix1, prefix2, suffix) DO NOTHING" in sql
        assert params == ("I", "like", "cats")
        mock_pool.putconn.assert_called_once()

    def test_upsert_duplicate(self, adapter, mock_cursor):
        mock_cursor.rowcount = 0

        assert adapter.upsert_triple("I", "like", "cats") is False

    def test_upsert_storage_fault_returns_false(self, adapter, mock_cursor, mock_pool, mock_logger):
        mock_cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        assert adapter.upsert_triple("I", "like", "cats") is False
        mock_pool.putconn.assert_called_once()
        mock_logger.error.assert_called()

    def test_transaction_raises_chain_store_error(self, adapter, mock_cursor):
        mock_cursor.execute.side_effect = [None, psycopg2.OperationalError("deadlock detected")]

        with pytest.raises(ChainStoreError):
            with adapter.transaction() as writer:
                writer.upsert_triple("a", "b", "c")
                writer.upsert_triple("b", "c", "d")

    def test_transaction_without_pool(self, adapter):
        adapter.conn_pool = None

        with pytest.raises(ChainStoreError):
            with adapter.transaction():
                pass


class TestReads:

    def test_continuations_of(self, adapter, mock_cursor):
        mock_cursor.fetchall.return_value = [("cats",), ("dogs",)]

        assert adapter.continuations_of("I", "like") == ["cats", "dogs"]

        sql, params = mock_cursor.execute.call_args.args
        assert "WHERE prefix1 = %s AND prefix2 = %s" in sql
        assert params == ("I", "like")

    def test_find_nodes_containing(self, adapter, mock_cursor):
        mock_cursor.fetchall.return_value = [("the", "cat"), ("cat", "sat")]

        assert adapter.find_nodes_containing("cat") == [("the", "cat"), ("cat", "sat")]

        sql, params = mock_cursor.execute.call_args.args
        assert "UNION" in sql
        assert params == ("cat", "cat")

    def test_sample_random_start(self, adapter, mock_cursor):
        mock_cursor.fetchone.side_effect = [(3,), ("I", "like")]
        rng = MagicMock()
        rng.randrange.return_value = 2

        assert adapter.sample_random_start(rng=rng) == ("I", "like")

        rng.randrange.assert_called_once_with(3)
        sql, params = mock_cursor.execute.call_args.args
        assert "OFFSET %s" in sql
        assert params == (2,)

    def test_sample_random_start_empty(self, adapter, mock_cursor):
        mock_cursor.fetchone.return_value = (0,)

        assert adapter.sample_random_start() is None

    def test_counts(self, adapter, mock_cursor):
        mock_cursor.fetchone.side_effect = [(12,), (5,)]

        assert adapter.count_entries() == 12
        assert adapter.count_distinct_nodes() == 5

    def test_read_fault_degrades(self, adapter, mock_cursor, mock_logger):
        mock_cursor.execute.side_effect = psycopg2.InterfaceError("connection already closed")

        assert adapter.continuations_of("I", "like") == []
        assert adapter.find_nodes_containing("I") == []
        assert adapter.count_entries() == 0
        assert adapter.sample_random_start() is None
        mock_logger.error.assert_called()

    def test_pool_exhausted_degrades(self, adapter, mock_pool):
        mock_pool.getconn.side_effect = psycopg2.pool.PoolError("connection pool exhausted")

        assert adapter.count_distinct_nodes() == 0
        assert adapter.continuations_of("a", "b") == []

    def test_model_statistics(self, adapter, mock_cursor):
        mock_cursor.fetchone.side_effect = [(3,), (1,), (5,), (3.0,), ("16 kB",)]
        mock_cursor.fetchall.return_value = [("I", "like", 3)]

        stats = adapter.get_model_statistics()

        assert stats["storage_type"] == "postgresql"
        assert stats["entries_count"] == 3
        assert stats["nodes_count"] == 1
        assert stats["vocabulary_size"] == 5
        assert stats["avg_continuations_per_node"] == 3.0
        assert stats["top_nodes"] == [{"prefix1": "I", "prefix2": "like", "continuations": 3}]
        assert stats["table_size"] == "16 kB"


def test_close_connections(adapter, mock_pool):
    adapter.close_connections()

    mock_pool.closeall.assert_called_once()
    assert adapter.is_usable() is False
