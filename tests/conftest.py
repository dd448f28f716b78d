"""Shared fixtures for the chain engine test suite."""

import os
import sys
import random

import pytest
from unittest.mock import MagicMock

# Add project root directory to Python path for reliable imports
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from models.nlps.tokenizers import WhitespaceTokenizer  # noqa: E402
from utils.database_adapters.sqlite.markov_chain import MarkovChainSqliteAdapter  # noqa: E402


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def sqlite_store(mock_logger):
    """An empty in-memory SQLite chain store"""
    store = MarkovChainSqliteAdapter(
        environment="test", logger=mock_logger, db_config={"path": ":memory:"})
    yield store
    store.close_connections()


@pytest.fixture
def whitespace_tokenizer():
    return WhitespaceTokenizer()


@pytest.fixture
def rng():
    """Seeded random source so walks are reproducible"""
    return random.Random(1234)
