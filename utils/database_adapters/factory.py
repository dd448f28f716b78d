"""Builds the chain store adapter selected in configuration."""

from utils.database_adapters.postgresql.markov_chain import MarkovChainPostgreSqlAdapter
from utils.database_adapters.sqlite.markov_chain import MarkovChainSqliteAdapter
from utils.errors import ConfigurationError

ADAPTERS = {
    "sqlite": MarkovChainSqliteAdapter,
    "postgresql": MarkovChainPostgreSqlAdapter,
}


def create_chain_store(config, logger=None):
    """
    Instantiate the chain store for ``config["database"]["backend"]``.

    Args:
        config (dict): Configuration as returned by ``load_config``
        logger: Logger passed through to the adapter

    Returns:
        ChainStoreAdapter: The adapter (check ``is_usable()`` before use)
    """
    database = config["database"]
    backend = database.get("backend", "sqlite")

    adapter_cls = ADAPTERS.get(backend)
    if adapter_cls is None:
        raise ConfigurationError(f"Unsupported database backend: {backend!r}")

    return adapter_cls(
        environment=config.get("environment", "development"),
        logger=logger,
        db_config=database.get(backend),
    )
