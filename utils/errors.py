"""
Exception types shared by the chain store, the ingestion pipeline and the
generation engine.
"""


class MarkovChainError(Exception):
    """Base class for every error raised by the Markov chain engine."""


class ChainStoreError(MarkovChainError):
    """
    A storage fault inside a write transaction.

    Raised after the transaction has been rolled back, so the store is left
    in its pre-batch state.
    """


class TokenizerNotReadyError(MarkovChainError):
    """The tokenizer has not finished initializing yet."""


class ConfigurationError(MarkovChainError):
    """Invalid or unsupported configuration value."""
