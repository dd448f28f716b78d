"""
Trigram Markov chain text generation.

Generation is a bounded random walk over the chain store. A node is an ordered
word pair ``(prefix1, prefix2)``; each stored suffix of that pair is an edge to
``(prefix2, suffix)``. The walk starts either from a uniformly random node or
from a node touching the words of a caller-supplied phrase, and stops after
``max_words`` steps or at the first node without continuations.

Tokens already carry their own boundaries, so the walk's words are joined
without a separator.

Both public generators always return a string. Failures are logged and
reported through the sentinel messages below.
"""

import random
import time

from utils.errors import TokenizerNotReadyError

INSUFFICIENT_DATA_MESSAGE = "Not enough data in the chain to generate text."
GENERATION_ERROR_MESSAGE = "An error occurred while generating text."
RESPONSE_ERROR_MESSAGE = "An error occurred while generating a response."
TOKENIZER_NOT_READY_MESSAGE = "The tokenizer is not ready yet. Please try again shortly."

DEFAULT_MESSAGES = {
    "insufficient_data": INSUFFICIENT_DATA_MESSAGE,
    "generation_error": GENERATION_ERROR_MESSAGE,
    "response_error": RESPONSE_ERROR_MESSAGE,
    "tokenizer_not_ready": TOKENIZER_NOT_READY_MESSAGE,
}


class TrigramMarkovChain:
    """
    Second-order Markov chain generator backed by a chain store.
    """

    def __init__(self, chain_store, tokenizer, logger, rng=None, messages=None,
                 default_max_words=50, min_seeded_length=10):
        """
        Args:
            chain_store: ChainStoreAdapter to walk
            tokenizer: Tokenizer used to split seed phrases
            logger (Logger, required): Logger instance for generation events
            rng (random.Random, optional): Source of every random choice
            messages (dict, optional): Overrides for the sentinel messages
            default_max_words (int): Walk length used when none is given
            min_seeded_length (int): Seeded results shorter than this many
                characters are replaced by an unseeded one
        """
        if logger is None:
            raise ValueError("Logger instance must be provided")
        self.logger = logger

        if chain_store is None or not chain_store.is_usable():
            error_msg = "Chain store is not usable - required for text generation"
            self.logger.error(error_msg)
            raise ValueError(error_msg)

        self.chain_store = chain_store
        self.tokenizer = tokenizer
        self.rng = rng or random.Random()
        self.messages = {**DEFAULT_MESSAGES, **(messages or {})}
        self.default_max_words = default_max_words
        self.min_seeded_length = min_seeded_length

        # Tried in order until one yields candidate start nodes
        self.seed_strategies = (
            self._nodes_touching_tail,
            self._nodes_touching_any_word,
        )

    # ------------------------------------------------------------------ #
    # Walk
    # ------------------------------------------------------------------ #
    def walk(self, start, max_words):
        """
        Random walk from ``start``.

        Args:
            start (tuple): (prefix1, prefix2) start node
            max_words (int): Maximum number of words appended after the start pair

        Returns:
            list: The start pair followed by at most ``max_words`` suffixes
        """
        prefix1, prefix2 = start
        sentence = [prefix1, prefix2]

        for _ in range(max_words):
            suffixes = self.chain_store.continuations_of(prefix1, prefix2)
            if not suffixes:
                # Dead end
                break

            next_suffix = self.rng.choice(suffixes)
            sentence.append(next_suffix)
            prefix1, prefix2 = prefix2, next_suffix

        return sentence

    def walk_from(self, start, max_words=None):
        """Walk from ``start`` and join the words into the result string."""
        max_words = self.default_max_words if max_words is None else max_words
        return "".join(self.walk(start, max_words))

    # ------------------------------------------------------------------ #
    # Unseeded generation
    # ------------------------------------------------------------------ #
    def generate(self, max_words=None):
        """
        Generate text from a uniformly random start node.

        Args:
            max_words (int, optional): Maximum words appended to the start pair

        Returns:
            str: Generated text, or a sentinel message for an empty store or
                an unexpected failure
        """
        max_words = self.default_max_words if max_words is None else max_words
        start_time = time.time()

        try:
            start = self.chain_store.sample_random_start(rng=self.rng)
            if start is None:
                self.logger.warning("Text generation failed - chain is empty")
                return self.messages["insufficient_data"]

            words = self.walk(start, max_words)
            text = "".join(words)

        except Exception as e:
            self.logger.error(f"Error generating sentence: {e}", exc_info=True, extra={
                "metrics": {"max_words": max_words}
            })
            return self.messages["generation_error"]

        self.logger.info("Text generation completed", extra={
            "metrics": {
                "mode": "random",
                "start": list(start),
                "max_words": max_words,
                "words_generated": len(words),
                "duration": time.time() - start_time,
            }
        })
        return text

    # ------------------------------------------------------------------ #
    # Seeded generation
    # ------------------------------------------------------------------ #
    def _nodes_touching_tail(self, words):
        """Nodes containing either of the last two input words."""
        last1, last2 = words[-2], words[-1]
        nodes = (self.chain_store.find_nodes_containing(last1)
                 + self.chain_store.find_nodes_containing(last2))
        return list(dict.fromkeys(nodes))

    def _nodes_touching_any_word(self, words):
        """Nodes containing the first input word that occurs in the chain."""
        for word in words:
            nodes = self.chain_store.find_nodes_containing(word)
            if nodes:
                return nodes
        return []

    def find_seed_start(self, words):
        """
        Pick a start node related to the seed words.

        Returns:
            tuple or None: A start node, or None if no strategy found one
        """
        for strategy in self.seed_strategies:
            candidates = strategy(words)
            if candidates:
                self.logger.debug("Seed start candidates found", extra={
                    "metrics": {"strategy": strategy.__name__, "candidates": len(candidates)}
                })
                return self.rng.choice(candidates)
        return None

    def generate_from_seed(self, input_text, max_words=None):
        """
        Generate a reply whose start node relates to ``input_text``.

        Falls back to unseeded generation when the phrase has fewer than two
        tokens, when none of its words occur in the chain, or when the seeded
        result is shorter than ``min_seeded_length`` characters.

        Args:
            input_text (str): Phrase to respond to
            max_words (int, optional): Maximum words appended to the start pair

        Returns:
            str: Generated text or a sentinel message
        """
        max_words = self.default_max_words if max_words is None else max_words

        try:
            if not self.tokenizer.is_ready():
                self.logger.warning("Seeded generation refused - tokenizer not ready")
                return self.messages["tokenizer_not_ready"]

            words = [token.surface_form for token in self.tokenizer.tokenize(input_text or "")]
            if len(words) < 2:
                self.logger.info("Seed too short, using random start", extra={
                    "metrics": {"seed_tokens": len(words)}
                })
                return self.generate(max_words)

            start = self.find_seed_start(words)
            if start is None:
                self.logger.info("No chain node matches the seed, using random start", extra={
                    "metrics": {"seed_tokens": len(words)}
                })
                return self.generate(max_words)

            text = self.walk_from(start, max_words)
            if len(text) < self.min_seeded_length:
                self.logger.info("Seeded result too short, using random start", extra={
                    "metrics": {"length": len(text), "minimum": self.min_seeded_length}
                })
                return self.generate(max_words)

        except TokenizerNotReadyError:
            return self.messages["tokenizer_not_ready"]
        except Exception as e:
            self.logger.error(f"Error generating response from message: {e}", exc_info=True)
            return self.messages["response_error"]

        self.logger.info("Text generation completed", extra={
            "metrics": {
                "mode": "seeded",
                "start": list(start),
                "max_words": max_words,
                "length": len(text),
            }
        })
        return text

    # ------------------------------------------------------------------ #
    # Statistics
    # ------------------------------------------------------------------ #
    def get_statistics(self):
        """
        Entry and node counts plus the store's detailed statistics.

        Returns:
            dict: Statistics dictionary
        """
        return {
            "entries": self.chain_store.count_entries(),
            "nodes": self.chain_store.count_distinct_nodes(),
            "details": self.chain_store.get_model_statistics(),
        }
