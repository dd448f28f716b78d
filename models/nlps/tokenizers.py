"""
Tokenizers for the trigram chain.

Every tokenizer turns a string into an ordered list of ``Token`` objects and
the chain only ever reads ``Token.surface_form``. Tokenizers backed by an NLP
library load their resources on a background thread; until that finishes
``is_ready()`` is False and ``tokenize`` raises ``TokenizerNotReadyError`` so
callers can report the condition instead of crashing.
"""

import threading
from collections import namedtuple

import nltk
import spacy

from utils.errors import ConfigurationError, TokenizerNotReadyError

Token = namedtuple("Token", ["surface_form"])


class BaseTokenizer:
    """Readiness bookkeeping shared by all tokenizers."""

    name = "base"

    def __init__(self, logger=None):
        self.logger = logger
        self.load_error = None
        self._ready = threading.Event()

    def is_ready(self):
        return self._ready.is_set()

    def wait_until_ready(self, timeout=None):
        """
        Block until the tokenizer is loaded.

        Returns:
            bool: True if ready, False on timeout or load failure
        """
        return self._ready.wait(timeout)

    def _start_loading(self, background):
        if background:
            thread = threading.Thread(
                target=self._load_safely, name=f"{self.name}-tokenizer-loader", daemon=True)
            thread.start()
        else:
            self._load_safely()

    def _load_safely(self):
        try:
            self._load()
        except Exception as e:
            self.load_error = e
            if self.logger:
                self.logger.error(f"Tokenizer failed to load: {e}", extra={
                    "metrics": {"tokenizer": self.name, "error_type": type(e).__name__}
                })
            return

        self._ready.set()
        if self.logger:
            self.logger.info("Tokenizer ready", extra={"metrics": {"tokenizer": self.name}})

    def _load(self):
        raise NotImplementedError

    def _split(self, text):
        raise NotImplementedError

    def tokenize(self, text):
        """
        Split text into tokens.

        Args:
            text (str): Input text

        Returns:
            list: Token objects in input order

        Raises:
            TokenizerNotReadyError: if loading has not finished
        """
        if not self.is_ready():
            raise TokenizerNotReadyError(f"{self.name} tokenizer is not ready yet")
        return [Token(surface) for surface in self._split(text) if surface]


class WhitespaceTokenizer(BaseTokenizer):
    """Naive tokenizer splitting on runs of whitespace. Always ready."""

    name = "whitespace"

    def __init__(self, logger=None):
        super().__init__(logger)
        self._ready.set()

    def _split(self, text):
        return text.split()


class NltkTokenizer(BaseTokenizer):
    """Word tokenizer backed by NLTK's punkt models."""

    name = "nltk"

    def __init__(self, language="english", background=True, logger=None):
        """
        Args:
            language (str): Punkt language name
            background (bool): Load punkt data on a background thread
            logger: Logger instance
        """
        super().__init__(logger)
        self.language = language
        self._start_loading(background)

    def _load(self):
        try:
            nltk.data.find("tokenizers/punkt_tab")
        except LookupError:
            if not nltk.download("punkt_tab", quiet=True):
                raise LookupError("Could not download NLTK punkt_tab data")

    def _split(self, text):
        return nltk.word_tokenize(text, language=self.language)


class SpacyTokenizer(BaseTokenizer):
    """
    Rule-based spaCy tokenizer from a blank language pipeline.

    With ``keep_whitespace`` each surface form carries its trailing
    whitespace, so joining generated tokens without a separator reproduces
    natural spacing.
    """

    name = "spacy"

    def __init__(self, language="en", keep_whitespace=True, background=True, logger=None):
        super().__init__(logger)
        self.language = language
        self.keep_whitespace = keep_whitespace
        self.nlp = None
        self._start_loading(background)

    def _load(self):
        self.nlp = spacy.blank(self.language)

    def _split(self, text):
        doc = self.nlp.make_doc(text)
        return [
            token.text_with_ws if self.keep_whitespace else token.text
            for token in doc
            if not token.is_space
        ]


NLTK_LANGUAGES = {"en": "english", "de": "german", "fr": "french", "es": "spanish"}


def build_tokenizer(config, logger=None):
    """
    Build the tokenizer named in ``config["tokenizer"]["backend"]``.

    Args:
        config (dict): Full configuration from ``load_config``
        logger: Logger instance

    Returns:
        BaseTokenizer: The tokenizer (possibly still loading)
    """
    settings = config.get("tokenizer", {})
    backend = settings.get("backend", "nltk")
    language = settings.get("language", "en")
    background = settings.get("background", True)

    if backend == "whitespace":
        return WhitespaceTokenizer(logger=logger)
    if backend == "nltk":
        return NltkTokenizer(
            language=NLTK_LANGUAGES.get(language, language),
            background=background,
            logger=logger,
        )
    if backend == "spacy":
        return SpacyTokenizer(
            language=language,
            keep_whitespace=settings.get("keep_whitespace", True),
            background=background,
            logger=logger,
        )
    raise ConfigurationError(f"Unsupported tokenizer backend: {backend!r}")
